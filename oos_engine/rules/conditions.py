"""Condition trees: a closed grammar over inspection observations.

A rule's trigger logic is a small boolean tree. Leaves test one field
of a finding's observed data; composites combine them:

    equals(field, value)
    present(field) / absent(field)
    numeric_compare(field, op, threshold)   op in lt, lte, gt, gte, eq
    and(children...) / or(children...) / not(child)

Trees travel as JSON (see ``parse_condition``) and are parsed exactly
once, when their rule version is activated. Evaluation works on the
parsed nodes only, is pure and deterministic, never raises for a
parsed tree, and short-circuits AND/OR left to right.

A field referenced by ``equals`` or ``numeric_compare`` that is missing
from the observed data makes the predicate false. Absence has to be
tested explicitly with ``absent``.
"""

import math
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any, Iterator, Union

from oos_engine.core.errors import RuleDefinitionError

# Deepest nesting accepted for a condition tree (root is depth 1)
MAX_CONDITION_DEPTH = 32


class NodeType(str, Enum):
    """Discriminator of the JSON wire shape."""

    EQUALS = "equals"
    PRESENT = "present"
    ABSENT = "absent"
    NUMERIC_COMPARE = "numeric_compare"
    AND = "and"
    OR = "or"
    NOT = "not"


class CompareOp(str, Enum):
    """Operators for numeric comparisons."""

    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    EQ = "eq"


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class Present:
    field: str


@dataclass(frozen=True)
class Absent:
    field: str


@dataclass(frozen=True)
class NumericCompare:
    field: str
    op: CompareOp
    threshold: float


@dataclass(frozen=True)
class And:
    children: tuple["Condition", ...]


@dataclass(frozen=True)
class Or:
    children: tuple["Condition", ...]


@dataclass(frozen=True)
class Not:
    child: "Condition"


Condition = Union[Equals, Present, Absent, NumericCompare, And, Or, Not]

_LEAF_KEYS: dict[NodeType, frozenset[str]] = {
    NodeType.EQUALS: frozenset({"type", "field", "value"}),
    NodeType.PRESENT: frozenset({"type", "field"}),
    NodeType.ABSENT: frozenset({"type", "field"}),
    NodeType.NUMERIC_COMPARE: frozenset({"type", "field", "op", "threshold"}),
}


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _is_present(observed: dict[str, Any], field: str) -> bool:
    return observed.get(field) is not None


def _is_number(value: Any) -> bool:
    # bool is an int subclass; a True/False reading is not a measurement
    return isinstance(value, Real) and not isinstance(value, bool) and not (
        isinstance(value, float) and math.isnan(value)
    )


def _compare(actual: float, op: CompareOp, threshold: float) -> bool:
    if op is CompareOp.LT:
        return actual < threshold
    elif op is CompareOp.LTE:
        return actual <= threshold
    elif op is CompareOp.GT:
        return actual > threshold
    elif op is CompareOp.GTE:
        return actual >= threshold
    return actual == threshold


def evaluate(node: Condition, observed: dict[str, Any]) -> bool:
    """Evaluate a parsed condition tree against one finding's observed data.

    Args:
        node: Parsed condition tree (see ``parse_condition``)
        observed: Observed key/value payload of a finding

    Returns:
        True if the tree holds for the observation
    """
    if isinstance(node, Equals):
        if not _is_present(observed, node.field):
            return False
        actual = observed[node.field]
        # Keep True from equalling 1 and vice versa
        if isinstance(actual, bool) != isinstance(node.value, bool):
            return False
        return actual == node.value

    if isinstance(node, Present):
        return _is_present(observed, node.field)

    if isinstance(node, Absent):
        return not _is_present(observed, node.field)

    if isinstance(node, NumericCompare):
        actual = observed.get(node.field)
        if not _is_number(actual):
            return False
        return _compare(actual, node.op, node.threshold)

    if isinstance(node, And):
        for child in node.children:
            if not evaluate(child, observed):
                return False
        return True

    if isinstance(node, Or):
        for child in node.children:
            if evaluate(child, observed):
                return True
        return False

    if isinstance(node, Not):
        return not evaluate(node.child, observed)

    # Only reachable with a hand-built object outside the grammar
    return False


def satisfied_leaves(node: Condition, observed: dict[str, Any]) -> list[str]:
    """Describe the leaf predicates that hold, for explanations.

    Leaves under a NOT are reported only when the NOT itself holds,
    as the negated description.
    """
    if isinstance(node, (And, Or)):
        described: list[str] = []
        for child in node.children:
            described.extend(satisfied_leaves(child, observed))
        return described
    if isinstance(node, Not):
        if evaluate(node, observed):
            return [f"not ({describe(node.child)})"]
        return []
    if evaluate(node, observed):
        return [describe(node)]
    return []


def describe(node: Condition) -> str:
    """Render a condition as short human-readable text."""
    if isinstance(node, Equals):
        return f"{node.field} == {node.value!r}"
    if isinstance(node, Present):
        return f"{node.field} present"
    if isinstance(node, Absent):
        return f"{node.field} absent"
    if isinstance(node, NumericCompare):
        return f"{node.field} {node.op.value} {node.threshold:g}"
    if isinstance(node, And):
        return " and ".join(f"({describe(c)})" for c in node.children)
    if isinstance(node, Or):
        return " or ".join(f"({describe(c)})" for c in node.children)
    if isinstance(node, Not):
        return f"not ({describe(node.child)})"
    return repr(node)


def referenced_fields(node: Condition) -> Iterator[str]:
    """Yield every observed-data field a tree reads."""
    if isinstance(node, (And, Or)):
        for child in node.children:
            yield from referenced_fields(child)
    elif isinstance(node, Not):
        yield from referenced_fields(node.child)
    else:
        yield node.field


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


def to_dict(node: Condition) -> dict[str, Any]:
    """Convert a parsed tree back to its JSON wire shape."""
    if isinstance(node, Equals):
        return {"type": NodeType.EQUALS.value, "field": node.field, "value": node.value}
    if isinstance(node, Present):
        return {"type": NodeType.PRESENT.value, "field": node.field}
    if isinstance(node, Absent):
        return {"type": NodeType.ABSENT.value, "field": node.field}
    if isinstance(node, NumericCompare):
        return {
            "type": NodeType.NUMERIC_COMPARE.value,
            "field": node.field,
            "op": node.op.value,
            "threshold": node.threshold,
        }
    if isinstance(node, And):
        return {"type": NodeType.AND.value, "children": [to_dict(c) for c in node.children]}
    if isinstance(node, Or):
        return {"type": NodeType.OR.value, "children": [to_dict(c) for c in node.children]}
    if isinstance(node, Not):
        return {"type": NodeType.NOT.value, "child": to_dict(node.child)}
    raise TypeError(f"Not a condition node: {node!r}")


class _Parser:
    """Collects every problem in a tree instead of stopping at the first."""

    def __init__(self) -> None:
        self.errors: list[str] = []

    def error(self, path: str, message: str) -> None:
        self.errors.append(f"{path}: {message}")

    def parse(self, data: Any, path: str, depth: int) -> Condition | None:
        if depth > MAX_CONDITION_DEPTH:
            self.error(path, f"nesting deeper than {MAX_CONDITION_DEPTH} levels")
            return None

        if not isinstance(data, dict):
            self.error(path, f"expected an object, got {type(data).__name__}")
            return None

        raw_type = data.get("type")
        try:
            node_type = NodeType(raw_type)
        except ValueError:
            self.error(path, f"unknown node type {raw_type!r}")
            return None

        if node_type in _LEAF_KEYS:
            return self._parse_leaf(node_type, data, path)
        if node_type is NodeType.NOT:
            return self._parse_not(data, path, depth)
        return self._parse_composite(node_type, data, path, depth)

    def _check_keys(self, data: dict, expected: frozenset[str], path: str) -> bool:
        ok = True
        missing = expected - data.keys()
        extra = data.keys() - expected
        if missing:
            self.error(path, f"missing keys {sorted(missing)}")
            ok = False
        if extra:
            self.error(path, f"unexpected keys {sorted(extra)}")
            ok = False
        return ok

    def _parse_field(self, data: dict, path: str) -> str | None:
        field = data.get("field")
        if not isinstance(field, str) or not field.strip():
            self.error(path, "field must be a non-empty string")
            return None
        return field

    def _parse_leaf(self, node_type: NodeType, data: dict, path: str) -> Condition | None:
        if not self._check_keys(data, _LEAF_KEYS[node_type], path):
            return None
        field = self._parse_field(data, path)
        if field is None:
            return None

        if node_type is NodeType.PRESENT:
            return Present(field)
        if node_type is NodeType.ABSENT:
            return Absent(field)

        if node_type is NodeType.EQUALS:
            value = data["value"]
            if value is None:
                self.error(path, "equals needs a non-null value; use absent to test for null")
                return None
            if isinstance(value, (dict, list)):
                self.error(path, "equals compares scalar values only")
                return None
            return Equals(field, value)

        try:
            op = CompareOp(data["op"])
        except ValueError:
            self.error(path, f"unknown comparison operator {data['op']!r}")
            return None
        threshold = data["threshold"]
        try:
            finite = _is_number(threshold) and math.isfinite(threshold)
        except OverflowError:
            # int too large for a float
            finite = False
        if not finite:
            self.error(path, "threshold must be a finite number")
            return None
        return NumericCompare(field, op, threshold)

    def _parse_not(self, data: dict, path: str, depth: int) -> Condition | None:
        if "children" in data:
            self.error(path, "not takes exactly one child under 'child'")
            return None
        if not self._check_keys(data, frozenset({"type", "child"}), path):
            return None
        child = self.parse(data["child"], f"{path}.child", depth + 1)
        return Not(child) if child is not None else None

    def _parse_composite(
        self,
        node_type: NodeType,
        data: dict,
        path: str,
        depth: int,
    ) -> Condition | None:
        if not self._check_keys(data, frozenset({"type", "children"}), path):
            return None
        raw_children = data["children"]
        if not isinstance(raw_children, list) or not raw_children:
            self.error(path, f"{node_type.value} needs a non-empty list of children")
            return None

        children = [
            self.parse(child, f"{path}.children[{i}]", depth + 1)
            for i, child in enumerate(raw_children)
        ]
        if any(child is None for child in children):
            return None

        if node_type is NodeType.AND:
            return And(tuple(children))
        return Or(tuple(children))


def validate_condition(data: Any) -> list[str]:
    """Check a JSON condition tree without raising.

    Returns:
        List of problems, empty when the tree is well formed
    """
    parser = _Parser()
    parser.parse(data, "$", 1)
    return parser.errors


def parse_condition(data: Any) -> Condition:
    """Parse a JSON condition tree into its node representation.

    Raises:
        RuleDefinitionError: If the tree is malformed (every problem is
            listed in ``errors``)
    """
    parser = _Parser()
    node = parser.parse(data, "$", 1)
    if parser.errors or node is None:
        errors = parser.errors or ["$: malformed condition tree"]
        raise RuleDefinitionError("Malformed condition tree", errors=errors)
    return node


# Leaf and composite constructors for building trees in code and tests


def equals(field: str, value: Any) -> Equals:
    return Equals(field, value)


def present(field: str) -> Present:
    return Present(field)


def absent(field: str) -> Absent:
    return Absent(field)


def numeric_compare(field: str, op: str | CompareOp, threshold: float) -> NumericCompare:
    return NumericCompare(field, CompareOp(op), threshold)


def all_of(*children: Condition) -> And:
    return And(tuple(children))


def any_of(*children: Condition) -> Or:
    return Or(tuple(children))


def negate(child: Condition) -> Not:
    return Not(child)

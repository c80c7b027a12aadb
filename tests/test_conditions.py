"""Tests for condition tree parsing and evaluation."""

import pytest

from oos_engine.core.errors import RuleDefinitionError
from oos_engine.rules.conditions import (
    MAX_CONDITION_DEPTH,
    And,
    CompareOp,
    Equals,
    Not,
    NumericCompare,
    absent,
    all_of,
    any_of,
    equals,
    evaluate,
    negate,
    numeric_compare,
    parse_condition,
    present,
    referenced_fields,
    satisfied_leaves,
    to_dict,
    validate_condition,
)


class TestLeafPredicates:
    """Tests for leaf predicate semantics."""

    def test_equals_matches_value(self) -> None:
        """Equals holds when the observed value is equal."""
        assert evaluate(equals("leak_severity", "major"), {"leak_severity": "major"})
        assert not evaluate(equals("leak_severity", "major"), {"leak_severity": "minor"})

    def test_equals_on_missing_field_is_false(self) -> None:
        """A missing field never satisfies equals."""
        assert not evaluate(equals("air_leak", True), {})

    def test_equals_on_null_field_is_false(self) -> None:
        """A null value counts as missing."""
        assert not evaluate(equals("air_leak", True), {"air_leak": None})

    def test_equals_does_not_confuse_bool_and_int(self) -> None:
        """True is not 1 and 0 is not False."""
        assert not evaluate(equals("count", 1), {"count": True})
        assert not evaluate(equals("flag", False), {"flag": 0})
        assert evaluate(equals("flag", False), {"flag": False})

    def test_present_and_absent(self) -> None:
        """Present needs a non-null value; absent is its complement."""
        assert evaluate(present("lining_mm"), {"lining_mm": 0})
        assert not evaluate(present("lining_mm"), {"lining_mm": None})
        assert not evaluate(present("lining_mm"), {})
        assert evaluate(absent("lining_mm"), {})
        assert evaluate(absent("lining_mm"), {"lining_mm": None})
        assert not evaluate(absent("lining_mm"), {"lining_mm": 4})

    @pytest.mark.parametrize(
        "op,value,expected",
        [
            ("lt", 2, True),
            ("lt", 3, False),
            ("lte", 3, True),
            ("gt", 3.5, True),
            ("gte", 3, True),
            ("gte", 2.99, False),
            ("eq", 3.0, True),
        ],
    )
    def test_numeric_compare_operators(self, op: str, value: float, expected: bool) -> None:
        """Each operator compares observed value against the threshold."""
        assert evaluate(numeric_compare("lining_mm", op, 3), {"lining_mm": value}) is expected

    def test_numeric_compare_on_missing_field_is_false(self) -> None:
        """Missing fields make the comparison false, not an error."""
        assert not evaluate(numeric_compare("lining_mm", "lt", 3), {})

    @pytest.mark.parametrize("value", ["2", True, False, [1], {"mm": 1}, float("nan")])
    def test_numeric_compare_on_non_numeric_value_is_false(self, value) -> None:
        """Strings, booleans, containers and NaN are not measurements."""
        assert not evaluate(numeric_compare("lining_mm", "lt", 3), {"lining_mm": value})


class TestComposites:
    """Tests for AND/OR/NOT."""

    def test_and_requires_all_children(self) -> None:
        """AND holds only when every child holds."""
        tree = all_of(equals("air_leak", True), equals("leak_severity", "major"))

        assert evaluate(tree, {"air_leak": True, "leak_severity": "major"})
        assert not evaluate(tree, {"air_leak": True, "leak_severity": "minor"})
        assert not evaluate(tree, {"air_leak": True})

    def test_or_requires_one_child(self) -> None:
        """OR holds when any child holds."""
        tree = any_of(equals("position", "steer"), equals("position", "front"))

        assert evaluate(tree, {"position": "front"})
        assert not evaluate(tree, {"position": "drive"})

    def test_not_inverts_child(self) -> None:
        """NOT inverts; a NOT over a missing-field predicate holds."""
        tree = negate(equals("license_valid", True))

        assert evaluate(tree, {"license_valid": False})
        assert evaluate(tree, {})
        assert not evaluate(tree, {"license_valid": True})

    def test_nested_tree(self) -> None:
        """Steer tire tread rule from the starter rule set."""
        tree = all_of(
            numeric_compare("tread_depth_32nds", "lt", 2),
            any_of(equals("position", "steer"), equals("position", "front")),
        )

        assert evaluate(tree, {"tread_depth_32nds": 1, "position": "steer"})
        assert not evaluate(tree, {"tread_depth_32nds": 1, "position": "drive"})
        assert not evaluate(tree, {"tread_depth_32nds": 3, "position": "steer"})

    def test_evaluation_is_deterministic(self) -> None:
        """Same tree and observation always give the same answer."""
        tree = any_of(
            all_of(present("a"), negate(equals("b", "x"))),
            numeric_compare("c", "gte", 10),
        )
        observed = {"a": 1, "b": "y", "c": 3}

        results = {evaluate(tree, observed) for _ in range(50)}

        assert results == {True}


class TestParsing:
    """Tests for parsing the JSON wire shape."""

    def test_parse_every_node_type(self) -> None:
        """All node types parse into their dataclasses."""
        tree = parse_condition({
            "type": "and",
            "children": [
                {"type": "equals", "field": "air_leak", "value": True},
                {"type": "present", "field": "lining_mm"},
                {"type": "absent", "field": "repair_tag"},
                {"type": "numeric_compare", "field": "lining_mm", "op": "lt", "threshold": 3},
                {"type": "or", "children": [{"type": "equals", "field": "axle", "value": 1}]},
                {"type": "not", "child": {"type": "equals", "field": "oos_sticker", "value": True}},
            ],
        })

        assert isinstance(tree, And)
        assert isinstance(tree.children[0], Equals)
        assert tree.children[3] == NumericCompare("lining_mm", CompareOp.LT, 3)
        assert isinstance(tree.children[5], Not)

    def test_round_trip_through_wire_shape(self) -> None:
        """to_dict produces JSON that parses back to the same tree."""
        tree = all_of(numeric_compare("lining_mm", "lt", 3), negate(absent("axle")))

        assert parse_condition(to_dict(tree)) == tree

    def test_unknown_node_type_rejected(self) -> None:
        """Anything outside the grammar is a definition error."""
        with pytest.raises(RuleDefinitionError) as exc_info:
            parse_condition({"type": "in", "field": "lamp_type", "value": ["headlamp"]})

        assert "unknown node type 'in'" in exc_info.value.errors[0]

    def test_errors_carry_path(self) -> None:
        """Errors point at the offending node."""
        errors = validate_condition({
            "type": "and",
            "children": [
                {"type": "equals", "field": "a", "value": 1},
                {"type": "numeric_compare", "field": "b", "op": "between", "threshold": 3},
            ],
        })

        assert len(errors) == 1
        assert errors[0].startswith("$.children[1]:")
        assert "between" in errors[0]

    def test_all_problems_reported(self) -> None:
        """Every malformed child is listed, not only the first."""
        errors = validate_condition({
            "type": "or",
            "children": [
                {"type": "equals", "field": "", "value": 1},
                {"type": "present"},
                {"type": "not", "children": []},
            ],
        })

        assert len(errors) == 3

    @pytest.mark.parametrize(
        "tree",
        [
            {"type": "and", "children": []},
            {"type": "or"},
            {"type": "not", "children": [{"type": "present", "field": "a"}]},
            {"type": "not"},
            {"type": "equals", "field": "a"},
            {"type": "equals", "field": "a", "value": None},
            {"type": "equals", "field": "a", "value": ["x", "y"]},
            {"type": "present", "field": "a", "value": 1},
            {"type": "numeric_compare", "field": "a", "op": "lt", "threshold": "3"},
            {"type": "numeric_compare", "field": "a", "op": "lt", "threshold": True},
            {"type": "numeric_compare", "field": "a", "op": "lt", "threshold": float("inf")},
            {"type": "numeric_compare", "field": "a", "op": "lt", "threshold": 10**400},
            {"type": "numeric_compare", "field": "a", "threshold": 3},
            "lining_mm < 3",
            None,
        ],
    )
    def test_malformed_trees_rejected(self, tree) -> None:
        """Malformed trees produce at least one error and raise on parse."""
        assert validate_condition(tree)
        with pytest.raises(RuleDefinitionError):
            parse_condition(tree)

    def test_depth_limit(self) -> None:
        """Trees nested past the limit are rejected."""
        tree = {"type": "present", "field": "a"}
        for _ in range(MAX_CONDITION_DEPTH):
            tree = {"type": "not", "child": tree}

        errors = validate_condition(tree)

        assert any("nesting deeper" in e for e in errors)

    def test_depth_at_limit_is_accepted(self) -> None:
        """A tree exactly at the limit parses."""
        tree = {"type": "present", "field": "a"}
        for _ in range(MAX_CONDITION_DEPTH - 1):
            tree = {"type": "not", "child": tree}

        assert validate_condition(tree) == []


class TestDescriptions:
    """Tests for explanation helpers."""

    def test_satisfied_leaves_lists_holding_predicates(self) -> None:
        """Only leaves that hold are described."""
        tree = any_of(numeric_compare("lining_mm", "lt", 3), equals("cracked_drum", True))

        assert satisfied_leaves(tree, {"lining_mm": 2}) == ["lining_mm lt 3"]

    def test_referenced_fields(self) -> None:
        """Every field a tree reads is reported."""
        tree = all_of(present("a"), any_of(equals("b", 1), negate(absent("c"))))

        assert list(referenced_fields(tree)) == ["a", "b", "c"]

"""Deterministic OOS rules engine.

Evaluates a finding's observed data against the rules of one rule
version. All decisions are:
- Deterministic (same rules and observation = same outcome)
- Explainable (matched and triggered rules plus rendered explanations)
- Auditable (the version id and content hash travel with the result)

Rule versions are compiled once: every condition tree is parsed into
its node form and the canonical content is hashed. Compiled sets are
immutable and cached, so concurrent inspections share them without
locking.
"""

import hashlib
import json
import logging
import re
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from oos_engine.core.errors import RuleDefinitionError
from oos_engine.models.rule_version import Rule, RuleCategory, RuleOutcome, RuleVersion
from oos_engine.rules.aggregator import aggregate_finding
from oos_engine.rules.conditions import (
    Condition,
    evaluate,
    parse_condition,
    satisfied_leaves,
    validate_condition,
)
from oos_engine.rules.matcher import match_rules

logger = logging.getLogger(__name__)

TRIAGE_PREFIX = "[TRIAGE - Requires Confirmation]"

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_.]*)\}")


@dataclass(frozen=True)
class CompiledRule:
    """A rule with its condition tree already parsed."""

    id: str
    category: RuleCategory
    component_code: str | None
    title: str
    condition: Condition
    outcome: RuleOutcome
    is_triage_only: bool
    rule_code: str | None = None
    explanation_template: str | None = None
    citation_text: str | None = None
    citation_url: str | None = None

    def explain(self, observed: dict[str, Any]) -> str:
        """Render the explanation for a triggered rule.

        ``{field}`` placeholders are filled from the observed data;
        placeholders without a value are left as written.
        """
        if self.explanation_template:
            explanation = _PLACEHOLDER.sub(
                lambda m: str(observed[m.group(1)]) if m.group(1) in observed else m.group(0),
                self.explanation_template,
            )
        else:
            explanation = "Triggered by: " + ", ".join(satisfied_leaves(self.condition, observed))

        if self.is_triage_only:
            explanation = f"{TRIAGE_PREFIX} {explanation}"
        return explanation


@dataclass(frozen=True)
class CompiledRuleSet:
    """All rules of one rule version, ready for evaluation."""

    version_id: str
    content_hash: str
    rules: tuple[CompiledRule, ...]

    def get(self, rule_id: str) -> CompiledRule | None:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None


@dataclass
class FindingEvaluation:
    """Result of evaluating one finding."""

    outcome: RuleOutcome
    matched_rule_ids: list[str]
    triggered_rule_ids: list[str]
    explanations: list[str]
    # A NOT_OOS rule triggered: defect noted, nothing out of service
    defect_noted: bool
    version_id: str
    content_hash: str
    citations: list[dict[str, str | None]] = field(default_factory=list)

    @property
    def requires_confirmation(self) -> bool:
        return self.outcome == RuleOutcome.TRIAGE


def canonical_rule_content(rules: Iterable[Rule]) -> list[dict[str, Any]]:
    """Canonical, order-preserving representation of a version's rules."""
    return [
        {
            "id": r.id,
            "rule_code": r.rule_code,
            "category": str(RuleCategory(r.category).value),
            "component_code": r.component_code,
            "title": r.title,
            "condition_tree": r.condition_tree,
            "outcome": str(RuleOutcome(r.outcome).value),
            "is_triage_only": bool(r.is_triage_only),
            "explanation_template": r.explanation_template,
        }
        for r in rules
    ]


def compute_content_hash(rules: Iterable[Rule]) -> str:
    """Compute SHA-256 hash of a version's rule content."""
    content_str = json.dumps(canonical_rule_content(rules), sort_keys=True, default=str)
    return hashlib.sha256(content_str.encode("utf-8")).hexdigest()


def validate_rules(rules: Iterable[Rule]) -> list[str]:
    """List every problem that would stop a set of rules from activating.

    Args:
        rules: Rules of a DRAFT version

    Returns:
        Problems prefixed with the rule they belong to; empty when valid
    """
    problems: list[str] = []
    for rule in rules:
        label = f"rule {rule.rule_code or rule.id} ({rule.title})"
        try:
            RuleCategory(rule.category)
        except ValueError:
            problems.append(f"{label}: unknown category {rule.category!r}")
        try:
            RuleOutcome(rule.outcome)
        except ValueError:
            problems.append(f"{label}: unknown outcome {rule.outcome!r}")
        problems.extend(f"{label}: {error}" for error in validate_condition(rule.condition_tree))
    return problems


def compile_rule(rule: Rule) -> CompiledRule:
    """Parse one rule's condition tree.

    Raises:
        RuleDefinitionError: If the tree is malformed
    """
    return CompiledRule(
        id=rule.id,
        category=RuleCategory(rule.category),
        component_code=rule.component_code,
        title=rule.title,
        condition=parse_condition(rule.condition_tree),
        outcome=RuleOutcome(rule.outcome),
        is_triage_only=bool(rule.is_triage_only),
        rule_code=rule.rule_code,
        explanation_template=rule.explanation_template,
        citation_text=rule.citation_text,
        citation_url=rule.citation_url,
    )


def compile_version(version: RuleVersion) -> CompiledRuleSet:
    """Compile every rule of a version.

    Raises:
        RuleDefinitionError: Listing every problem across all rules
    """
    problems = validate_rules(version.rules)
    if problems:
        raise RuleDefinitionError(
            f"Rule version {version.id} has {len(problems)} definition error(s)",
            errors=problems,
        )

    return CompiledRuleSet(
        version_id=version.id,
        content_hash=version.content_hash or compute_content_hash(version.rules),
        rules=tuple(compile_rule(rule) for rule in version.rules),
    )


def evaluate_finding(
    ruleset: CompiledRuleSet,
    category: str,
    component_code: str | None,
    observed: dict[str, Any],
) -> FindingEvaluation:
    """Match, evaluate and aggregate one finding.

    Pure: works only on the already-compiled rule set and the
    observation, with no I/O.

    Args:
        ruleset: Compiled rules of the inspection's version
        category: Finding category
        component_code: Finding component code, if any
        observed: Observed data payload

    Returns:
        FindingEvaluation with outcome, rule ids and explanations
    """
    candidates = match_rules(ruleset.rules, category, component_code)
    triggered = [rule for rule in candidates if evaluate(rule.condition, observed)]

    return FindingEvaluation(
        outcome=aggregate_finding(triggered),
        matched_rule_ids=[rule.id for rule in candidates],
        triggered_rule_ids=[rule.id for rule in triggered],
        explanations=[rule.explain(observed) for rule in triggered],
        defect_noted=any(rule.outcome == RuleOutcome.NOT_OOS for rule in triggered),
        version_id=ruleset.version_id,
        content_hash=ruleset.content_hash,
        citations=[
            {"rule_id": rule.id, "text": rule.citation_text, "url": rule.citation_url}
            for rule in triggered
            if rule.citation_text or rule.citation_url
        ],
    )


class CompiledRuleSetCache:
    """Bounded cache of compiled rule sets.

    Keyed by version id and content hash: only ACTIVE and RETIRED
    versions are cached, and their rules never change, so an entry
    never goes stale.
    """

    def __init__(self, max_size: int = 32) -> None:
        self.max_size = max_size
        self._cache: OrderedDict[tuple[str, str], CompiledRuleSet] = OrderedDict()

    def get_or_compile(self, version: RuleVersion) -> CompiledRuleSet:
        """Get the compiled form of a version, compiling it if needed."""
        if version.content_hash is None:
            # DRAFT content can still change; never cache it
            return compile_version(version)

        key = (version.id, version.content_hash)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        compiled = compile_version(version)
        self._cache[key] = compiled
        if len(self._cache) > self.max_size:
            self._cache.popitem(last=False)
        logger.debug(f"Compiled rule version {version.id} ({len(compiled.rules)} rules)")
        return compiled

    def clear_cache(self) -> None:
        """Clear the compiled rule set cache."""
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

"""Deterministic OOS rule evaluation.

Condition trees, rule matching and outcome aggregation are pure and
free of I/O; persistence lives in ``oos_engine.services``.
"""

from oos_engine.rules.aggregator import (
    aggregate_finding,
    confirmable_outcomes,
    derive_inspection_status,
    is_fail_worthy,
)
from oos_engine.rules.conditions import (
    Condition,
    evaluate,
    parse_condition,
    to_dict,
    validate_condition,
)
from oos_engine.rules.engine import (
    CompiledRule,
    CompiledRuleSet,
    CompiledRuleSetCache,
    FindingEvaluation,
    compile_version,
    evaluate_finding,
)
from oos_engine.rules.loader import load_ruleset
from oos_engine.rules.matcher import match_rules

__all__ = [
    "Condition",
    "evaluate",
    "parse_condition",
    "validate_condition",
    "to_dict",
    "match_rules",
    "aggregate_finding",
    "derive_inspection_status",
    "is_fail_worthy",
    "confirmable_outcomes",
    "CompiledRule",
    "CompiledRuleSet",
    "CompiledRuleSetCache",
    "FindingEvaluation",
    "compile_version",
    "evaluate_finding",
    "load_ruleset",
]

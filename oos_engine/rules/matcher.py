"""Rule matcher: which rules of a version apply to a finding."""

from collections.abc import Iterable
from typing import Protocol, TypeVar


class Matchable(Protocol):
    """Anything carrying the keys the matcher selects on."""

    category: str
    component_code: str | None


RuleT = TypeVar("RuleT", bound=Matchable)


def rule_applies(rule: Matchable, category: str, component_code: str | None) -> bool:
    """Check whether one rule is a candidate for a finding.

    A rule applies when it has the finding's category and either no
    component code (generic within the category) or the finding's.
    """
    if rule.category != category:
        return False
    return rule.component_code is None or rule.component_code == component_code


def match_rules(
    rules: Iterable[RuleT],
    category: str,
    component_code: str | None = None,
) -> list[RuleT]:
    """Select the rules eligible to evaluate a finding.

    Args:
        rules: Rules of one version, in insertion order
        category: Finding category (a RuleCategory value)
        component_code: Finding component code, if any

    Returns:
        Eligible rules, insertion order preserved. Order is for display
        only; the finding outcome does not depend on it.
    """
    return [rule for rule in rules if rule_applies(rule, category, component_code)]

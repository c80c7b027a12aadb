"""Outcome aggregation for findings and inspections.

Both roll-ups use a fixed precedence that never lets a less severe
result hide a more severe one:

    finding:     triage-only rule triggered  -> TRIAGE
                 any OOS_* triggered         -> most severe OOS_*
                 TRIAGE-outcome rule         -> TRIAGE
                 otherwise                   -> NOT_OOS

    inspection:  any OOS_* finding           -> OOS
                 any TRIAGE finding          -> PENDING
                 any fail-worthy finding     -> FAIL
                 otherwise                   -> PASS

The precedence is fixed; nothing configures it.
"""

from collections.abc import Iterable
from typing import Protocol

from oos_engine.models.inspection import InspectionStatus
from oos_engine.models.rule_version import (
    CATEGORY_OOS_OUTCOME,
    OOS_OUTCOMES,
    RuleCategory,
    RuleOutcome,
)


def _oos_rank(outcome: str) -> int | None:
    """Severity rank of an OOS outcome (0 is most severe), None otherwise."""
    for rank, oos in enumerate(OOS_OUTCOMES):
        if outcome == oos:
            return rank
    return None


class TriggeredRule(Protocol):
    outcome: str
    is_triage_only: bool


class ConfirmableRule(Protocol):
    category: str
    outcome: str


class FindingState(Protocol):
    outcome: str
    defect_noted: bool
    triggered_rule_ids: list[str]


def most_severe_oos(outcomes: Iterable[str]) -> RuleOutcome | None:
    """Pick the most severe OOS outcome (OOS_DRIVER > OOS_VEHICLE > OOS_CARGO)."""
    ranked = [rank for rank in map(_oos_rank, outcomes) if rank is not None]
    if not ranked:
        return None
    return OOS_OUTCOMES[min(ranked)]


def aggregate_finding(triggered: Iterable[TriggeredRule]) -> RuleOutcome:
    """Combine the outcomes of every triggered rule into one finding outcome.

    Args:
        triggered: Rules whose condition tree evaluated true

    Returns:
        The finding outcome
    """
    triggered = list(triggered)

    # Triage wins pending human review
    if any(rule.is_triage_only for rule in triggered):
        return RuleOutcome.TRIAGE

    oos = most_severe_oos(rule.outcome for rule in triggered)
    if oos is not None:
        return oos

    if any(rule.outcome == RuleOutcome.TRIAGE for rule in triggered):
        return RuleOutcome.TRIAGE

    return RuleOutcome.NOT_OOS


def is_fail_worthy(finding: FindingState) -> bool:
    """A NOT_OOS finding that still records a defect.

    Either the inspector (or a NOT_OOS rule) noted a defect, or rules
    triggered and a human downgraded the result.
    """
    if finding.outcome != RuleOutcome.NOT_OOS:
        return False
    return bool(finding.defect_noted or finding.triggered_rule_ids)


def derive_inspection_status(findings: Iterable[FindingState]) -> InspectionStatus:
    """Compute the overall inspection status from its findings.

    Pure function of persisted finding state.
    """
    findings = list(findings)

    if any(f.outcome in OOS_OUTCOMES for f in findings):
        return InspectionStatus.OOS

    if any(f.outcome == RuleOutcome.TRIAGE for f in findings):
        return InspectionStatus.PENDING

    if any(is_fail_worthy(f) for f in findings):
        return InspectionStatus.FAIL

    return InspectionStatus.PASS


def confirmable_outcomes(rules: Iterable[ConfirmableRule]) -> set[RuleOutcome]:
    """Outcomes a triage reviewer may settle a finding on.

    NOT_OOS is always allowed. An OOS outcome is allowed when one of the
    finding's matched rules produces it, or, for a rule whose outcome is
    TRIAGE, when it is the OOS outcome of that rule's category.
    """
    allowed = {RuleOutcome.NOT_OOS}
    for rule in rules:
        if rule.outcome in OOS_OUTCOMES:
            allowed.add(RuleOutcome(rule.outcome))
        elif rule.outcome == RuleOutcome.TRIAGE:
            category_outcome = CATEGORY_OOS_OUTCOME.get(RuleCategory(rule.category))
            if category_outcome is not None:
                allowed.add(category_outcome)
    return allowed

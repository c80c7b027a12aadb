"""Database models for the OOS compliance engine."""

from oos_engine.models.change_log import (
    ChangeAction,
    ChangeEntityType,
    ChangeLogEntry,
)
from oos_engine.models.inspection import (
    Finding,
    Inspection,
    InspectionStatus,
    InspectionType,
    TriageStatus,
)
from oos_engine.models.regulatory_source import RegulatorySource, SourceType
from oos_engine.models.rule_version import (
    CATEGORY_OOS_OUTCOME,
    OOS_OUTCOMES,
    Rule,
    RuleCategory,
    RuleOutcome,
    RuleVersion,
    RuleVersionSource,
    RuleVersionStatus,
)

__all__ = [
    # Rule sets
    "RuleVersion",
    "RuleVersionStatus",
    "RuleVersionSource",
    "Rule",
    "RuleCategory",
    "RuleOutcome",
    "OOS_OUTCOMES",
    "CATEGORY_OOS_OUTCOME",
    # Sources
    "RegulatorySource",
    "SourceType",
    # Inspections
    "Inspection",
    "InspectionType",
    "InspectionStatus",
    "Finding",
    "TriageStatus",
    # Audit
    "ChangeLogEntry",
    "ChangeAction",
    "ChangeEntityType",
]

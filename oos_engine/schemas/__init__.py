"""Pydantic schemas for request/response validation."""

from oos_engine.schemas.change_log import ChangeLogEntryRead, ChangeLogFilter
from oos_engine.schemas.inspection import (
    FindingCreate,
    FindingRead,
    InspectionCreate,
    InspectionRead,
    ReplayedFinding,
    ReplayResult,
    ResolveTriageRequest,
)
from oos_engine.schemas.rule_version import (
    EnabledRequest,
    RuleCreate,
    RuleRead,
    RuleUpdate,
    RuleVersionCreate,
    RuleVersionRead,
    RuleVersionSummary,
    TransitionRequest,
    ValidationResponse,
)
from oos_engine.schemas.source import SourceCreate, SourceRead, SourceUpdate

__all__ = [
    "ChangeLogEntryRead",
    "ChangeLogFilter",
    "FindingCreate",
    "FindingRead",
    "InspectionCreate",
    "InspectionRead",
    "ReplayedFinding",
    "ReplayResult",
    "ResolveTriageRequest",
    "EnabledRequest",
    "RuleCreate",
    "RuleRead",
    "RuleUpdate",
    "RuleVersionCreate",
    "RuleVersionRead",
    "RuleVersionSummary",
    "TransitionRequest",
    "ValidationResponse",
    "SourceCreate",
    "SourceRead",
    "SourceUpdate",
]

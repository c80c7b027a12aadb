"""Inspection, finding and triage schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from oos_engine.models.inspection import InspectionStatus, InspectionType, TriageStatus
from oos_engine.models.rule_version import RuleCategory, RuleOutcome


class InspectionCreate(BaseModel):
    """Schema for starting an inspection.

    ``rule_version_id`` pins the rule version; when omitted the version
    is selected for the inspection's org and time.
    """

    asset_ref: str = Field(min_length=1, max_length=100)
    inspection_type: InspectionType
    inspected_at: datetime | None = None
    rule_version_id: str | None = None
    inspector_id: str | None = Field(None, max_length=255)
    inspector_name: str | None = Field(None, max_length=255)
    inspector_badge: str | None = Field(None, max_length=50)
    odometer: int | None = Field(None, ge=0)
    location: str | None = Field(None, max_length=255)


class FindingCreate(BaseModel):
    """Schema for recording a finding."""

    finding_type: RuleCategory
    component_code: str | None = Field(None, max_length=50)
    observed_data: dict[str, Any] = Field(default_factory=dict)
    defect_noted: bool = False
    notes: str | None = Field(None, max_length=10000)


class FindingRead(BaseModel):
    """Schema for reading a finding."""

    id: str
    inspection_id: str
    position: int
    finding_type: RuleCategory
    component_code: str | None
    observed_data: dict[str, Any]
    matched_rule_ids: list[str]
    triggered_rule_ids: list[str]
    explanations: list[str]
    outcome: RuleOutcome
    original_outcome: RuleOutcome
    defect_noted: bool
    notes: str | None
    triage_status: TriageStatus
    triage_resolved_by: str | None
    triage_resolved_at: datetime | None
    triage_reason: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class InspectionRead(BaseModel):
    """Schema for reading an inspection with its findings."""

    id: str
    org_id: str | None
    asset_ref: str
    inspection_type: InspectionType
    rule_version_id: str
    inspected_at: datetime
    inspector_id: str | None
    inspector_name: str | None
    inspector_badge: str | None
    odometer: int | None
    location: str | None
    status: InspectionStatus
    closed_at: datetime | None
    closed_by: str | None
    oos_count: int
    findings: list[FindingRead]
    created_at: datetime

    model_config = {"from_attributes": True}


class ResolveTriageRequest(BaseModel):
    """Request body for resolving an open triage finding."""

    resolved_outcome: RuleOutcome
    reason: str = Field(min_length=1, max_length=2000)


class ReplayedFinding(BaseModel):
    """Recorded versus replayed outcome of one finding."""

    finding_id: str
    recorded_outcome: RuleOutcome
    original_outcome: RuleOutcome
    replayed_outcome: RuleOutcome
    triggered_rule_ids: list[str]
    explanations: list[str]
    matches_original: bool


class ReplayResult(BaseModel):
    """Historical replay of an inspection against its recorded rule version."""

    inspection_id: str
    rule_version_id: str
    content_hash: str
    recorded_status: InspectionStatus
    replayed_status: InspectionStatus
    consistent: bool
    findings: list[ReplayedFinding]

"""Rule version and rule schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from oos_engine.models.rule_version import RuleCategory, RuleOutcome, RuleVersionStatus


class RuleVersionCreate(BaseModel):
    """Schema for creating a DRAFT rule version."""

    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    effective_start: datetime
    effective_end: datetime | None = None
    source_ids: list[str] = Field(default_factory=list)
    # Omit for the caller's org; set ``global_version`` for a version every org can use
    global_version: bool = False


class RuleCreate(BaseModel):
    """Schema for adding a rule to a DRAFT version."""

    category: RuleCategory
    component_code: str | None = Field(None, max_length=50)
    title: str = Field(min_length=1, max_length=255)
    condition_tree: dict[str, Any]
    outcome: RuleOutcome
    is_triage_only: bool = False
    rule_code: str | None = Field(None, max_length=50)
    citation_text: str | None = None
    citation_url: str | None = Field(None, max_length=500)
    explanation_template: str | None = None


class RuleUpdate(BaseModel):
    """Schema for editing a rule of a DRAFT version."""

    category: RuleCategory | None = None
    component_code: str | None = Field(None, max_length=50)
    title: str | None = Field(None, min_length=1, max_length=255)
    condition_tree: dict[str, Any] | None = None
    outcome: RuleOutcome | None = None
    is_triage_only: bool | None = None
    rule_code: str | None = Field(None, max_length=50)
    citation_text: str | None = None
    citation_url: str | None = Field(None, max_length=500)
    explanation_template: str | None = None


class RuleRead(BaseModel):
    """Schema for reading a rule."""

    id: str
    version_id: str
    position: int
    rule_code: str | None
    category: RuleCategory
    component_code: str | None
    title: str
    condition_tree: dict[str, Any]
    outcome: RuleOutcome
    is_triage_only: bool
    citation_text: str | None
    citation_url: str | None
    explanation_template: str | None

    model_config = {"from_attributes": True}


class RuleVersionRead(BaseModel):
    """Schema for reading a rule version with its rules."""

    id: str
    org_id: str | None
    name: str
    description: str | None
    effective_start: datetime
    effective_end: datetime | None
    status: RuleVersionStatus
    enabled: bool
    revision: int
    content_hash: str | None
    created_by: str | None
    activated_at: datetime | None
    activated_by: str | None
    retired_at: datetime | None
    retired_by: str | None
    source_ids: list[str]
    rules: list[RuleRead]
    created_at: datetime

    model_config = {"from_attributes": True}


class RuleVersionSummary(BaseModel):
    """Schema for listing rule versions."""

    id: str
    org_id: str | None
    name: str
    effective_start: datetime
    effective_end: datetime | None
    status: RuleVersionStatus
    enabled: bool
    revision: int
    rule_count: int

    model_config = {"from_attributes": True}


class TransitionRequest(BaseModel):
    """Request body for activate and retire.

    ``expected_revision`` is the revision the caller last read; a
    mismatch means someone else changed the version first.
    """

    expected_revision: int | None = Field(None, ge=1)


class EnabledRequest(BaseModel):
    """Request body for toggling a version's enabled flag."""

    enabled: bool


class ValidationResponse(BaseModel):
    """Dry-run activation check result."""

    version_id: str
    valid: bool
    errors: list[str]

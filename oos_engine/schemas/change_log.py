"""Change log schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from oos_engine.models.change_log import ChangeAction, ChangeEntityType


class ChangeLogEntryRead(BaseModel):
    """Schema for reading a change log entry."""

    id: str
    entity_type: ChangeEntityType
    entity_id: str
    version_id: str | None
    action: ChangeAction
    summary: str
    actor: str
    details: dict[str, Any] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ChangeLogFilter(BaseModel):
    """Filter parameters for querying the change log."""

    entity_type: ChangeEntityType | None = None
    entity_id: str | None = None
    version_id: str | None = None
    action: ChangeAction | None = None
    actor: str | None = None
    limit: int = Field(default=100, le=500)
    offset: int = Field(default=0, ge=0)

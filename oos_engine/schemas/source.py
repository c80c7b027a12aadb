"""Regulatory source schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from oos_engine.models.regulatory_source import SourceType


class SourceCreate(BaseModel):
    """Schema for registering a regulatory source."""

    title: str = Field(min_length=1, max_length=255)
    source_type: SourceType
    url: str | None = Field(None, max_length=500)
    published_date: datetime | None = None
    edition_date: datetime | None = None
    content_hash: str | None = Field(None, max_length=64)
    notes: str | None = None


class SourceUpdate(BaseModel):
    """Schema for editing a regulatory source.

    ``correction_reason`` is required once a rule version references
    the source.
    """

    title: str | None = Field(None, min_length=1, max_length=255)
    source_type: SourceType | None = None
    url: str | None = Field(None, max_length=500)
    published_date: datetime | None = None
    edition_date: datetime | None = None
    content_hash: str | None = Field(None, max_length=64)
    notes: str | None = None
    correction_reason: str | None = Field(None, max_length=2000)


class SourceRead(BaseModel):
    """Schema for reading a regulatory source."""

    id: str
    org_id: str | None
    title: str
    source_type: SourceType
    url: str | None
    published_date: datetime | None
    edition_date: datetime | None
    content_hash: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime | None

    model_config = {"from_attributes": True}

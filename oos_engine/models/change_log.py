"""Append-only change log for rule versions and triage decisions."""

from enum import Enum

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from oos_engine.db.base import Base, TimestampMixin


class ChangeEntityType(str, Enum):
    """Kind of entity a change log entry is keyed by."""

    RULE_VERSION = "RULE_VERSION"
    RULE = "RULE"
    FINDING = "FINDING"
    INSPECTION = "INSPECTION"
    REGULATORY_SOURCE = "REGULATORY_SOURCE"


class ChangeAction(str, Enum):
    """Structured reason for a change log entry."""

    VERSION_CREATED = "VERSION_CREATED"
    VERSION_ACTIVATED = "VERSION_ACTIVATED"
    VERSION_RETIRED = "VERSION_RETIRED"
    VERSION_ENABLED = "VERSION_ENABLED"
    VERSION_DISABLED = "VERSION_DISABLED"
    RULE_ADDED = "RULE_ADDED"
    RULE_UPDATED = "RULE_UPDATED"
    RULE_REMOVED = "RULE_REMOVED"
    TRIAGE_CONFIRMED = "TRIAGE_CONFIRMED"
    TRIAGE_DOWNGRADED = "TRIAGE_DOWNGRADED"
    INSPECTION_CLOSED = "INSPECTION_CLOSED"
    SOURCE_CORRECTED = "SOURCE_CORRECTED"


class ChangeLogEntry(Base, TimestampMixin):
    """Append-only change log entry.

    IMPORTANT: no update or delete path exists for this model, in the
    services or the API. The PostgreSQL migration adds a trigger that
    rejects UPDATE and DELETE at the database level as well.
    """

    __tablename__ = "change_log_entries"

    entity_type: Mapped[ChangeEntityType] = mapped_column(
        String(30),
        nullable=False,
    )
    entity_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        index=True,
    )
    # Rule version the change concerns, when there is one
    version_id: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
        index=True,
    )
    action: Mapped[ChangeAction] = mapped_column(
        String(30),
        nullable=False,
        index=True,
    )
    summary: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    actor: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    details: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<ChangeLogEntry {self.action} by {self.actor} on {self.entity_type}:{self.entity_id}>"

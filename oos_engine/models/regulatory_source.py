"""Regulatory source model: provenance of a rule family."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from oos_engine.db.base import Base, TimestampMixin


class SourceType(str, Enum):
    """Where a rule family comes from."""

    FEDERAL = "FEDERAL"
    CVSA = "CVSA"
    STATE = "STATE"
    COMPANY = "COMPANY"
    OTHER = "OTHER"


class RegulatorySource(Base, TimestampMixin):
    """A publication rule versions are derived from.

    Sources are never deleted while a rule version references them.
    Once referenced, only corrective edits are allowed and each one is
    recorded in the change log.
    """

    __tablename__ = "regulatory_sources"

    org_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    source_type: Mapped[SourceType] = mapped_column(
        String(20),
        nullable=False,
    )
    url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    published_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    edition_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # SHA256 of the publication content, for change detection
    content_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<RegulatorySource {self.source_type}: {self.title}>"

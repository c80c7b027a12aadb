"""Inspection and finding models."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from oos_engine.db.base import Base, TimestampMixin
from oos_engine.models.rule_version import OOS_OUTCOMES, RuleVersion


class InspectionType(str, Enum):
    """Kind of inspection event.

    LEVEL_1..LEVEL_6 follow the CVSA North American Standard levels.
    """

    LEVEL_1 = "LEVEL_1"  # Full inspection
    LEVEL_2 = "LEVEL_2"  # Walk-around driver/vehicle
    LEVEL_3 = "LEVEL_3"  # Driver/credential only
    LEVEL_4 = "LEVEL_4"  # Special inspection
    LEVEL_5 = "LEVEL_5"  # Vehicle only, no driver present
    LEVEL_6 = "LEVEL_6"  # Enhanced, radioactive shipments
    SHOP_PRE_TRIP = "SHOP_PRE_TRIP"
    ROADSIDE = "ROADSIDE"
    ANNUAL = "ANNUAL"


class InspectionStatus(str, Enum):
    """Overall inspection status, always derived from findings."""

    PENDING = "PENDING"
    PASS = "PASS"
    FAIL = "FAIL"
    OOS = "OOS"


class TriageStatus(str, Enum):
    """Triage sub-state of a finding."""

    NONE = "NONE"  # Outcome was authoritative when recorded
    OPEN = "OPEN"  # Awaiting a qualified inspector
    RESOLVED = "RESOLVED"  # Confirmed or downgraded by a human


class Inspection(Base, TimestampMixin):
    """One real-world inspection event.

    ``status`` is never set by a user directly: it is recomputed from
    the findings whenever a finding is recorded or a triage resolved.
    Every such recompute bumps ``revision``, so two writers working
    from different snapshots of the findings cannot both commit.
    """

    __tablename__ = "inspections"

    org_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )
    # Asset identity as resolved by the host application
    asset_ref: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    inspection_type: Mapped[InspectionType] = mapped_column(
        String(30),
        nullable=False,
    )
    rule_version_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("rule_versions.id"),
        nullable=False,
        index=True,
    )
    inspected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    inspector_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    inspector_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    inspector_badge: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    odometer: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    location: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    status: Mapped[InspectionStatus] = mapped_column(
        String(20),
        default=InspectionStatus.PENDING,
        nullable=False,
        index=True,
    )
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    closed_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    revision: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    rule_version: Mapped[RuleVersion] = relationship(lazy="selectin")
    findings: Mapped[list["Finding"]] = relationship(
        back_populates="inspection",
        cascade="all, delete-orphan",
        order_by="Finding.position",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": revision}

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    @property
    def oos_count(self) -> int:
        return sum(1 for f in self.findings if f.outcome in OOS_OUTCOMES)

    def __repr__(self) -> str:
        return f"<Inspection {self.id} {self.inspection_type} asset={self.asset_ref} {self.status}>"


class Finding(Base, TimestampMixin):
    """One observed condition within an inspection.

    Immutable once recorded, except for the triage fields, which the
    triage workflow sets exactly once. ``revision`` makes a second
    resolution from a stale read fail instead of overwriting the first.
    """

    __tablename__ = "findings"

    inspection_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    # A RuleCategory value; selects which rules apply
    finding_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )
    component_code: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    observed_data: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    matched_rule_ids: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    triggered_rule_ids: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    explanations: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    outcome: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    # What the aggregator decided; kept when triage changes ``outcome``
    original_outcome: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    # Defect worth failing the inspection even though nothing is OOS
    defect_noted: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    triage_status: Mapped[TriageStatus] = mapped_column(
        String(20),
        default=TriageStatus.NONE,
        nullable=False,
        index=True,
    )
    triage_resolved_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    triage_resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    triage_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    revision: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    inspection: Mapped[Inspection] = relationship(back_populates="findings")

    __mapper_args__ = {"version_id_col": revision}

    def __repr__(self) -> str:
        return f"<Finding {self.id} {self.finding_type}/{self.component_code} -> {self.outcome}>"


"""Rule version and rule models for the versioned OOS rule sets."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from oos_engine.db.base import Base, BaseNoId, TimestampMixin

if TYPE_CHECKING:
    from oos_engine.models.regulatory_source import RegulatorySource


class RuleVersionStatus(str, Enum):
    """Lifecycle of a rule version. Transitions only move forward."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    RETIRED = "RETIRED"


class RuleCategory(str, Enum):
    """What a rule (and a finding) is about."""

    DRIVER = "DRIVER"
    VEHICLE = "VEHICLE"
    CARGO_SECUREMENT = "CARGO_SECUREMENT"
    HM_DG = "HM_DG"  # Hazardous materials / dangerous goods
    ADMIN = "ADMIN"


class RuleOutcome(str, Enum):
    """Outcome a triggered rule produces for a finding."""

    OOS_DRIVER = "OOS_DRIVER"
    OOS_VEHICLE = "OOS_VEHICLE"
    OOS_CARGO = "OOS_CARGO"
    NOT_OOS = "NOT_OOS"
    TRIAGE = "TRIAGE"


# Most severe first
OOS_OUTCOMES: tuple[RuleOutcome, ...] = (
    RuleOutcome.OOS_DRIVER,
    RuleOutcome.OOS_VEHICLE,
    RuleOutcome.OOS_CARGO,
)

# OOS outcome a TRIAGE-outcome rule confirms to, per category.
# ADMIN findings never put anything out of service.
CATEGORY_OOS_OUTCOME: dict[RuleCategory, RuleOutcome | None] = {
    RuleCategory.DRIVER: RuleOutcome.OOS_DRIVER,
    RuleCategory.VEHICLE: RuleOutcome.OOS_VEHICLE,
    RuleCategory.CARGO_SECUREMENT: RuleOutcome.OOS_CARGO,
    RuleCategory.HM_DG: RuleOutcome.OOS_CARGO,
    RuleCategory.ADMIN: None,
}


class RuleVersionSource(BaseNoId):
    """Association between a rule version and the sources it derives from.

    The RESTRICT foreign key keeps a referenced source from being deleted.
    """

    __tablename__ = "rule_version_sources"

    version_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("rule_versions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    source_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("regulatory_sources.id", ondelete="RESTRICT"),
        primary_key=True,
        index=True,
    )


class RuleVersion(Base, TimestampMixin):
    """A named, dated rule set.

    Created in DRAFT, populated with rules, promoted to ACTIVE and
    eventually RETIRED. RETIRED versions stay around so historical
    inspections can be replayed against the rules they were judged by.

    ``revision`` is the optimistic-lock counter: every ORM flush of a
    lifecycle change checks and bumps it, so two writers racing on the
    same DRAFT cannot both win.
    """

    __tablename__ = "rule_versions"

    # Null means the version is global and usable by every org
    org_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    effective_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    # Open-ended when null
    effective_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    status: Mapped[RuleVersionStatus] = mapped_column(
        String(20),
        default=RuleVersionStatus.DRAFT,
        nullable=False,
        index=True,
    )
    # Independent of status: lets an ACTIVE version be pulled from new
    # evaluations without retiring it
    enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    created_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    activated_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    retired_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    retired_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    # SHA256 of the canonical rule content, fixed at activation
    content_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    revision: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    rules: Mapped[list["Rule"]] = relationship(
        back_populates="version",
        cascade="all, delete-orphan",
        order_by="Rule.position",
        lazy="selectin",
    )
    sources: Mapped[list["RegulatorySource"]] = relationship(
        secondary="rule_version_sources",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": revision}

    @property
    def source_ids(self) -> list[str]:
        return [source.id for source in self.sources]

    @property
    def rule_count(self) -> int:
        return len(self.rules)

    def __repr__(self) -> str:
        state = "enabled" if self.enabled else "disabled"
        return f"<RuleVersion {self.name} {self.status} ({state}) rev={self.revision}>"


class Rule(Base, TimestampMixin):
    """A single OOS rule owned by exactly one rule version."""

    __tablename__ = "rules"

    version_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("rule_versions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Insertion order within the version
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    rule_code: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    category: Mapped[RuleCategory] = mapped_column(
        String(30),
        nullable=False,
        index=True,
    )
    # Maintenance taxonomy code (e.g. VMRS system "013" for brakes).
    # Null makes the rule generic within its category.
    component_code: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    # Condition tree in its JSON wire shape; parsed at activation
    condition_tree: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )
    outcome: Mapped[RuleOutcome] = mapped_column(
        String(20),
        nullable=False,
    )
    is_triage_only: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    citation_text: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    citation_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    explanation_template: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    version: Mapped[RuleVersion] = relationship(back_populates="rules")

    def __repr__(self) -> str:
        return f"<Rule {self.rule_code or self.id} {self.category}/{self.component_code} -> {self.outcome}>"

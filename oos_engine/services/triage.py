"""Triage workflow for findings that need human confirmation.

A finding whose aggregated outcome is TRIAGE opens a triage sub-state.
A qualified inspector resolves it exactly once, either confirming an
OOS outcome the finding's rules can produce or downgrading it to
NOT_OOS. Nothing resolves automatically.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from oos_engine.core.errors import (
    FindingNotFoundError,
    InvalidTransitionError,
    StaleVersionError,
)
from oos_engine.models.change_log import ChangeAction, ChangeEntityType
from oos_engine.models.inspection import Finding, Inspection, TriageStatus
from oos_engine.models.rule_version import RuleOutcome
from oos_engine.rules.aggregator import confirmable_outcomes, derive_inspection_status
from oos_engine.services.audit import record_change
from oos_engine.services.rule_versions import compiled_cache
from oos_engine.utils.time import utc_now

logger = logging.getLogger(__name__)


class TriageService:
    """Service for resolving TRIAGE findings."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_finding(self, finding_id: str, org_id: str | None = None) -> Finding:
        """Get a finding.

        Raises:
            FindingNotFoundError: If no such finding is visible to the org
        """
        result = await self.session.execute(
            select(Finding, Inspection.org_id)
            .join(Inspection, Finding.inspection_id == Inspection.id)
            .where(Finding.id == finding_id)
        )
        row = result.one_or_none()
        if row is None or (org_id is not None and row.org_id != org_id):
            raise FindingNotFoundError(f"Finding not found: {finding_id}")
        return row.Finding

    async def list_open_triage(
        self,
        org_id: str | None = None,
        limit: int = 100,
    ) -> list[Finding]:
        """List findings awaiting triage, oldest first."""
        query = (
            select(Finding)
            .join(Inspection, Finding.inspection_id == Inspection.id)
            .where(Finding.triage_status == TriageStatus.OPEN.value)
            .order_by(Finding.created_at.asc())
            .limit(limit)
        )
        if org_id is not None:
            query = query.where(Inspection.org_id == org_id)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def resolve_triage(
        self,
        finding_id: str,
        resolved_outcome: RuleOutcome,
        actor: str,
        reason: str,
        org_id: str | None = None,
    ) -> Finding:
        """Resolve an open triage finding.

        Args:
            finding_id: Finding in open triage
            resolved_outcome: NOT_OOS, or an OOS outcome the finding's
                matched rules can produce
            actor: Qualified inspector resolving the finding
            reason: Why (e.g. "confirmed on re-measure")

        Returns:
            The resolved Finding

        Raises:
            InvalidTransitionError: If the finding is not in open triage
                or the outcome cannot be confirmed from its rules
            StaleVersionError: If another writer resolved the finding or
                changed its inspection since it was read
            ValueError: If actor or reason is missing
        """
        if not actor or not actor.strip():
            raise ValueError("An actor is required to resolve triage")
        if not reason or not reason.strip():
            raise ValueError("A reason is required to resolve triage")

        finding = await self.get_finding(finding_id, org_id=org_id)
        if finding.triage_status != TriageStatus.OPEN:
            raise InvalidTransitionError(
                f"Finding {finding_id} is not awaiting triage (triage status {finding.triage_status})"
            )

        result = await self.session.execute(
            select(Inspection).where(Inspection.id == finding.inspection_id)
        )
        inspection = result.scalar_one()

        ruleset = compiled_cache.get_or_compile(inspection.rule_version)
        matched = [rule for rule in map(ruleset.get, finding.matched_rule_ids) if rule is not None]
        allowed = confirmable_outcomes(matched)

        resolved_outcome = RuleOutcome(resolved_outcome)
        if resolved_outcome not in allowed:
            raise InvalidTransitionError(
                f"Finding {finding_id} cannot be resolved to {resolved_outcome.value}; "
                f"allowed: {', '.join(sorted(o.value for o in allowed))}"
            )

        previous_status = inspection.status
        finding.outcome = resolved_outcome.value
        finding.triage_status = TriageStatus.RESOLVED.value
        finding.triage_resolved_by = actor
        finding.triage_resolved_at = utc_now()
        finding.triage_reason = reason
        inspection.status = derive_inspection_status(inspection.findings).value
        flag_modified(inspection, "status")
        await self._flush_versioned(finding_id)

        action = (
            ChangeAction.TRIAGE_DOWNGRADED
            if resolved_outcome == RuleOutcome.NOT_OOS
            else ChangeAction.TRIAGE_CONFIRMED
        )
        await record_change(
            self.session,
            entity_type=ChangeEntityType.FINDING,
            entity_id=finding.id,
            version_id=inspection.rule_version_id,
            action=action,
            actor=actor,
            summary=f"Triage resolved to {resolved_outcome.value}: {reason}",
            details={
                "inspection_id": inspection.id,
                "original_outcome": finding.original_outcome,
                "resolved_outcome": resolved_outcome.value,
                "inspection_status_before": previous_status,
                "inspection_status_after": inspection.status,
            },
        )

        await self.session.commit()
        await self.session.refresh(finding)

        logger.info(
            f"Finding {finding.id} triage resolved to {resolved_outcome.value}",
            extra={"inspection_id": inspection.id, "actor": actor, "action": action.value},
        )
        return finding

    async def _flush_versioned(self, finding_id: str) -> None:
        try:
            await self.session.flush()
        except StaleDataError as e:
            await self.session.rollback()
            raise StaleVersionError(
                f"Finding {finding_id} or its inspection was changed by another writer; reload and retry"
            ) from e

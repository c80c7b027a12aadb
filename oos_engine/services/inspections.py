"""Inspection service.

Starts inspections against a rule version, records findings (running the
matcher, evaluator and aggregator synchronously), closes inspections and
replays them against the rules that judged them.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from oos_engine.core.errors import (
    InspectionNotFoundError,
    InvalidTransitionError,
    StaleVersionError,
)
from oos_engine.models.change_log import ChangeAction, ChangeEntityType
from oos_engine.models.inspection import (
    Finding,
    Inspection,
    InspectionStatus,
    InspectionType,
    TriageStatus,
)
from oos_engine.models.rule_version import RuleCategory, RuleOutcome
from oos_engine.rules.aggregator import derive_inspection_status
from oos_engine.rules.engine import evaluate_finding
from oos_engine.schemas.inspection import ReplayedFinding, ReplayResult
from oos_engine.services.audit import record_change
from oos_engine.services.rule_versions import RuleVersionService, compiled_cache
from oos_engine.utils.time import utc_now

logger = logging.getLogger(__name__)


class InspectionService:
    """Service for inspections and their findings."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_inspection(
        self,
        inspection_id: str,
        org_id: str | None = None,
    ) -> Inspection:
        """Get an inspection with its findings.

        Args:
            inspection_id: Inspection ID
            org_id: When given, inspections of other orgs are not found

        Raises:
            InspectionNotFoundError: If no such inspection is visible
        """
        result = await self.session.execute(
            select(Inspection).where(Inspection.id == inspection_id)
        )
        inspection = result.scalar_one_or_none()
        if not inspection or (org_id is not None and inspection.org_id != org_id):
            raise InspectionNotFoundError(f"Inspection not found: {inspection_id}")
        return inspection

    async def list_inspections(
        self,
        org_id: str | None = None,
        asset_ref: str | None = None,
        status: InspectionStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Inspection]:
        """List inspections, most recent first."""
        query = select(Inspection).order_by(Inspection.inspected_at.desc())
        if org_id is not None:
            query = query.where(Inspection.org_id == org_id)
        if asset_ref is not None:
            query = query.where(Inspection.asset_ref == asset_ref)
        if status is not None:
            query = query.where(Inspection.status == status.value)

        result = await self.session.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all())

    async def start_inspection(
        self,
        asset_ref: str,
        inspection_type: InspectionType,
        org_id: str | None = None,
        rule_version_id: str | None = None,
        inspected_at: datetime | None = None,
        inspector_id: str | None = None,
        inspector_name: str | None = None,
        inspector_badge: str | None = None,
        odometer: int | None = None,
        location: str | None = None,
    ) -> Inspection:
        """Start a PENDING inspection pinned to one rule version.

        Args:
            asset_ref: Host-resolved asset identity
            inspection_type: Kind of inspection
            org_id: Host-resolved org identity
            rule_version_id: Version to use; selected when omitted
            inspected_at: When the inspection happens (defaults to now)

        Raises:
            NoActiveRuleVersionError: If no version applies
            AmbiguousRuleVersionError: If several apply under the strict policy
            InvalidTransitionError: If the named version is not enabled and ACTIVE
        """
        inspected_at = inspected_at or utc_now()
        version = await RuleVersionService(self.session).select_version_for_inspection(
            org_id=org_id,
            at=inspected_at,
            version_id=rule_version_id,
        )

        inspection = Inspection(
            org_id=org_id,
            asset_ref=asset_ref,
            inspection_type=InspectionType(inspection_type).value,
            rule_version_id=version.id,
            inspected_at=inspected_at,
            inspector_id=inspector_id,
            inspector_name=inspector_name,
            inspector_badge=inspector_badge,
            odometer=odometer,
            location=location,
            status=InspectionStatus.PENDING.value,
            findings=[],
        )
        self.session.add(inspection)
        await self.session.commit()
        await self.session.refresh(inspection)

        logger.info(
            f"Started inspection of {asset_ref} with rule version {version.name}",
            extra={"inspection_id": inspection.id, "actor": inspector_id},
        )
        return inspection

    async def record_finding(
        self,
        inspection_id: str,
        finding_type: RuleCategory,
        observed_data: dict[str, Any],
        component_code: str | None = None,
        defect_noted: bool = False,
        notes: str | None = None,
        org_id: str | None = None,
    ) -> Finding:
        """Record a finding and evaluate it.

        Findings are always judged by the inspection's own rule version,
        even if it was disabled or retired after the inspection started.

        Args:
            inspection_id: Inspection the finding belongs to
            finding_type: Rule category of the finding
            observed_data: Observed data payload
            component_code: Component the finding is about
            defect_noted: Inspector marked a defect that is not OOS
            notes: Free-text notes

        Returns:
            The evaluated Finding

        Raises:
            InvalidTransitionError: If the inspection is closed
            StaleVersionError: If another writer changed the inspection
                since it was read
        """
        inspection = await self.get_inspection(inspection_id, org_id=org_id)
        if inspection.is_closed:
            raise InvalidTransitionError(f"Inspection {inspection_id} is closed")

        ruleset = compiled_cache.get_or_compile(inspection.rule_version)
        category = RuleCategory(finding_type).value
        evaluation = evaluate_finding(ruleset, category, component_code, observed_data)

        finding = Finding(
            position=len(inspection.findings),
            finding_type=category,
            component_code=component_code,
            observed_data=observed_data,
            matched_rule_ids=evaluation.matched_rule_ids,
            triggered_rule_ids=evaluation.triggered_rule_ids,
            explanations=evaluation.explanations,
            outcome=evaluation.outcome.value,
            original_outcome=evaluation.outcome.value,
            defect_noted=defect_noted or evaluation.defect_noted,
            notes=notes,
            triage_status=(
                TriageStatus.OPEN.value
                if evaluation.requires_confirmation
                else TriageStatus.NONE.value
            ),
        )
        inspection.findings.append(finding)
        inspection.status = derive_inspection_status(inspection.findings).value
        flag_modified(inspection, "status")

        await self._flush_versioned(inspection_id)
        await self.session.commit()
        await self.session.refresh(finding)

        logger.info(
            f"Recorded {category}/{component_code} finding: {evaluation.outcome.value} "
            f"({len(evaluation.triggered_rule_ids)} of {len(evaluation.matched_rule_ids)} rules triggered)",
            extra={"inspection_id": inspection.id},
        )
        return finding

    async def close_inspection(
        self,
        inspection_id: str,
        actor: str,
        org_id: str | None = None,
    ) -> Inspection:
        """Close an inspection; no findings can be recorded afterwards.

        Raises:
            InvalidTransitionError: If already closed or triage is still open
            StaleVersionError: If another writer changed the inspection
                since it was read
        """
        if not actor or not actor.strip():
            raise ValueError("An actor is required to close an inspection")

        inspection = await self.get_inspection(inspection_id, org_id=org_id)
        if inspection.is_closed:
            raise InvalidTransitionError(f"Inspection {inspection_id} is already closed")

        open_triage = [f.id for f in inspection.findings if f.triage_status == TriageStatus.OPEN]
        if open_triage:
            raise InvalidTransitionError(
                f"Inspection {inspection_id} has {len(open_triage)} finding(s) awaiting triage"
            )

        inspection.status = derive_inspection_status(inspection.findings).value
        inspection.closed_at = utc_now()
        inspection.closed_by = actor
        await self._flush_versioned(inspection_id)

        await record_change(
            self.session,
            entity_type=ChangeEntityType.INSPECTION,
            entity_id=inspection.id,
            version_id=inspection.rule_version_id,
            action=ChangeAction.INSPECTION_CLOSED,
            actor=actor,
            summary=f"Closed inspection of {inspection.asset_ref}: {inspection.status}",
            details={
                "status": inspection.status,
                "findings": len(inspection.findings),
                "oos_findings": inspection.oos_count,
            },
        )

        await self.session.commit()
        await self.session.refresh(inspection)
        return inspection

    async def replay_inspection(
        self,
        inspection_id: str,
        org_id: str | None = None,
    ) -> ReplayResult:
        """Re-evaluate every finding against the inspection's rule version.

        Works for RETIRED versions too. Nothing is written: the result
        only reports recorded versus replayed outcomes.
        """
        inspection = await self.get_inspection(inspection_id, org_id=org_id)
        ruleset = compiled_cache.get_or_compile(inspection.rule_version)

        replayed: list[ReplayedFinding] = []
        for finding in inspection.findings:
            evaluation = evaluate_finding(
                ruleset,
                finding.finding_type,
                finding.component_code,
                finding.observed_data,
            )
            replayed.append(
                ReplayedFinding(
                    finding_id=finding.id,
                    recorded_outcome=RuleOutcome(finding.outcome),
                    original_outcome=RuleOutcome(finding.original_outcome),
                    replayed_outcome=evaluation.outcome,
                    triggered_rule_ids=evaluation.triggered_rule_ids,
                    explanations=evaluation.explanations,
                    matches_original=(
                        evaluation.outcome == finding.original_outcome
                        and evaluation.triggered_rule_ids == list(finding.triggered_rule_ids)
                    ),
                )
            )

        return ReplayResult(
            inspection_id=inspection.id,
            rule_version_id=ruleset.version_id,
            content_hash=ruleset.content_hash,
            recorded_status=InspectionStatus(inspection.status),
            replayed_status=derive_inspection_status(inspection.findings),
            consistent=all(f.matches_original for f in replayed),
            findings=replayed,
        )

    async def _flush_versioned(self, inspection_id: str) -> None:
        try:
            await self.session.flush()
        except StaleDataError as e:
            await self.session.rollback()
            raise StaleVersionError(
                f"Inspection {inspection_id} was changed by another writer; reload and retry"
            ) from e

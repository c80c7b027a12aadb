"""Inspection API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from oos_engine.api.deps import CurrentActor, DbSession, OrgId
from oos_engine.models.inspection import Finding, Inspection, InspectionStatus
from oos_engine.schemas.inspection import (
    FindingCreate,
    FindingRead,
    InspectionCreate,
    InspectionRead,
    ReplayResult,
)
from oos_engine.services.inspections import InspectionService

router = APIRouter(prefix="/inspections", tags=["inspections"])


@router.post("", response_model=InspectionRead, status_code=status.HTTP_201_CREATED)
async def start_inspection(
    request: InspectionCreate,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> Inspection:
    """Start an inspection pinned to a rule version."""
    service = InspectionService(db)
    return await service.start_inspection(
        asset_ref=request.asset_ref,
        inspection_type=request.inspection_type,
        org_id=org_id,
        rule_version_id=request.rule_version_id,
        inspected_at=request.inspected_at,
        inspector_id=request.inspector_id or actor,
        inspector_name=request.inspector_name,
        inspector_badge=request.inspector_badge,
        odometer=request.odometer,
        location=request.location,
    )


@router.get("", response_model=list[InspectionRead])
async def list_inspections(
    db: DbSession,
    org_id: OrgId,
    asset_ref: str | None = None,
    status_filter: Annotated[InspectionStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[Inspection]:
    """List inspections of the caller's org."""
    service = InspectionService(db)
    return await service.list_inspections(
        org_id=org_id,
        asset_ref=asset_ref,
        status=status_filter,
        limit=limit,
        offset=offset,
    )


@router.get("/{inspection_id}", response_model=InspectionRead)
async def get_inspection(
    inspection_id: str,
    db: DbSession,
    org_id: OrgId,
) -> Inspection:
    """Get an inspection with its findings."""
    return await InspectionService(db).get_inspection(inspection_id, org_id=org_id)


@router.post(
    "/{inspection_id}/findings",
    response_model=FindingRead,
    status_code=status.HTTP_201_CREATED,
)
async def record_finding(
    inspection_id: str,
    request: FindingCreate,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> Finding:
    """Record a finding; it is evaluated immediately."""
    service = InspectionService(db)
    return await service.record_finding(
        inspection_id,
        finding_type=request.finding_type,
        component_code=request.component_code,
        observed_data=request.observed_data,
        defect_noted=request.defect_noted,
        notes=request.notes,
        org_id=org_id,
    )


@router.post("/{inspection_id}/close", response_model=InspectionRead)
async def close_inspection(
    inspection_id: str,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> Inspection:
    """Close an inspection."""
    service = InspectionService(db)
    try:
        return await service.close_inspection(inspection_id, actor=actor, org_id=org_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{inspection_id}/replay", response_model=ReplayResult)
async def replay_inspection(
    inspection_id: str,
    db: DbSession,
    org_id: OrgId,
) -> ReplayResult:
    """Re-evaluate an inspection against the rule version that judged it."""
    return await InspectionService(db).replay_inspection(inspection_id, org_id=org_id)

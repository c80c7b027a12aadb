"""Triage API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from oos_engine.api.deps import CurrentActor, DbSession, OrgId
from oos_engine.models.inspection import Finding
from oos_engine.schemas.inspection import FindingRead, ResolveTriageRequest
from oos_engine.services.triage import TriageService

router = APIRouter(tags=["triage"])


@router.get("/triage/findings", response_model=list[FindingRead])
async def list_open_triage(
    db: DbSession,
    org_id: OrgId,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[Finding]:
    """List findings awaiting human confirmation."""
    return await TriageService(db).list_open_triage(org_id=org_id, limit=limit)


@router.post("/findings/{finding_id}/resolve-triage", response_model=FindingRead)
async def resolve_triage(
    finding_id: str,
    request: ResolveTriageRequest,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> Finding:
    """Confirm or downgrade a TRIAGE finding."""
    service = TriageService(db)
    try:
        return await service.resolve_triage(
            finding_id,
            resolved_outcome=request.resolved_outcome,
            actor=actor,
            reason=request.reason,
            org_id=org_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

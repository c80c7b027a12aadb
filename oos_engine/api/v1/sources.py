"""Regulatory source API endpoints."""

from fastapi import APIRouter, HTTPException, status

from oos_engine.api.deps import CurrentActor, DbSession, OrgId
from oos_engine.core.errors import SourceNotFoundError
from oos_engine.models.regulatory_source import RegulatorySource, SourceType
from oos_engine.schemas.source import SourceCreate, SourceRead, SourceUpdate
from oos_engine.services.sources import SourceService

router = APIRouter(prefix="/sources", tags=["sources"])


async def _get_visible_source(
    service: SourceService,
    source_id: str,
    org_id: str | None,
) -> RegulatorySource:
    source = await service.get_source(source_id)
    if org_id is not None and source.org_id not in (None, org_id):
        raise SourceNotFoundError(f"Regulatory source not found: {source_id}")
    return source


@router.get("", response_model=list[SourceRead])
async def list_sources(
    db: DbSession,
    org_id: OrgId,
    source_type: SourceType | None = None,
) -> list[RegulatorySource]:
    """List regulatory sources visible to the caller's org."""
    return await SourceService(db).list_sources(org_id=org_id, source_type=source_type)


@router.post("", response_model=SourceRead, status_code=status.HTTP_201_CREATED)
async def create_source(
    request: SourceCreate,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> RegulatorySource:
    """Register a regulatory source."""
    return await SourceService(db).create_source(org_id=org_id, **request.model_dump())


@router.patch("/{source_id}", response_model=SourceRead)
async def update_source(
    source_id: str,
    request: SourceUpdate,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> RegulatorySource:
    """Edit a source; referenced sources need a correction_reason."""
    service = SourceService(db)
    await _get_visible_source(service, source_id, org_id)

    changes = request.model_dump(exclude_unset=True)
    correction_reason = changes.pop("correction_reason", None)
    try:
        return await service.update_source(
            source_id,
            actor=actor,
            changes=changes,
            correction_reason=correction_reason,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{source_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_source(
    source_id: str,
    db: DbSession,
    actor: CurrentActor,
    org_id: OrgId,
) -> None:
    """Delete a source no rule version references."""
    service = SourceService(db)
    await _get_visible_source(service, source_id, org_id)
    await service.delete_source(source_id)

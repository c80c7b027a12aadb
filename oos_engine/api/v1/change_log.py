"""Change log API endpoints (read-only)."""

from typing import Annotated

from fastapi import APIRouter, Query

from oos_engine.api.deps import DbSession
from oos_engine.models.change_log import ChangeAction, ChangeEntityType, ChangeLogEntry
from oos_engine.schemas.change_log import ChangeLogEntryRead, ChangeLogFilter
from oos_engine.services.audit import ChangeLogService

router = APIRouter(prefix="/change-log", tags=["change-log"])


@router.get("", response_model=list[ChangeLogEntryRead])
async def list_change_log(
    db: DbSession,
    entity_type: ChangeEntityType | None = None,
    entity_id: str | None = None,
    version_id: str | None = None,
    action: ChangeAction | None = None,
    actor: str | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[ChangeLogEntry]:
    """Query change log entries, newest first."""
    filters = ChangeLogFilter(
        entity_type=entity_type,
        entity_id=entity_id,
        version_id=version_id,
        action=action,
        actor=actor,
        limit=limit,
        offset=offset,
    )
    return await ChangeLogService(db).get_entries(filters)

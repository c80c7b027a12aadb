"""Change log service for the append-only audit trail."""

from typing import Any

from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

from oos_engine.core.logging import audit_logger
from oos_engine.models.change_log import ChangeAction, ChangeEntityType, ChangeLogEntry
from oos_engine.schemas.change_log import ChangeLogFilter

# Audit log lines waiting for their transaction to commit
PENDING_AUDIT_KEY = "pending_audit"


async def record_change(
    session: AsyncSession,
    entity_type: ChangeEntityType,
    entity_id: str,
    action: ChangeAction,
    actor: str,
    summary: str,
    version_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> ChangeLogEntry:
    """Add a change log entry to the caller's transaction.

    This is the only way entries are created. The entry is flushed but
    not committed: it lands together with the change it describes, or
    not at all. The matching ``audit`` log line is only written once the
    transaction commits.

    Args:
        session: Database session holding the change
        entity_type: Kind of entity changed
        entity_id: ID of the changed entity
        action: What happened
        actor: Who did it (host-resolved identity)
        summary: Human-readable description
        version_id: Rule version the change concerns, if any
        details: Additional context as JSON

    Returns:
        The pending ChangeLogEntry
    """
    entry = ChangeLogEntry(
        entity_type=entity_type.value,
        entity_id=entity_id,
        version_id=version_id,
        action=action.value,
        summary=summary,
        actor=actor,
        details=details,
    )

    session.add(entry)
    await session.flush()

    session.info.setdefault(PENDING_AUDIT_KEY, []).append({
        "action": action.value,
        "actor": actor,
        "entity_type": entity_type.value,
        "entity_id": entity_id,
        "summary": summary,
        "details": details,
    })

    return entry


@event.listens_for(Session, "after_commit")
def _log_committed_changes(session: Session) -> None:
    for line in session.info.pop(PENDING_AUDIT_KEY, []):
        audit_logger.log(**line)


@event.listens_for(Session, "after_transaction_end")
def _discard_uncommitted_changes(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is None:
        session.info.pop(PENDING_AUDIT_KEY, None)


class ChangeLogService:
    """Service for querying the change log.

    Note: This service only provides read operations.
    Entries are created via record_change().
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_entries(
        self,
        filters: ChangeLogFilter,
    ) -> list[ChangeLogEntry]:
        """Query change log entries with optional filters, newest first.

        Args:
            filters: Filter parameters

        Returns:
            List of matching entries
        """
        query = select(ChangeLogEntry).order_by(ChangeLogEntry.created_at.desc())

        if filters.entity_type:
            query = query.where(ChangeLogEntry.entity_type == filters.entity_type.value)
        if filters.entity_id:
            query = query.where(ChangeLogEntry.entity_id == filters.entity_id)
        if filters.version_id:
            query = query.where(ChangeLogEntry.version_id == filters.version_id)
        if filters.action:
            query = query.where(ChangeLogEntry.action == filters.action.value)
        if filters.actor:
            query = query.where(ChangeLogEntry.actor == filters.actor)

        query = query.offset(filters.offset).limit(filters.limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_entry_by_id(self, entry_id: str) -> ChangeLogEntry | None:
        """Get a single entry by ID."""
        result = await self.session.execute(
            select(ChangeLogEntry).where(ChangeLogEntry.id == entry_id)
        )
        return result.scalar_one_or_none()

    async def get_entity_history(
        self,
        entity_type: ChangeEntityType,
        entity_id: str,
        limit: int = 100,
    ) -> list[ChangeLogEntry]:
        """Get the change history of one entity, oldest first.

        Args:
            entity_type: Type of entity
            entity_id: ID of entity
            limit: Maximum entries to return

        Returns:
            List of entries for the entity
        """
        result = await self.session.execute(
            select(ChangeLogEntry)
            .where(ChangeLogEntry.entity_type == entity_type.value)
            .where(ChangeLogEntry.entity_id == entity_id)
            .order_by(ChangeLogEntry.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_entries(
        self,
        entity_id: str,
        action: ChangeAction | None = None,
    ) -> int:
        """Count entries for an entity, optionally for one action."""
        query = (
            select(func.count())
            .select_from(ChangeLogEntry)
            .where(ChangeLogEntry.entity_id == entity_id)
        )
        if action is not None:
            query = query.where(ChangeLogEntry.action == action.value)

        result = await self.session.execute(query)
        return result.scalar_one()

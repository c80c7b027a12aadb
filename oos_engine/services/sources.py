"""Regulatory source service."""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from oos_engine.core.errors import SourceInUseError, SourceNotFoundError
from oos_engine.models.change_log import ChangeAction, ChangeEntityType
from oos_engine.models.regulatory_source import RegulatorySource, SourceType
from oos_engine.models.rule_version import RuleVersionSource
from oos_engine.services.audit import record_change

logger = logging.getLogger(__name__)

EDITABLE_SOURCE_FIELDS = frozenset({
    "title",
    "source_type",
    "url",
    "published_date",
    "edition_date",
    "content_hash",
    "notes",
})
REQUIRED_SOURCE_FIELDS = frozenset({"title", "source_type"})


class SourceService:
    """Service for managing regulatory sources.

    A source referenced by any rule version is protected: it cannot be
    deleted, and edits to it are corrections that need a reason and are
    written to the change log.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_source(self, source_id: str) -> RegulatorySource:
        result = await self.session.execute(
            select(RegulatorySource).where(RegulatorySource.id == source_id)
        )
        source = result.scalar_one_or_none()
        if not source:
            raise SourceNotFoundError(f"Regulatory source not found: {source_id}")
        return source

    async def list_sources(
        self,
        org_id: str | None = None,
        source_type: SourceType | None = None,
    ) -> list[RegulatorySource]:
        """List sources visible to an org (its own plus global ones)."""
        query = select(RegulatorySource).order_by(RegulatorySource.created_at.desc())
        if org_id is not None:
            query = query.where(
                or_(RegulatorySource.org_id == org_id, RegulatorySource.org_id.is_(None))
            )
        if source_type is not None:
            query = query.where(RegulatorySource.source_type == source_type.value)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def reference_count(self, source_id: str) -> int:
        """Number of rule versions referencing a source."""
        result = await self.session.execute(
            select(func.count())
            .select_from(RuleVersionSource)
            .where(RuleVersionSource.source_id == source_id)
        )
        return result.scalar_one()

    async def create_source(
        self,
        title: str,
        source_type: SourceType,
        org_id: str | None = None,
        url: str | None = None,
        published_date: datetime | None = None,
        edition_date: datetime | None = None,
        content_hash: str | None = None,
        notes: str | None = None,
    ) -> RegulatorySource:
        """Register a regulatory source."""
        source = RegulatorySource(
            org_id=org_id,
            title=title,
            source_type=SourceType(source_type).value,
            url=url,
            published_date=published_date,
            edition_date=edition_date,
            content_hash=content_hash,
            notes=notes,
        )
        self.session.add(source)
        await self.session.commit()
        await self.session.refresh(source)

        logger.info(f"Registered regulatory source {source.id} ({title})")
        return source

    async def update_source(
        self,
        source_id: str,
        actor: str,
        changes: dict[str, Any],
        correction_reason: str | None = None,
    ) -> RegulatorySource:
        """Edit a source.

        Raises:
            ValueError: If a referenced source is edited without a reason,
                or a field cannot be edited or set to null
        """
        unknown = set(changes) - EDITABLE_SOURCE_FIELDS
        if unknown:
            raise ValueError(f"Source field(s) cannot be edited: {', '.join(sorted(unknown))}")
        cleared = sorted(key for key in REQUIRED_SOURCE_FIELDS & set(changes) if changes[key] is None)
        if cleared:
            raise ValueError(f"Source field(s) cannot be null: {', '.join(cleared)}")

        source = await self.get_source(source_id)
        references = await self.reference_count(source_id)

        if references and not (correction_reason and correction_reason.strip()):
            raise ValueError(
                f"Source {source_id} is referenced by {references} rule version(s); "
                "edits require a correction_reason"
            )

        if "source_type" in changes:
            changes["source_type"] = SourceType(changes["source_type"]).value

        before = {
            key: _jsonable(getattr(source, key))
            for key in changes
        }
        for key, value in changes.items():
            setattr(source, key, value)

        if references:
            await record_change(
                self.session,
                entity_type=ChangeEntityType.REGULATORY_SOURCE,
                entity_id=source.id,
                action=ChangeAction.SOURCE_CORRECTED,
                actor=actor,
                summary=f"Corrected regulatory source {source.title}",
                details={
                    "reason": correction_reason,
                    "before": before,
                    "after": {key: _jsonable(value) for key, value in changes.items()},
                },
            )

        await self.session.commit()
        await self.session.refresh(source)
        return source

    async def delete_source(self, source_id: str) -> None:
        """Delete an unreferenced source.

        Raises:
            SourceInUseError: If any rule version references the source
        """
        source = await self.get_source(source_id)
        references = await self.reference_count(source_id)
        if references:
            raise SourceInUseError(
                f"Source {source_id} is referenced by {references} rule version(s) and cannot be deleted"
            )

        await self.session.delete(source)
        await self.session.commit()


def _jsonable(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value

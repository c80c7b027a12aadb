"""Seed the starter rule set from its YAML definition.

The starter rules go through the same DRAFT -> ACTIVE path as any
other version, so activation checks and change log entries apply.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from oos_engine.core.config import settings
from oos_engine.models.regulatory_source import RegulatorySource, SourceType
from oos_engine.models.rule_version import RuleVersion, RuleVersionStatus
from oos_engine.rules.loader import load_ruleset
from oos_engine.services.rule_versions import RuleVersionService
from oos_engine.services.sources import SourceService

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


async def seed_starter_rules(
    session: AsyncSession,
    actor: str = SYSTEM_ACTOR,
    org_id: str | None = None,
    filename: str | None = None,
    rulesets_dir: Path | None = None,
) -> RuleVersion:
    """Create and activate the starter rule version if it does not exist.

    Idempotent per (name, org): an existing version of the same name is
    returned untouched. Creation and each rule commit separately, so a
    failed run can leave a DRAFT behind; that DRAFT is reported with a
    warning and returned as is, never activated with a partial rule list.

    Args:
        session: Database session
        actor: Recorded as creator and activator
        org_id: Owning org; None seeds a global version
        filename: Ruleset file (defaults to settings.starter_ruleset_filename)
        rulesets_dir: Directory holding the file (defaults to the configured one)

    Returns:
        The seeded (or already present) rule version
    """
    ruleset, ruleset_hash = load_ruleset(filename or settings.starter_ruleset_filename, rulesets_dir)
    name = ruleset["name"]

    query = select(RuleVersion).where(RuleVersion.name == name)
    if org_id is None:
        query = query.where(RuleVersion.org_id.is_(None))
    else:
        query = query.where(RuleVersion.org_id == org_id)
    existing = (await session.execute(query)).scalars().first()
    if existing is not None:
        if existing.status == RuleVersionStatus.DRAFT:
            logger.warning(
                f"Starter rule version {name} is still a DRAFT from an earlier run; "
                "skipping seeding. Finish or remove it, then seed again",
                extra={"version_id": existing.id},
            )
        else:
            logger.info(f"Starter rule version {name} already present ({existing.status})")
        return existing

    source = await _get_or_create_source(session, ruleset.get("source") or {}, org_id)

    versions = RuleVersionService(session)
    version = await versions.create_version(
        name=name,
        description=ruleset.get("description"),
        effective_start=_parse_datetime(ruleset["effective_start"]),
        effective_end=_parse_datetime(ruleset.get("effective_end")),
        source_ids=[source.id] if source else [],
        actor=actor,
        org_id=org_id,
    )

    for rule in ruleset.get("rules", []):
        await versions.add_rule(
            version_id=version.id,
            category=rule["category"],
            component_code=rule.get("component_code"),
            title=rule["title"],
            condition_tree=rule["condition"],
            outcome=rule["outcome"],
            is_triage_only=rule.get("is_triage_only", False),
            rule_code=rule.get("rule_code"),
            citation_text=rule.get("citation_text"),
            citation_url=rule.get("citation_url"),
            explanation_template=rule.get("explanation_template"),
            actor=actor,
        )

    version = await versions.activate_version(version.id, actor=actor)
    logger.info(
        f"Seeded starter rule version {name} with {version.rule_count} rules "
        f"(ruleset sha256 {ruleset_hash[:12]})"
    )
    return version


async def _get_or_create_source(
    session: AsyncSession,
    data: dict[str, Any],
    org_id: str | None,
) -> RegulatorySource | None:
    if not data.get("title"):
        return None

    query = select(RegulatorySource).where(RegulatorySource.title == data["title"])
    if org_id is None:
        query = query.where(RegulatorySource.org_id.is_(None))
    else:
        query = query.where(RegulatorySource.org_id == org_id)
    existing = (await session.execute(query)).scalars().first()
    if existing is not None:
        return existing

    return await SourceService(session).create_source(
        title=data["title"],
        source_type=SourceType(data.get("source_type", SourceType.OTHER.value)),
        org_id=org_id,
        url=data.get("url"),
        published_date=_parse_datetime(data.get("published_date")),
        edition_date=_parse_datetime(data.get("edition_date")),
        notes=data.get("notes"),
    )

"""Tests for seeding the starter rule set."""

import logging

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from oos_engine.models.change_log import ChangeAction
from oos_engine.models.regulatory_source import RegulatorySource, SourceType
from oos_engine.models.rule_version import RuleVersion, RuleVersionStatus
from oos_engine.services.audit import ChangeLogService
from oos_engine.services.seeding import SYSTEM_ACTOR, seed_starter_rules
from tests.conftest import create_version_with_rule


@pytest.mark.asyncio
async def test_seed_creates_active_version(async_session: AsyncSession) -> None:
    """The starter rules land as an ACTIVE global version with its source."""
    version = await seed_starter_rules(async_session)

    assert version.name == "CVSA_OOSC_2025_TRIAGE"
    assert version.status == RuleVersionStatus.ACTIVE
    assert version.org_id is None
    assert version.rule_count == 7
    assert version.activated_by == SYSTEM_ACTOR
    assert len(version.sources) == 1
    assert version.sources[0].source_type == SourceType.CVSA
    assert all(rule.is_triage_only for rule in version.rules)


@pytest.mark.asyncio
async def test_seed_goes_through_activation(async_session: AsyncSession) -> None:
    """Seeding leaves the same change log trail as a manual activation."""
    version = await seed_starter_rules(async_session)
    change_log = ChangeLogService(async_session)

    assert await change_log.count_entries(version.id, ChangeAction.VERSION_CREATED) == 1
    assert await change_log.count_entries(version.id, ChangeAction.VERSION_ACTIVATED) == 1


@pytest.mark.asyncio
async def test_seed_is_idempotent(async_session: AsyncSession) -> None:
    """Seeding twice neither duplicates the version nor the source."""
    first = await seed_starter_rules(async_session)
    second = await seed_starter_rules(async_session)

    assert first.id == second.id
    versions = await async_session.execute(select(func.count()).select_from(RuleVersion))
    sources = await async_session.execute(select(func.count()).select_from(RegulatorySource))
    assert versions.scalar_one() == 1
    assert sources.scalar_one() == 1


@pytest.mark.asyncio
async def test_seed_per_org(async_session: AsyncSession) -> None:
    """An org gets its own copy next to the global one."""
    global_version = await seed_starter_rules(async_session)
    org_version = await seed_starter_rules(async_session, actor="fleet-admin", org_id="org-acme")

    assert org_version.id != global_version.id
    assert org_version.org_id == "org-acme"
    assert org_version.content_hash != global_version.content_hash


@pytest.mark.asyncio
async def test_leftover_draft_is_reported_not_activated(
    async_session: AsyncSession, caplog: pytest.LogCaptureFixture
) -> None:
    """A DRAFT left by a failed run is skipped with a warning."""
    draft = await create_version_with_rule(
        async_session, name="CVSA_OOSC_2025_TRIAGE", org_id=None, activate=False
    )

    with caplog.at_level(logging.WARNING, logger="oos_engine.services.seeding"):
        version = await seed_starter_rules(async_session)

    assert version.id == draft.id
    assert version.status == RuleVersionStatus.DRAFT
    assert version.rule_count == 1
    assert "still a DRAFT" in caplog.text

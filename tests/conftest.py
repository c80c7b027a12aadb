"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from oos_engine.db.base import Base
from oos_engine.db.session import get_db
from oos_engine.main import app
from oos_engine.models.regulatory_source import RegulatorySource, SourceType
from oos_engine.models.rule_version import RuleCategory, RuleOutcome, RuleVersion
from oos_engine.services.rule_versions import RuleVersionService, compiled_cache


# Use SQLite for testing (simpler than spinning up postgres)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ACTOR = "inspector-7"
ORG = "org-acme"

EFFECTIVE_START = datetime(2025, 4, 1, tzinfo=timezone.utc)
INSPECTED_AT = datetime(2025, 6, 15, 9, 30, tzinfo=timezone.utc)

# R1: brake lining under 3 mm puts the vehicle out of service
LINING_UNDER_3MM: dict[str, Any] = {
    "type": "numeric_compare",
    "field": "lining_mm",
    "op": "lt",
    "threshold": 3,
}


@pytest.fixture(autouse=True)
def clear_compiled_cache():
    """Keep compiled rule sets from leaking between tests."""
    compiled_cache.clear_cache()
    yield
    compiled_cache.clear_cache()


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def async_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture(scope="function")
async def file_engine(tmp_path):
    """File-backed SQLite engine, for tests that need independent connections."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'oos_engine_test.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
def file_session_maker(file_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory on the file-backed engine."""
    return async_sessionmaker(
        file_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def client(async_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create API test client with overridden dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield async_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def actor_headers() -> dict[str, str]:
    """Identity headers the host would set."""
    return {"X-Actor-Id": ACTOR, "X-Org-Id": ORG}


@pytest.fixture
async def cvsa_source(async_session: AsyncSession) -> RegulatorySource:
    """Create a CVSA regulatory source."""
    source = RegulatorySource(
        title="CVSA 2025 Out-of-Service Criteria",
        source_type=SourceType.CVSA.value,
        url="https://www.cvsa.org/news/2025-oosc-now-in-effect/",
        published_date=EFFECTIVE_START,
    )
    async_session.add(source)
    await async_session.commit()
    await async_session.refresh(source)
    return source


async def create_version_with_rule(
    session: AsyncSession,
    source_ids: list[str] | None = None,
    condition_tree: dict[str, Any] | None = None,
    is_triage_only: bool = False,
    outcome: RuleOutcome = RuleOutcome.OOS_VEHICLE,
    org_id: str | None = ORG,
    name: str = "CVSA_OOSC_2025",
    activate: bool = True,
    effective_start: datetime = EFFECTIVE_START,
) -> RuleVersion:
    """Create a version holding rule R1 (brake lining < 3 mm)."""
    service = RuleVersionService(session)
    version = await service.create_version(
        name=name,
        effective_start=effective_start,
        source_ids=source_ids or [],
        actor=ACTOR,
        org_id=org_id,
    )
    await service.add_rule(
        version_id=version.id,
        category=RuleCategory.VEHICLE,
        component_code="013",
        title="Brake lining below minimum",
        rule_code="R1",
        condition_tree=condition_tree or LINING_UNDER_3MM,
        outcome=outcome,
        is_triage_only=is_triage_only,
        citation_text="CVSA OOSC Part II, Item 1 - Brake Systems",
        actor=ACTOR,
    )
    if activate:
        version = await service.activate_version(version.id, actor=ACTOR)
    return version


@pytest.fixture
async def active_version(async_session: AsyncSession, cvsa_source: RegulatorySource) -> RuleVersion:
    """ACTIVE version with R1 producing OOS_VEHICLE."""
    return await create_version_with_rule(async_session, source_ids=[cvsa_source.id])


@pytest.fixture
async def triage_version(async_session: AsyncSession, cvsa_source: RegulatorySource) -> RuleVersion:
    """ACTIVE version with R1 marked triage-only."""
    return await create_version_with_rule(
        async_session,
        source_ids=[cvsa_source.id],
        is_triage_only=True,
    )

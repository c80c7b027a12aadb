"""Database initialization utilities."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from oos_engine.core.config import settings
from oos_engine.db.base import Base
from oos_engine.db.session import engine
from oos_engine.services.seeding import seed_starter_rules

# Register every model on Base.metadata
import oos_engine.models  # noqa: F401

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    """Create all database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def init_db(session: AsyncSession) -> None:
    """Initialize database with required data.

    Args:
        session: Database session
    """
    if settings.seed_starter_rules:
        await seed_starter_rules(session)
    logger.info("Database initialization complete")

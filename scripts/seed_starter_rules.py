"""Seed the CVSA 2025 starter rule set.

Run after database migration. Creates the regulatory source record and
an ACTIVE rule version through the normal DRAFT -> ACTIVE path; running
it again is a no-op.
"""

import argparse
import asyncio

from oos_engine.core.logging import setup_logging
from oos_engine.db.init_db import create_tables
from oos_engine.db.session import AsyncSessionLocal
from oos_engine.services.seeding import SYSTEM_ACTOR, seed_starter_rules


async def seed(org_id: str | None, actor: str, filename: str | None, create: bool) -> None:
    if create:
        await create_tables()

    async with AsyncSessionLocal() as session:
        version = await seed_starter_rules(
            session,
            actor=actor,
            org_id=org_id,
            filename=filename,
        )

    print(f"Rule version: {version.name} ({version.id})")
    print(f"Status: {version.status}, enabled: {version.enabled}")
    print(f"Rules: {version.rule_count}")
    print(f"Content hash: {version.content_hash}")


def main():
    """Main entry point for starter rule seeding."""
    parser = argparse.ArgumentParser(description="Seed the starter OOS rule set")
    parser.add_argument(
        "--org-id",
        default=None,
        help="Owning org (omit for a global rule version)",
    )
    parser.add_argument(
        "--actor",
        default=SYSTEM_ACTOR,
        help="Actor recorded in the change log",
    )
    parser.add_argument(
        "--ruleset",
        default=None,
        help="Ruleset file name (defaults to the configured starter ruleset)",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create tables first (development databases without migrations)",
    )

    args = parser.parse_args()
    setup_logging()
    asyncio.run(seed(args.org_id, args.actor, args.ruleset, args.create_tables))


if __name__ == "__main__":
    main()

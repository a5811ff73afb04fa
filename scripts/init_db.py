#!/usr/bin/env python
"""Create the back-office schema and seed default approval rules.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --database-url postgresql+asyncpg://...
    python scripts/init_db.py --dry-run
    python scripts/init_db.py --no-seed
"""

import argparse
import asyncio
import sys

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from backoffice_engine.config import get_settings
from backoffice_engine.database import make_session_factory
from backoffice_engine.models import Base
from backoffice_engine.services.approval_rules import DEFAULT_RULES, seed_default_rules


async def init_db(database_url: str, seed: bool) -> int:
    """Create missing tables, then seed rules into an empty rule table."""
    engine = create_async_engine(database_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print(f"  Tables ensured: {len(Base.metadata.tables)}")

        if seed:
            async with make_session_factory(engine)() as session:
                added = await seed_default_rules(session)
                await session.commit()
            print(f"  Approval rules seeded: {added}")
    finally:
        await engine.dispose()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the back-office schema")
    parser.add_argument(
        "--database-url",
        default=get_settings().database_url,
        help="Database URL",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the tables and rules without touching the database",
    )
    parser.add_argument(
        "--no-seed",
        action="store_true",
        help="Skip seeding default approval rules",
    )

    args = parser.parse_args()

    print("Back-office Schema Setup")
    print("=" * 50)
    print(f"Database: {args.database_url.split('@')[-1] if '@' in args.database_url else args.database_url}")
    print()

    if args.dry_run:
        for name in sorted(Base.metadata.tables):
            print(f"  [DRY RUN] Would create table {name}")
        if not args.no_seed:
            for rule in DEFAULT_RULES:
                print(f"  [DRY RUN] Would seed rule: {rule.name}")
        return 0

    try:
        return asyncio.run(init_db(args.database_url, seed=not args.no_seed))
    except SQLAlchemyError as e:
        print(f"ERROR: Schema setup failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

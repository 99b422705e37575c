#!/usr/bin/env python
"""Create the schema and load the demo baseline.

Usage:
    python scripts/seed.py
    python scripts/seed.py --database-url postgresql+asyncpg://...
    python scripts/seed.py --database-url sqlite+aiosqlite:///hr_demo.db
"""

from __future__ import annotations

import argparse
import asyncio

from hr_workflows.config import configure_logging, get_settings
from hr_workflows.database import create_schema, get_engine, make_session_factory
from hr_workflows.seed import DEMO_EMPLOYEE, DEMO_MANAGER, seed_demo


async def seed(database_url: str) -> None:
    """Create missing tables and seed the demo data."""
    print(f"Target database: {database_url.split('@')[1] if '@' in database_url else database_url}")

    engine = get_engine(database_url)
    try:
        await create_schema(engine)
        report = await seed_demo(make_session_factory(engine))
    finally:
        await engine.dispose()

    print("\nResults:")
    print(f"  Leave types created: {report.leave_types_created}")
    print(f"  Salary components created: {report.components_created}")
    print(f"\nDemo employee {DEMO_EMPLOYEE} reports to {DEMO_MANAGER}.")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed the HR demo database")
    parser.add_argument(
        "--database-url",
        type=str,
        default=get_settings().database_url,
        help="Database URL (default: DATABASE_URL from the environment)",
    )
    args = parser.parse_args()

    configure_logging()
    asyncio.run(seed(args.database_url))


if __name__ == "__main__":
    main()

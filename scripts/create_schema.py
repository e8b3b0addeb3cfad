#!/usr/bin/env python
"""Create the billing tables in the database.

Usage:
    python scripts/create_schema.py
    python scripts/create_schema.py --database-url postgresql+asyncpg://...
    python scripts/create_schema.py --dry-run

Existing tables are left untouched.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.schema import CreateTable

from locum_billing.config import get_settings
from locum_billing.models import Base


def print_ddl() -> None:
    """Print CREATE TABLE statements for PostgreSQL."""
    dialect = postgresql.dialect()
    for table in Base.metadata.sorted_tables:
        print(f"{str(CreateTable(table).compile(dialect=dialect)).strip()};\n")


async def create_schema(database_url: str) -> list[str]:
    """Create any missing tables and return the names of all tables."""
    engine = create_async_engine(database_url, echo=False)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()
    return [table.name for table in Base.metadata.sorted_tables]


def main() -> int:
    parser = argparse.ArgumentParser(description="Create billing tables")
    parser.add_argument(
        "--database-url",
        default=get_settings().database_url,
        help="Database URL",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the DDL without executing it",
    )

    args = parser.parse_args()

    print("Schema Setup")
    print("=" * 50)
    print(f"Database: {args.database_url.split('@')[-1] if '@' in args.database_url else args.database_url}")
    print()

    if args.dry_run:
        print_ddl()
        return 0

    try:
        tables = asyncio.run(create_schema(args.database_url))
    except (SQLAlchemyError, OSError) as e:
        print(f"ERROR: Could not create schema: {e}")
        return 1

    for name in tables:
        print(f"  OK  {name}")
    print()
    print(f"Tables ready: {len(tables)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Data Provider Database Setup

Creates, seeds and resets the tables behind the relational data provider.

Usage:
    # Create tables
    uv run python scripts/setup_database.py init

    # Create tables and load the demo records
    uv run python scripts/setup_database.py init --demo

    # Load the demo records into existing tables
    uv run python scripts/setup_database.py seed

    # Drop and recreate all tables
    uv run python scripts/setup_database.py reset --yes

Environment Variables:
    DATABASE_URL    - Connection URL (postgresql://... or sqlite+aiosqlite:///...)
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

# Add project root to path for imports
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from sqlalchemy.ext.asyncio import AsyncEngine  # noqa: E402

from data_provider.core.config import settings  # noqa: E402
from data_provider.core.db import create_async_engine_for, create_sessionmaker  # noqa: E402
from data_provider.core.observability import configure_logging  # noqa: E402
from data_provider.db.models import Base, model_registry  # noqa: E402
from data_provider.providers.seed import default_seed_data  # noqa: E402

_DATETIME_COLUMNS = {"created_at", "updated_at", "published_at", "last_login"}


# ANSI colors for terminal output
class Colors:
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    END = "\033[0m"


def log_info(msg: str) -> None:
    print(f"{Colors.BLUE}[INFO]{Colors.END} {msg}")


def log_success(msg: str) -> None:
    print(f"{Colors.GREEN}[OK]{Colors.END} {msg}")


def log_warning(msg: str) -> None:
    print(f"{Colors.YELLOW}[WARN]{Colors.END} {msg}")


def log_error(msg: str) -> None:
    print(f"{Colors.RED}[ERROR]{Colors.END} {msg}")


def _to_row(record: dict[str, Any]) -> dict[str, Any]:
    row = dict(record)
    for column in _DATETIME_COLUMNS & row.keys():
        if isinstance(row[column], str):
            row[column] = datetime.fromisoformat(row[column])
    return row


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log_success(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


async def drop_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    log_warning("All data provider tables dropped")


async def seed(engine: AsyncEngine) -> int:
    """Insert demo records that are not present yet. Returns rows inserted."""
    models = model_registry()
    session_maker = create_sessionmaker(engine)
    inserted = 0

    async with session_maker() as session:
        for resource, records in default_seed_data().items():
            model = models.get(resource)
            if model is None:
                log_warning(f"No table for seed resource '{resource}', skipped")
                continue
            for record in records:
                if await session.get(model, record["id"]) is not None:
                    continue
                session.add(model(**_to_row(record)))
                inserted += 1
        await session.commit()

    log_success(f"Seeded {inserted} records")
    return inserted


async def run(command: str, url: str, demo: bool) -> int:
    engine = create_async_engine_for(url)
    try:
        if command == "init":
            await create_tables(engine)
            if demo:
                await seed(engine)
        elif command == "seed":
            await seed(engine)
        elif command == "reset":
            await drop_tables(engine)
            await create_tables(engine)
        return 0
    finally:
        await engine.dispose()


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Database setup for the relational data provider",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--url", help="Database URL (overrides DATABASE_URL)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init", help="Create tables")
    init_parser.add_argument("--demo", action="store_true", help="Include demo data")

    subparsers.add_parser("seed", help="Load demo data")

    reset_parser = subparsers.add_parser("reset", help="Drop and recreate tables")
    reset_parser.add_argument(
        "--yes", "-y", dest="force", action="store_true", help="Skip confirmation prompt"
    )

    args = parser.parse_args()
    configure_logging(settings)

    if not args.command:
        parser.print_help()
        return 1

    url = args.url or os.getenv("DATABASE_URL")
    if not url:
        log_error("DATABASE_URL is required")
        log_info("Set it as environment variable or via --url")
        return 2

    if args.command == "reset" and not args.force:
        answer = input("This drops every data provider table. Continue? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            log_info("Aborted")
            return 1

    log_info(f"Running '{args.command}'")
    try:
        return asyncio.run(run(args.command, url, getattr(args, "demo", False)))
    except Exception as e:
        log_error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

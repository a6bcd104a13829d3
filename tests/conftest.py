"""
Pytest configuration and shared fixtures.

Provides:
- AnyIO backend selection for async tests
- Local provider fixtures (recorded or no latency, no persistence)
- Relational provider fixtures backed by a file-based SQLite database
- Deterministic clocks and record factories

Async SQLAlchemy Fixtures:
- sqlite_engine: Function-scoped async engine with all tables created
- relational_provider: RelationalDataProvider bound to sqlite_engine
"""

from __future__ import annotations

import itertools
import sys
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]

# Add project root to path for imports
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402 (import after path setup)
from sqlalchemy.ext.asyncio import AsyncEngine  # noqa: E402 (import after path setup)

from data_provider.core.db import create_async_engine_for, create_sessionmaker  # noqa: E402
from data_provider.db.models import Base  # noqa: E402
from data_provider.domain.query import CreateParams  # noqa: E402
from data_provider.providers.latency import NoDelay  # noqa: E402
from data_provider.providers.local import LocalDataProvider  # noqa: E402
from data_provider.providers.relational import RelationalDataProvider  # noqa: E402

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


# =============================================================================
# AnyIO Backend Configuration
# =============================================================================
# Per AnyIO testing docs: https://anyio.readthedocs.io/en/stable/testing.html
# This fixture ensures async fixtures work with AnyIO's pytest plugin.
@pytest.fixture
def anyio_backend():
    return "asyncio"


# =============================================================================
# Helpers
# =============================================================================


def make_clock(start: datetime = BASE_TIME) -> Callable[[], datetime]:
    """Clock advancing one second per call, so insertion order is unambiguous."""
    ticks = itertools.count()
    return lambda: start + timedelta(seconds=next(ticks))


class RecordingDelay:
    """Delay strategy that records the operations it was awaited for."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def __call__(self, operation: str) -> None:
        self.calls.append(operation)


USERS = [
    {"name": "Alice", "email": "alice@example.com", "role": "admin", "status": "active"},
    {"name": "alice Smith", "email": "smith@example.com", "role": "user", "status": "active"},
    {"name": "Bob", "email": "bob@johnson.io", "role": "user", "status": "inactive"},
    {"name": "John Doe", "email": "jd@example.com", "role": "user", "status": "active"},
]

PRODUCTS = [
    {"name": "Lamp", "price": 10.0, "category": "home", "in_stock": True, "stock": 3},
    {"name": "Chair", "price": 30.0, "category": "home", "in_stock": False, "stock": 0},
    {"name": "Book", "price": 20.0, "category": "books", "in_stock": True, "stock": 9},
]


async def create_all(provider: Any, resource: str, records: list[dict[str, Any]]) -> list[dict]:
    created = []
    for record in records:
        result = await provider.create(resource, CreateParams(data=record))
        created.append(result.data)
    return created


# =============================================================================
# Local provider
# =============================================================================


@pytest.fixture
def recording_delay() -> RecordingDelay:
    return RecordingDelay()


@pytest.fixture
def local_provider(recording_delay: RecordingDelay) -> LocalDataProvider:
    """Empty local provider with no latency and no persistence."""
    return LocalDataProvider(seed_data={}, delay=recording_delay, clock=make_clock())


@pytest.fixture
def empty_local_provider() -> LocalDataProvider:
    return LocalDataProvider(seed_data={}, delay=NoDelay(), clock=make_clock())


# =============================================================================
# Relational provider (SQLite)
# =============================================================================


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'provider.db'}"


@pytest.fixture
async def sqlite_engine(sqlite_url: str, anyio_backend: str) -> AsyncGenerator[AsyncEngine]:
    engine = create_async_engine_for(sqlite_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def relational_provider(sqlite_engine: AsyncEngine) -> RelationalDataProvider:
    return RelationalDataProvider(
        sessionmaker=create_sessionmaker(sqlite_engine), clock=make_clock()
    )

import os
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

# Keep config loading away from the developer's real environment overrides
os.environ.setdefault("APP_ENVIRONMENT", "test")

from src.artifact_store.core.storage.base import StorageBackend  # noqa: E402
from src.artifact_store.core.storage.memory import InMemoryBackend  # noqa: E402
from src.artifact_store.core.storage.relational import RelationalBackend  # noqa: E402
from src.artifact_store.runtime.config.config_data import PostgresConfig  # noqa: E402

SQLITE_URL = "sqlite+aiosqlite://"


class FrozenClock:
    """Controllable time source for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture
async def sqlite_backend(clock: FrozenClock) -> AsyncIterator[RelationalBackend]:
    """Relational backend on an in-memory SQLite database with the schema created."""
    backend = RelationalBackend(
        PostgresConfig(url=SQLITE_URL, create_schema=True), clock=clock
    )
    await backend.connect()
    yield backend
    await backend.close()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def backend(
    request: pytest.FixtureRequest, clock: FrozenClock
) -> AsyncIterator[StorageBackend]:
    """Every backend that can run without external services."""
    if request.param == "memory":
        store: StorageBackend = InMemoryBackend(clock=clock)
    else:
        store = RelationalBackend(
            PostgresConfig(url=SQLITE_URL, create_schema=True), clock=clock
        )
    await store.connect()
    yield store
    await store.close()

"""Pooled connections to the relational backend.

A single :class:`ConnectionManager` is created by the adapter factory and
shared by every kind-scoped relational adapter for the lifetime of the
process. Queries always run on a connection acquired from the pool through
:meth:`ConnectionManager.connection` or :meth:`ConnectionManager.transaction`,
which return the connection to the pool on every exit path.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from src.artifact_store.entities.loader import get_metadata
from src.artifact_store.runtime.config.config_data import (
    DEFAULT_POSTGRES_PORT,
    PostgresConfig,
)


def build_database_url(config: PostgresConfig) -> URL:
    """Build the SQLAlchemy URL for the configured database.

    Args:
        config: Relational backend settings

    Returns:
        The explicit ``url`` when set, otherwise one assembled from the
        host/credential fields with the default port as fallback
    """
    if config.url:
        return make_url(config.url)

    return URL.create(
        drivername=config.driver,
        username=config.user,
        password=config.password or None,
        host=config.host,
        port=config.port or DEFAULT_POSTGRES_PORT,
        database=config.database,
    )


class ConnectionManager:
    """Owns the bounded connection pool of the relational backend."""

    def __init__(self, config: PostgresConfig) -> None:
        self._config = config
        self.url = build_database_url(config)
        self._engine = create_async_engine(
            self.url, echo=config.echo, **self._pool_options()
        )

    def _pool_options(self) -> dict[str, Any]:
        # SQLite engines use a static/null pool that accepts no sizing arguments
        if self.url.get_backend_name() == "sqlite":
            return {}
        return {
            "pool_size": self._config.pool_size,
            "max_overflow": self._config.max_overflow,
            "pool_timeout": self._config.pool_timeout,
            "pool_pre_ping": True,
        }

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        """Acquire a pooled connection for read-only work."""
        async with self._engine.connect() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Acquire a pooled connection inside a transaction.

        The transaction commits when the block exits normally and rolls back
        when it raises; the connection is returned to the pool either way.
        """
        async with self._engine.begin() as conn:
            yield conn

    async def verify(self) -> None:
        """Acquire and release one connection to prove the database is reachable."""
        async with self.connection() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_schema(self) -> None:
        """Create any missing tables registered on the entity metadata."""
        metadata = get_metadata()
        async with self.transaction() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Artifact store schema is in place")

    async def dispose(self) -> None:
        """Close every pooled connection."""
        await self._engine.dispose()
        logger.debug("Relational connection pool disposed")

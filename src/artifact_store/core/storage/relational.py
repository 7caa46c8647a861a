"""Relational artifact storage.

All artifact kinds share the ``artifact_store`` table. Expiry is enforced as
a read-time filter, so expired rows stay in the table until the cleanup
routine removes them. Upserts use the dialect's ``ON CONFLICT`` clause and
consumption is a targeted JSON patch executed by the database, so neither
operation reads the row first.
"""

from __future__ import annotations

from typing import Any

from typing_extensions import override

from loguru import logger
from sqlalchemy import (
    ARRAY,
    Float,
    Select,
    Text,
    Update,
    and_,
    delete,
    func,
    literal,
    or_,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.sql.elements import ColumnElement

from src.artifact_store.core.errors import BackendConnectionError
from src.artifact_store.core.storage.base import (
    ArtifactAdapter,
    Clock,
    StorageBackend,
    consumed_at_from,
    utc_now,
)
from src.artifact_store.core.storage.connection import ConnectionManager
from src.artifact_store.core.storage.indexing import Payload, extract_indexed_fields
from src.artifact_store.entities.artifact.table import ArtifactRecord
from src.artifact_store.runtime.config.config_data import PostgresConfig

artifacts = ArtifactRecord.__table__  # type: ignore[attr-defined]


class RelationalAdapter(ArtifactAdapter):
    """Kind-scoped adapter over the shared ``artifact_store`` table."""

    def __init__(
        self, kind: str, connections: ConnectionManager, clock: Clock = utc_now
    ) -> None:
        super().__init__(kind, clock)
        self._connections = connections

    def _not_expired(self) -> ColumnElement[bool]:
        return or_(
            artifacts.c.expires_at.is_(None), artifacts.c.expires_at > self._clock()
        )

    def _select_first(self, *criteria: ColumnElement[bool]) -> Select[Any]:
        return (
            select(artifacts.c.payload)
            .where(and_(*criteria), self._not_expired())
            .limit(1)
        )

    async def _first_payload(self, *criteria: ColumnElement[bool]) -> Payload | None:
        async with self._connections.connection() as conn:
            result = await conn.execute(self._select_first(*criteria))
            return result.scalars().first()

    @override
    async def find(self, id: str) -> Payload | None:
        return await self._first_payload(artifacts.c.id == id)

    @override
    async def find_by_uid(self, uid: str) -> Payload | None:
        return await self._first_payload(artifacts.c.uid == uid)

    @override
    async def find_by_user_code(self, user_code: str) -> Payload | None:
        return await self._first_payload(artifacts.c.user_code == user_code)

    def _insert(self) -> Any:
        if self._connections.dialect_name == "postgresql":
            return postgresql.insert(artifacts)
        if self._connections.dialect_name == "sqlite":
            return sqlite.insert(artifacts)
        raise NotImplementedError(
            f"Upsert is not supported on dialect '{self._connections.dialect_name}'"
        )

    def _upsert_statement(
        self, id: str, payload: Payload, expires_in: int | None
    ) -> Any:
        indexed = extract_indexed_fields(self.kind, payload)
        values = {
            "payload": payload,
            "grant_id": indexed.grant_id,
            "uid": indexed.uid,
            "user_code": indexed.user_code,
            "expires_at": self._expires_at(expires_in),
            "consumed_at": consumed_at_from(payload),
        }
        insert = self._insert().values(id=id, kind=self.kind, **values)
        return insert.on_conflict_do_update(
            index_elements=[artifacts.c.id],
            set_={name: insert.excluded[name] for name in values},
        )

    @override
    async def upsert(
        self, id: str, payload: Payload, expires_in: int | None = None
    ) -> None:
        statement = self._upsert_statement(id, payload, expires_in)
        async with self._connections.transaction() as conn:
            await conn.execute(statement)

    def _mark_consumed(self, epoch: float) -> ColumnElement[Any]:
        if self._connections.dialect_name == "postgresql":
            return func.jsonb_set(
                artifacts.c.payload,
                literal(["consumed"], ARRAY(Text)),
                func.to_jsonb(literal(epoch, Float)),
            )
        return func.json_set(artifacts.c.payload, "$.consumed", epoch)

    def _consume_statement(self, id: str) -> Update:
        now = self._clock()
        return (
            update(artifacts)
            .where(artifacts.c.id == id, artifacts.c.consumed_at.is_(None))
            .values(payload=self._mark_consumed(now.timestamp()), consumed_at=now)
        )

    @override
    async def consume(self, id: str) -> None:
        async with self._connections.transaction() as conn:
            await conn.execute(self._consume_statement(id))

    @override
    async def destroy(self, id: str) -> None:
        async with self._connections.transaction() as conn:
            await conn.execute(delete(artifacts).where(artifacts.c.id == id))

    @override
    async def revoke_by_grant_id(self, grant_id: str) -> None:
        async with self._connections.transaction() as conn:
            result = await conn.execute(
                delete(artifacts).where(artifacts.c.grant_id == grant_id)
            )
        logger.debug(f"Revoked {result.rowcount} artifacts of grant {grant_id}")

    def _payload_field_query(self, kind: str, field_name: str, value: str) -> Select[Any]:
        return self._select_first(
            artifacts.c.kind == kind,
            artifacts.c.payload[field_name].as_string() == value,
        )

    @override
    async def _find_by_payload_field(
        self, kind: str, field_name: str, value: str
    ) -> Payload | None:
        async with self._connections.connection() as conn:
            result = await conn.execute(
                self._payload_field_query(kind, field_name, value)
            )
            return result.scalars().first()


class RelationalBackend(StorageBackend):
    """PostgreSQL-backed storage (SQLite is accepted for local use and tests)."""

    name = "postgres"

    def __init__(
        self,
        config: PostgresConfig,
        clock: Clock = utc_now,
        connections: ConnectionManager | None = None,
    ) -> None:
        super().__init__(clock)
        self._config = config
        self.connections = connections or ConnectionManager(config)
        self._available = False

    @override
    def _create_adapter(self, kind: str) -> ArtifactAdapter:
        return RelationalAdapter(kind, self.connections, self._clock)

    @override
    async def connect(self) -> None:
        location = self.connections.url.render_as_string(hide_password=True)
        try:
            await self.connections.verify()
            if self._config.create_schema:
                await self.connections.create_schema()
        except Exception as e:
            self._available = False
            raise BackendConnectionError(self.name, e) from e

        self._available = True
        logger.info(f"Connected to relational artifact store at {location}")

    @override
    async def cleanup_expired(self) -> int:
        """Delete every row whose expiry has passed."""
        statement = delete(artifacts).where(
            artifacts.c.expires_at.is_not(None),
            artifacts.c.expires_at <= self._clock(),
        )
        async with self.connections.transaction() as conn:
            result = await conn.execute(statement)
        return result.rowcount

    @override
    async def close(self) -> None:
        self._available = False
        await self.connections.dispose()

    @override
    def is_available(self) -> bool:
        return self._available

"""Tests for the relational artifact store and its connection manager."""

from datetime import timedelta

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError

from src.artifact_store.core.errors import BackendConnectionError
from src.artifact_store.core.storage.connection import (
    ConnectionManager,
    build_database_url,
)
from src.artifact_store.core.storage.indexing import (
    IndexedFields,
    register_indexer,
    unregister_indexer,
)
from src.artifact_store.core.storage.relational import RelationalBackend, artifacts
from src.artifact_store.runtime.config.config_data import PostgresConfig


async def fetch_row(backend, id):
    async with backend.connections.connection() as conn:
        result = await conn.execute(select(artifacts).where(artifacts.c.id == id))
        return result.mappings().first()


class TestDatabaseUrl:
    """URL assembly from host/credential settings."""

    def test_default_port_fallback(self):
        url = build_database_url(
            PostgresConfig(host="db", user="oidc", password="pw", database="idp")
        )

        assert url.drivername == "postgresql+asyncpg"
        assert url.host == "db"
        assert url.port == 5432
        assert url.username == "oidc"
        assert url.password == "pw"
        assert url.database == "idp"

    def test_explicit_port(self):
        url = build_database_url(PostgresConfig(host="db", port=6543))
        assert url.port == 6543

    def test_empty_password_is_omitted(self):
        url = build_database_url(PostgresConfig(password=""))
        assert url.password is None

    def test_explicit_url_wins(self):
        url = build_database_url(
            PostgresConfig(url="postgresql+asyncpg://u:p@remote:5433/other", host="ignored")
        )
        assert url.host == "remote"
        assert url.port == 5433


class TestConnectionManager:
    @pytest.mark.asyncio
    async def test_pool_is_bounded_by_configuration(self):
        manager = ConnectionManager(
            PostgresConfig(pool_size=3, max_overflow=2, pool_timeout=5)
        )
        try:
            pool = manager.engine.sync_engine.pool
            assert pool.size() == 3
            assert pool._max_overflow == 2
            assert pool._timeout == 5
        finally:
            await manager.dispose()

    @pytest.mark.asyncio
    async def test_transaction_rolls_back_on_error(self, sqlite_backend):
        connections = sqlite_backend.connections

        with pytest.raises(RuntimeError):
            async with connections.transaction() as conn:
                await conn.execute(
                    artifacts.insert().values(id="x", kind="Session", payload={})
                )
                raise RuntimeError("boom")

        assert await fetch_row(sqlite_backend, "x") is None
        # The connection went back to the pool and remains usable
        await connections.verify()


class TestRelationalBackend:
    @pytest.mark.asyncio
    async def test_connect_reports_unreachable_database(self):
        backend = RelationalBackend(
            PostgresConfig(url="sqlite+aiosqlite:////nonexistent-dir/artifacts.db")
        )

        with pytest.raises(BackendConnectionError) as exc_info:
            await backend.connect()

        assert exc_info.value.backend == "postgres"
        assert backend.is_available() is False
        await backend.close()

    @pytest.mark.asyncio
    async def test_connect_marks_backend_available(self, sqlite_backend):
        assert sqlite_backend.is_available() is True

    @pytest.mark.asyncio
    async def test_upsert_stores_derived_columns(self, sqlite_backend, clock):
        adapter = sqlite_backend.adapter("DeviceCode")
        await adapter.upsert(
            "dc-1", {"grantId": "g-1", "uid": "u-1", "userCode": "ABCD-1234"}, 600
        )

        row = await fetch_row(sqlite_backend, "dc-1")
        assert row["kind"] == "DeviceCode"
        assert row["grant_id"] == "g-1"
        assert row["uid"] == "u-1"
        assert row["user_code"] == "ABCD-1234"
        assert row["expires_at"].replace(tzinfo=None) == (
            clock.now + timedelta(seconds=600)
        ).replace(tzinfo=None)
        assert row["consumed_at"] is None

    @pytest.mark.asyncio
    async def test_repeated_upsert_keeps_single_row(self, sqlite_backend):
        await sqlite_backend.adapter("Session").upsert("s-1", {"uid": "u"})
        await sqlite_backend.adapter("Session").upsert("s-1", {"uid": "v"})

        async with sqlite_backend.connections.connection() as conn:
            count = await conn.scalar(text("SELECT COUNT(*) FROM artifact_store"))
        assert count == 1

    @pytest.mark.asyncio
    async def test_consume_sets_consumed_at(self, sqlite_backend, clock):
        adapter = sqlite_backend.adapter("AuthorizationCode")
        await adapter.upsert("code-1", {"grantId": "g-1"}, 600)

        await adapter.consume("code-1")

        row = await fetch_row(sqlite_backend, "code-1")
        assert row["consumed_at"].replace(tzinfo=None) == clock.now.replace(tzinfo=None)
        assert row["payload"]["consumed"] == pytest.approx(clock.now.timestamp())

    @pytest.mark.asyncio
    async def test_upserting_consumed_payload_keeps_it_consumed(self, sqlite_backend, clock):
        adapter = sqlite_backend.adapter("AuthorizationCode")
        consumed = clock.now.timestamp() - 30
        await adapter.upsert("code-1", {"consumed": consumed}, 600)

        await adapter.consume("code-1")

        assert (await adapter.find("code-1"))["consumed"] == pytest.approx(consumed)

    @pytest.mark.asyncio
    async def test_expired_rows_remain_until_cleanup(self, sqlite_backend, clock):
        adapter = sqlite_backend.adapter("AccessToken")
        await adapter.upsert("at-1", {"jti": "at-1"}, 10)
        clock.advance(11)

        assert await adapter.find("at-1") is None
        assert await fetch_row(sqlite_backend, "at-1") is not None

        assert await sqlite_backend.cleanup_expired() == 1
        assert await fetch_row(sqlite_backend, "at-1") is None

    @pytest.mark.asyncio
    async def test_query_errors_propagate(self, sqlite_backend):
        async with sqlite_backend.connections.transaction() as conn:
            await conn.execute(text("DROP TABLE artifact_store"))

        with pytest.raises(OperationalError):
            await sqlite_backend.adapter("Session").find("s-1")

    @pytest.mark.asyncio
    async def test_custom_indexer_drives_lookup_columns(self, sqlite_backend):
        register_indexer(
            "Interaction",
            lambda payload: IndexedFields(uid=payload["session"]["uid"]),
        )
        try:
            adapter = sqlite_backend.adapter("Interaction")
            payload = {"session": {"uid": "nested-uid"}, "uid": "top-level"}
            await adapter.upsert("i-1", payload, 60)

            assert await adapter.find_by_uid("nested-uid") == payload
            assert await adapter.find_by_uid("top-level") is None
        finally:
            unregister_indexer("Interaction")


class TestPostgresStatements:
    """SQL rendered for PostgreSQL, compiled without a server."""

    @pytest.fixture(autouse=True)
    def setup_adapter(self, clock):
        # The engine is never connected, so there is no pool to dispose
        self.backend = RelationalBackend(PostgresConfig(host="db"), clock=clock)
        self.dialect = self.backend.connections.engine.dialect

    def render(self, statement):
        return str(statement.compile(dialect=self.dialect))

    def test_dialect_is_postgresql(self):
        assert self.backend.connections.dialect_name == "postgresql"

    def test_consume_patches_jsonb_in_place(self):
        adapter = self.backend.adapter("AuthorizationCode")

        sql = self.render(adapter._consume_statement("code-1"))

        assert sql.startswith("UPDATE artifact_store SET")
        assert "jsonb_set(artifact_store.payload" in sql
        assert "to_jsonb(" in sql
        assert "artifact_store.consumed_at IS NULL" in sql

    def test_payload_field_lookup_uses_text_extraction(self):
        adapter = self.backend.adapter("Client")

        sql = self.render(
            adapter._payload_field_query("Client", "jwks_uri", "https://i/jwks")
        )

        assert "artifact_store.payload ->> " in sql
        assert "artifact_store.kind = " in sql
        assert "artifact_store.expires_at IS NULL" in sql
        assert "LIMIT" in sql

    def test_upsert_uses_on_conflict(self):
        adapter = self.backend.adapter("Session")

        sql = self.render(adapter._upsert_statement("s-1", {"uid": "u"}, 60))

        assert sql.startswith("INSERT INTO artifact_store")
        assert "ON CONFLICT (id) DO UPDATE SET payload = excluded.payload" in sql
        assert "expires_at = excluded.expires_at" in sql

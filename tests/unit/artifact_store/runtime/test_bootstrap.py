"""Tests for storage startup and configuration context."""

import pytest
from loguru import logger

from src.artifact_store.core.storage.memory import InMemoryBackend
from src.artifact_store.runtime.bootstrap import bootstrap_storage
from src.artifact_store.runtime.config.config_data import (
    ConfigData,
    LoggingConfig,
    PostgresConfig,
    StorageConfig,
)
from src.artifact_store.runtime.context import get_config, with_context
from src.artifact_store.runtime.logging import configure_logging


@pytest.fixture
def captured_logs():
    messages: list[str] = []
    sink_id = logger.add(messages.append, level="DEBUG", format="{level} {message}")
    yield messages
    logger.remove(sink_id)


class TestBootstrapStorage:
    @pytest.mark.asyncio
    async def test_returns_connected_backend(self, clock):
        backend = await bootstrap_storage(ConfigData(), clock)

        assert isinstance(backend, InMemoryBackend)

    @pytest.mark.asyncio
    async def test_unknown_backend_stops_process(self, monkeypatch, captured_logs):
        # Keep the capture sink installed across configure_logging
        monkeypatch.setattr(
            "src.artifact_store.runtime.bootstrap.configure_logging", lambda config: 0
        )
        config = ConfigData(storage=StorageConfig(backend="dynamodb"))

        with pytest.raises(SystemExit) as exc_info:
            await bootstrap_storage(config)

        assert exc_info.value.code == 1
        assert any(
            "CRITICAL" in message and "dynamodb" in message for message in captured_logs
        )

    @pytest.mark.asyncio
    async def test_unreachable_backend_stops_process(self):
        config = ConfigData(
            storage=StorageConfig(
                backend="postgres",
                postgres=PostgresConfig(url="sqlite+aiosqlite:////nonexistent-dir/a.db"),
            )
        )

        with pytest.raises(SystemExit) as exc_info:
            await bootstrap_storage(config)

        assert exc_info.value.code == 1

    @pytest.mark.asyncio
    async def test_uses_active_context_config(self):
        override = ConfigData(storage=StorageConfig(backend="memory"))

        with with_context(override):
            backend = await bootstrap_storage()

        assert backend.name == "memory"


class TestConfigContext:
    def test_override_is_scoped(self):
        override = ConfigData(logging=LoggingConfig(level="DEBUG"))

        with with_context(override) as active:
            assert active is override
            assert get_config() is override

    def test_nested_overrides_restore_outer(self):
        outer = ConfigData(logging=LoggingConfig(level="WARNING"))
        inner = ConfigData(logging=LoggingConfig(level="DEBUG"))

        with with_context(outer):
            with with_context(inner):
                assert get_config() is inner
            assert get_config() is outer


class TestConfigureLogging:
    def test_returns_sink_id(self):
        sink_id = configure_logging(LoggingConfig(level="warning", json_output=True))
        try:
            assert isinstance(sink_id, int)
        finally:
            logger.remove(sink_id)

"""Artifact storage maintenance commands.

Commands:
    check    - Verify the configured backend can be selected and reached
    init-db  - Create the artifact_store table on the relational backend
    cleanup  - Purge expired artifacts once
"""

import asyncio
from pathlib import Path

import typer

from src.artifact_store.core.errors import ArtifactStoreError
from src.artifact_store.core.storage.cleanup import run_cleanup
from src.artifact_store.core.storage.connection import ConnectionManager
from src.artifact_store.core.storage.factory import (
    resolve_backend_kind,
    select_adapter,
)
from src.artifact_store.runtime.config.config_data import BackendKind, ConfigData
from src.artifact_store.runtime.config.config_loader import load_config
from src.artifact_store.runtime.logging import configure_logging

from ..shared.console import console

app = typer.Typer(
    name="storage",
    help="🗄️  Artifact storage maintenance commands",
    no_args_is_help=True,
)

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to the configuration file (default: config.yaml)",
)


def _load(config_path: Path | None) -> ConfigData:
    try:
        config = load_config(config_path) if config_path else load_config()
    except (ValueError, FileNotFoundError) as e:
        console.handle_error("Could not load configuration", str(e))
    configure_logging(config.logging)
    return config


@app.command()
def check(config_path: Path | None = ConfigOption) -> None:
    """🔍 Select the configured backend and verify it is reachable."""
    config = _load(config_path)

    async def _check() -> str:
        backend = await select_adapter(config.storage)
        await backend.close()
        return backend.name

    try:
        with console.status("Connecting to storage backend..."):
            name = asyncio.run(_check())
    except ArtifactStoreError as e:
        console.handle_error("Storage backend check failed", e.message)

    console.ok(f"Storage backend '{name}' is ready")


@app.command("init-db")
def init_db(config_path: Path | None = ConfigOption) -> None:
    """🏗️  Create the artifact_store table on the relational backend."""
    config = _load(config_path)

    try:
        kind = resolve_backend_kind(config.storage.backend)
    except ArtifactStoreError as e:
        console.handle_error("Invalid storage configuration", e.message)

    if kind is not BackendKind.POSTGRES:
        console.handle_error(
            "init-db only applies to the relational backend",
            f"Configured backend is '{kind.value}'",
        )

    async def _init() -> None:
        connections = ConnectionManager(config.storage.postgres)
        try:
            await connections.create_schema()
        finally:
            await connections.dispose()

    with console.status("Creating artifact_store schema..."):
        asyncio.run(_init())
    console.ok("artifact_store schema is in place")


@app.command()
def cleanup(config_path: Path | None = ConfigOption) -> None:
    """🧹 Purge expired artifacts from the configured backend."""
    config = _load(config_path)

    async def _cleanup() -> int:
        backend = await select_adapter(config.storage)
        try:
            return await run_cleanup(backend)
        finally:
            await backend.close()

    try:
        removed = asyncio.run(_cleanup())
    except ArtifactStoreError as e:
        console.handle_error("Cleanup failed", e.message)

    console.ok(f"Purged {removed} expired artifact(s)")

"""Process startup for the artifact storage layer."""

from loguru import logger

from src.artifact_store.core.errors import ArtifactStoreError
from src.artifact_store.core.storage.base import Clock, StorageBackend, utc_now
from src.artifact_store.core.storage.factory import select_adapter
from src.artifact_store.runtime.config.config_data import ConfigData
from src.artifact_store.runtime.context import get_config
from src.artifact_store.runtime.logging import configure_logging


async def bootstrap_storage(
    config: ConfigData | None = None, clock: Clock = utc_now
) -> StorageBackend:
    """Configure logging and select the storage backend, or stop the process.

    A misconfigured or unreachable backend is fatal: the error is logged and
    the process exits with status 1 before anything can be served.

    Args:
        config: Configuration to use (default: the active configuration)
        clock: Time source used for expiry computations

    Returns:
        The connected storage backend
    """
    config = config or get_config()
    configure_logging(config.logging)

    try:
        return await select_adapter(config.storage, clock)
    except ArtifactStoreError as e:
        logger.critical(f"Storage initialization failed, aborting startup: {e.message}")
        raise SystemExit(1) from e

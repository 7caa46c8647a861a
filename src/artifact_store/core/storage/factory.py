"""Factory for obtaining the configured artifact storage backend."""

from loguru import logger

from src.artifact_store.core.errors import UnknownBackendError
from src.artifact_store.core.storage.base import Clock, StorageBackend, utc_now
from src.artifact_store.runtime.config.config_data import BackendKind, StorageConfig


def resolve_backend_kind(backend: str) -> BackendKind:
    """Map a configured backend name onto a known backend kind.

    Raises:
        UnknownBackendError: If the name matches no known backend
    """
    try:
        return BackendKind(backend.strip().lower())
    except ValueError:
        raise UnknownBackendError(backend) from None


def create_backend(config: StorageConfig, clock: Clock = utc_now) -> StorageBackend:
    """Instantiate, without connecting, the backend named by the configuration."""
    match resolve_backend_kind(config.backend):
        case BackendKind.POSTGRES:
            from src.artifact_store.core.storage.relational import RelationalBackend

            return RelationalBackend(config.postgres, clock)
        case BackendKind.MONGODB:
            from src.artifact_store.core.storage.document import DocumentBackend

            return DocumentBackend(config.mongodb, clock)
        case BackendKind.REDIS:
            from src.artifact_store.core.storage.redis import RedisBackend

            return RedisBackend(config.redis, clock)
        case BackendKind.MEMORY:
            from src.artifact_store.core.storage.memory import InMemoryBackend

            return InMemoryBackend(clock)


async def select_adapter(
    config: StorageConfig, clock: Clock = utc_now
) -> StorageBackend:
    """Select, warm up and return the configured storage backend.

    Called once at process startup. The returned backend is fully connected;
    if warm-up fails its resources are released before the error propagates.

    Args:
        config: Storage section of the application configuration
        clock: Time source used for expiry computations

    Returns:
        A connected storage backend

    Raises:
        UnknownBackendError: If ``config.backend`` names no known backend
        BackendConnectionError: If the backend cannot be reached
    """
    backend = create_backend(config, clock)
    logger.info(f"Initializing '{backend.name}' artifact storage backend")
    try:
        await backend.connect()
    except Exception:
        await backend.close()
        raise
    return backend

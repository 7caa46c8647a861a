"""Maintenance pass that purges expired artifacts.

Reads already hide expired records, so this routine only reclaims space. It
is meant to be run periodically by an external scheduler (cron, a worker,
``artifact-store cleanup``); the storage layer never schedules it.
"""

from loguru import logger

from src.artifact_store.core.storage.base import StorageBackend


async def run_cleanup(backend: StorageBackend) -> int:
    """Remove expired records from the backend.

    Args:
        backend: A connected storage backend

    Returns:
        Number of records removed
    """
    removed = await backend.cleanup_expired()
    if removed:
        logger.info(f"Purged {removed} expired artifacts from {backend.name} storage")
    else:
        logger.debug(f"No expired artifacts to purge from {backend.name} storage")
    return removed

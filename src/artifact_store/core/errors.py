"""Exception types raised by the artifact storage layer."""

from typing import Any


class ArtifactStoreError(Exception):
    """Base class for all storage-layer errors."""

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ConfigurationError(ArtifactStoreError):
    """Raised when the storage configuration is invalid or incomplete."""


class UnknownBackendError(ConfigurationError):
    """Raised when the configured backend kind matches no known backend."""

    def __init__(self, backend: str):
        super().__init__(
            f"Unknown storage backend '{backend}'", detail={"backend": backend}
        )
        self.backend = backend


class BackendConnectionError(ArtifactStoreError):
    """Raised when a backend cannot be reached during startup warm-up."""

    def __init__(self, backend: str, cause: BaseException):
        super().__init__(
            f"Could not connect to {backend} storage backend: {cause}",
            detail={"backend": backend},
        )
        self.backend = backend


__all__ = [
    "ArtifactStoreError",
    "BackendConnectionError",
    "ConfigurationError",
    "UnknownBackendError",
]

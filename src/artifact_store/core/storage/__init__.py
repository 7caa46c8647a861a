"""Artifact storage abstractions for identity-provider persistence."""

from .base import ArtifactAdapter, StorageBackend
from .cleanup import run_cleanup
from .factory import create_backend, select_adapter
from .indexing import (
    IndexedFields,
    extract_indexed_fields,
    register_auxiliary_field,
    register_indexer,
)
from .memory import InMemoryAdapter, InMemoryBackend

__all__ = [
    "ArtifactAdapter",
    "IndexedFields",
    "InMemoryAdapter",
    "InMemoryBackend",
    "StorageBackend",
    "create_backend",
    "extract_indexed_fields",
    "register_auxiliary_field",
    "register_indexer",
    "run_cleanup",
    "select_adapter",
]

"""In-memory artifact storage with TTL support.

Intended for development and tests: records live in a process-local
dictionary shared by every kind-scoped adapter of the backend.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from typing_extensions import override

from loguru import logger

from src.artifact_store.core.storage.base import (
    ArtifactAdapter,
    Clock,
    StorageBackend,
    consumed_at_from,
    utc_now,
)
from src.artifact_store.core.storage.indexing import Payload, extract_indexed_fields


def _copy_payload(payload: dict[str, Any]) -> Payload:
    # Mirrors the serialization the persistent backends apply
    return json.loads(json.dumps(payload))


@dataclass
class _Record:
    kind: str
    payload: Payload
    grant_id: str | None
    uid: str | None
    user_code: str | None
    expires_at: datetime | None
    consumed_at: datetime | None = None

    def is_visible(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now


class InMemoryAdapter(ArtifactAdapter):
    """Kind-scoped adapter over an :class:`InMemoryBackend`."""

    def __init__(self, kind: str, backend: InMemoryBackend, clock: Clock = utc_now) -> None:
        super().__init__(kind, clock)
        self._records = backend._records

    def _visible(self, id: str) -> _Record | None:
        record = self._records.get(id)
        if record is None or not record.is_visible(self._clock()):
            return None
        return record

    def _first_visible(self, **match: str) -> Payload | None:
        now = self._clock()
        for record in self._records.values():
            if not record.is_visible(now):
                continue
            if all(getattr(record, attr) == value for attr, value in match.items()):
                return _copy_payload(record.payload)
        return None

    @override
    async def find(self, id: str) -> Payload | None:
        """Retrieve a record from memory if not expired."""
        record = self._visible(id)
        return _copy_payload(record.payload) if record else None

    @override
    async def find_by_uid(self, uid: str) -> Payload | None:
        return self._first_visible(uid=uid)

    @override
    async def find_by_user_code(self, user_code: str) -> Payload | None:
        return self._first_visible(user_code=user_code)

    @override
    async def upsert(
        self, id: str, payload: Payload, expires_in: int | None = None
    ) -> None:
        """Store a record in memory, replacing any record with the same id."""
        indexed = extract_indexed_fields(self.kind, payload)
        self._records[id] = _Record(
            kind=self.kind,
            payload=_copy_payload(payload),
            grant_id=indexed.grant_id,
            uid=indexed.uid,
            user_code=indexed.user_code,
            expires_at=self._expires_at(expires_in),
            consumed_at=consumed_at_from(payload),
        )

    @override
    async def consume(self, id: str) -> None:
        record = self._records.get(id)
        if record is None or record.consumed_at is not None:
            return
        now = self._clock()
        record.payload["consumed"] = now.timestamp()
        record.consumed_at = now

    @override
    async def destroy(self, id: str) -> None:
        """Delete a record from memory."""
        self._records.pop(id, None)

    @override
    async def revoke_by_grant_id(self, grant_id: str) -> None:
        doomed = [
            id for id, record in self._records.items() if record.grant_id == grant_id
        ]
        for id in doomed:
            del self._records[id]

    @override
    async def _find_by_payload_field(
        self, kind: str, field_name: str, value: str
    ) -> Payload | None:
        now = self._clock()
        for record in self._records.values():
            if not record.is_visible(now) or record.kind != kind:
                continue
            if record.payload.get(field_name) == value:
                return _copy_payload(record.payload)
        return None


class InMemoryBackend(StorageBackend):
    """Process-local storage backend."""

    name = "memory"

    def __init__(self, clock: Clock = utc_now) -> None:
        super().__init__(clock)
        self._records: dict[str, _Record] = {}

    @override
    def _create_adapter(self, kind: str) -> ArtifactAdapter:
        return InMemoryAdapter(kind, self, self._clock)

    @override
    async def connect(self) -> None:
        logger.warning(
            "Using in-memory artifact storage; records are lost on process exit"
        )

    @override
    async def cleanup_expired(self) -> int:
        """Remove expired records from memory."""
        now = self._clock()
        expired = [
            id for id, record in self._records.items() if not record.is_visible(now)
        ]
        for id in expired:
            del self._records[id]
        return len(expired)

    @override
    async def close(self) -> None:
        self._records.clear()

    @override
    def is_available(self) -> bool:
        """In-memory storage is always available."""
        return True

"""Artifact storage interface.

Provides a unified interface for persisting identity-provider artifacts
(sessions, tokens, grants, clients, device codes) with expiry-aware reads,
secondary-key lookups and grant-wide revocation, independent of the backend
that actually holds the records.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar

from src.artifact_store.core.errors import ConfigurationError
from src.artifact_store.core.storage.indexing import Payload, auxiliary_field_for

Clock = Callable[[], datetime]

CLIENT_KIND = "Client"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def consumed_at_from(payload: Payload) -> datetime | None:
    """Consumption time recorded in a payload's ``consumed`` field, if any.

    A replacing upsert carries its own consumption state, so the
    ``consumed_at`` column is re-derived from the new payload.
    """
    consumed = payload.get("consumed")
    if isinstance(consumed, bool) or not isinstance(consumed, int | float):
        return None
    return datetime.fromtimestamp(consumed, tz=UTC)


class ArtifactAdapter(ABC):
    """Kind-scoped handle over a storage backend.

    One adapter is created per artifact kind (``"Session"``, ``"AccessToken"``,
    ``"Client"``, ...). All adapters of a backend share the same underlying
    records and connection resources.
    """

    def __init__(self, kind: str, clock: Clock = utc_now) -> None:
        self.kind = kind
        self._clock = clock

    def _expires_at(self, expires_in: int | None) -> datetime | None:
        """Absolute expiry for a TTL in seconds, or None for no expiry."""
        if expires_in is None:
            return None
        return self._clock() + timedelta(seconds=expires_in)

    @abstractmethod
    async def find(self, id: str) -> Payload | None:
        """Retrieve a record by id.

        Args:
            id: Artifact identifier

        Returns:
            Stored payload, or None if absent or expired
        """
        pass

    @abstractmethod
    async def find_by_uid(self, uid: str) -> Payload | None:
        """Retrieve the first non-expired record with the given user-session id.

        Args:
            uid: User-session identifier

        Returns:
            Stored payload, or None if no visible record matches
        """
        pass

    @abstractmethod
    async def find_by_user_code(self, user_code: str) -> Payload | None:
        """Retrieve the first non-expired record with the given device user code.

        Args:
            user_code: One-time device-flow user code

        Returns:
            Stored payload, or None if no visible record matches
        """
        pass

    @abstractmethod
    async def upsert(
        self, id: str, payload: Payload, expires_in: int | None = None
    ) -> None:
        """Insert a record or fully replace the record with the same id.

        Only ``None`` disables expiry. A TTL of zero or less yields a record
        that is already expired: reads never return it, and backends with
        native key expiry drop it immediately.

        Args:
            id: Artifact identifier
            payload: Document to store
            expires_in: Time to live in seconds; None means the record never expires
        """
        pass

    @abstractmethod
    async def consume(self, id: str) -> None:
        """Mark a record as consumed.

        Sets the ``consumed`` payload field to the consumption time (epoch
        seconds) without touching the rest of the payload or the expiry.
        Consuming an already consumed record leaves it unchanged.

        Args:
            id: Artifact identifier
        """
        pass

    @abstractmethod
    async def destroy(self, id: str) -> None:
        """Delete a record. Missing ids are ignored.

        Args:
            id: Artifact identifier
        """
        pass

    @abstractmethod
    async def revoke_by_grant_id(self, grant_id: str) -> None:
        """Delete every record belonging to a grant, regardless of kind.

        Args:
            grant_id: Grant identifier
        """
        pass

    @abstractmethod
    async def _find_by_payload_field(
        self, kind: str, field_name: str, value: str
    ) -> Payload | None:
        """Retrieve the first record of ``kind`` whose payload field equals ``value``."""
        pass

    async def find_by_auxiliary_field(self, value: str) -> Payload | None:
        """Retrieve a record by the auxiliary payload field declared for this kind.

        Args:
            value: Field value to match (e.g. a client's ``jwks_uri``)

        Returns:
            Stored payload, or None if no record of this kind matches

        Raises:
            ConfigurationError: If no auxiliary field is declared for this kind
        """
        field_name = auxiliary_field_for(self.kind)
        if field_name is None:
            raise ConfigurationError(
                f"No auxiliary lookup field declared for kind '{self.kind}'",
                detail={"kind": self.kind},
            )
        return await self._find_by_payload_field(self.kind, field_name, value)

    async def find_client_by_jwks_uri(self, jwks_uri: str) -> Payload | None:
        """Retrieve a client registration by its ``jwks_uri``."""
        return await self._find_by_payload_field(CLIENT_KIND, "jwks_uri", jwks_uri)


class StorageBackend(ABC):
    """A selected, initialized storage backend.

    Owns the backend resources (connection pool, client) for the lifetime of
    the process and hands out kind-scoped adapters that share them.
    """

    name: ClassVar[str]

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._adapters: dict[str, ArtifactAdapter] = {}

    def adapter(self, kind: str) -> ArtifactAdapter:
        """Return the adapter bound to an artifact kind.

        Args:
            kind: Artifact kind name (e.g. "Session", "Client")

        Returns:
            The kind-scoped adapter, created on first use
        """
        if kind not in self._adapters:
            self._adapters[kind] = self._create_adapter(kind)
        return self._adapters[kind]

    @abstractmethod
    def _create_adapter(self, kind: str) -> ArtifactAdapter:
        """Build a new adapter for a kind."""
        pass

    @abstractmethod
    async def connect(self) -> None:
        """Perform backend warm-up, verifying connectivity.

        Raises:
            BackendConnectionError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Physically remove expired records.

        Returns:
            Number of records removed
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the storage backend is available.

        Returns:
            True if the backend is healthy and available
        """
        pass

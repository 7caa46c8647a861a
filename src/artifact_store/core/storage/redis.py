"""Redis-backed artifact storage.

Key layout (all keys share the configured prefix):

- ``artifact:{id}``: JSON envelope holding the kind, payload and index values
- ``uid:{uid}`` / ``user_code:{code}`` / ``aux:{kind}:{value}``: sets of ids
- ``grant:{grant_id}``: set of artifact ids belonging to a grant

Expiry is delegated to Redis key TTLs, so expired records disappear on
their own and :meth:`RedisBackend.cleanup_expired` has nothing to do. Index
sets can still name ids whose record expired or moved elsewhere; lookups
check every member against its envelope and drop the ones that no longer
match.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from typing_extensions import override

from loguru import logger
from pydantic import BaseModel

from src.artifact_store.core.errors import BackendConnectionError
from src.artifact_store.core.storage.base import (
    ArtifactAdapter,
    Clock,
    StorageBackend,
    consumed_at_from,
    utc_now,
)
from src.artifact_store.core.storage.indexing import (
    Payload,
    auxiliary_field_for,
    extract_indexed_fields,
)
from src.artifact_store.runtime.config.config_data import RedisConfig

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import Pipeline


class StoredArtifact(BaseModel):
    """Envelope persisted under an artifact key."""

    kind: str
    payload: dict[str, Any]
    grant_id: str | None = None
    uid: str | None = None
    user_code: str | None = None
    consumed_at: datetime | None = None


def _decode(value: str | bytes) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def _parse(data: str | bytes | None) -> StoredArtifact | None:
    if data is None:
        return None
    return StoredArtifact.model_validate_json(_decode(data))


class RedisAdapter(ArtifactAdapter):
    """Kind-scoped adapter over a :class:`RedisBackend`."""

    def __init__(self, kind: str, backend: RedisBackend, clock: Clock = utc_now) -> None:
        super().__init__(kind, clock)
        self._backend = backend
        self._redis = backend.client

    def _key(self, *parts: str) -> str:
        return self._backend.key(*parts)

    def _index_keys(self, stored: StoredArtifact) -> list[str]:
        """Index sets an envelope is a member of."""
        keys = []
        if stored.grant_id:
            keys.append(self._key("grant", stored.grant_id))
        if stored.uid:
            keys.append(self._key("uid", stored.uid))
        if stored.user_code:
            keys.append(self._key("user_code", stored.user_code))
        aux_field = auxiliary_field_for(stored.kind)
        aux_value = stored.payload.get(aux_field) if aux_field else None
        if isinstance(aux_value, str):
            keys.append(self._key("aux", stored.kind, aux_value))
        return keys

    async def _load(self, id: str) -> StoredArtifact | None:
        data = await self._backend.guard(self._redis.get(self._key("artifact", id)))
        return _parse(data)

    async def _find_in_index(
        self, index_key: str, matches: Callable[[StoredArtifact], bool]
    ) -> Payload | None:
        """Return the first live member of an index set whose envelope still matches.

        Members whose record expired, was destroyed or no longer carries the
        indexed value are removed from the set.
        """
        members = await self._backend.guard(self._redis.smembers(index_key))
        found = None
        stale = []
        for member in sorted(_decode(m) for m in members):
            stored = await self._load(member)
            if stored is not None and matches(stored):
                found = stored.payload
                break
            stale.append(member)
        if stale:
            await self._backend.guard(self._redis.srem(index_key, *stale))
        return found

    @override
    async def find(self, id: str) -> Payload | None:
        stored = await self._load(id)
        return stored.payload if stored else None

    @override
    async def find_by_uid(self, uid: str) -> Payload | None:
        return await self._find_in_index(
            self._key("uid", uid), lambda stored: stored.uid == uid
        )

    @override
    async def find_by_user_code(self, user_code: str) -> Payload | None:
        return await self._find_in_index(
            self._key("user_code", user_code),
            lambda stored: stored.user_code == user_code,
        )

    @override
    async def upsert(
        self, id: str, payload: Payload, expires_in: int | None = None
    ) -> None:
        """Store an artifact and its index set memberships in one MULTI block.

        The artifact key is watched while the previous envelope is read, so
        the id leaves the index sets of the replaced record (an old grant,
        uid or user code) in the same transaction that writes the new one.
        """
        if expires_in is not None and expires_in <= 0:
            await self.destroy(id)
            return

        indexed = extract_indexed_fields(self.kind, payload)
        stored = StoredArtifact(
            kind=self.kind,
            payload=payload,
            grant_id=indexed.grant_id,
            uid=indexed.uid,
            user_code=indexed.user_code,
            consumed_at=consumed_at_from(payload),
        )
        key = self._key("artifact", id)
        index_keys = self._index_keys(stored)

        async def write(pipe: Pipeline) -> None:
            previous = _parse(await pipe.get(key))
            stale = []
            if previous is not None:
                stale = [k for k in self._index_keys(previous) if k not in index_keys]
            ttls = {}
            if expires_in is not None:
                for index_key in index_keys:
                    ttls[index_key] = await pipe.ttl(index_key)

            pipe.multi()
            pipe.set(key, stored.model_dump_json(), ex=expires_in)
            for index_key in stale:
                pipe.srem(index_key, id)
            for index_key in index_keys:
                pipe.sadd(index_key, id)
                # An index set lives as long as its longest-lived member (-1: no expiry)
                if expires_in is None:
                    pipe.persist(index_key)
                elif ttls[index_key] == -2 or 0 <= ttls[index_key] < expires_in:
                    pipe.expire(index_key, expires_in)

        await self._backend.guard(self._redis.transaction(write, key))

    @override
    async def consume(self, id: str) -> None:
        key = self._key("artifact", id)
        consumed_at = self._clock()

        async def mark_consumed(pipe: Pipeline) -> None:
            stored = _parse(await pipe.get(key))
            if stored is None or stored.consumed_at is not None:
                return
            stored.payload["consumed"] = consumed_at.timestamp()
            stored.consumed_at = consumed_at
            pipe.multi()
            pipe.set(key, stored.model_dump_json(), keepttl=True)

        await self._backend.guard(self._redis.transaction(mark_consumed, key))

    @override
    async def destroy(self, id: str) -> None:
        await self._backend.guard(self._redis.delete(self._key("artifact", id)))

    @override
    async def revoke_by_grant_id(self, grant_id: str) -> None:
        """Delete the grant's members that still belong to it, then the grant set."""
        grant_key = self._key("grant", grant_id)
        members = await self._backend.guard(self._redis.smembers(grant_key))
        keys = [grant_key]
        for member in sorted(_decode(m) for m in members):
            stored = await self._load(member)
            if stored is not None and stored.grant_id == grant_id:
                keys.append(self._key("artifact", member))
        await self._backend.guard(self._redis.delete(*keys))
        logger.debug(f"Revoked {len(keys) - 1} artifacts of grant {grant_id}")

    @override
    async def _find_by_payload_field(
        self, kind: str, field_name: str, value: str
    ) -> Payload | None:
        if auxiliary_field_for(kind) != field_name:
            return None
        return await self._find_in_index(
            self._key("aux", kind, value),
            lambda stored: stored.kind == kind and stored.payload.get(field_name) == value,
        )


class RedisBackend(StorageBackend):
    """Redis-based artifact storage."""

    name = "redis"

    def __init__(
        self,
        config: RedisConfig,
        clock: Clock = utc_now,
        client: Redis | None = None,
    ) -> None:
        super().__init__(clock)
        self._config = config
        if client is None:
            from redis.asyncio import Redis

            client = Redis.from_url(
                config.url, password=config.password or None, decode_responses=True
            )
        self.client = client
        self._available = False

    def key(self, *parts: str) -> str:
        return self._config.key_prefix + ":".join(parts)

    async def guard(self, awaitable: Any) -> Any:
        """Await a Redis call, tracking backend availability.

        Errors are re-raised unchanged to the caller.
        """
        try:
            result = await awaitable
        except Exception:
            self._available = False
            raise
        self._available = True
        return result

    @override
    def _create_adapter(self, kind: str) -> ArtifactAdapter:
        return RedisAdapter(kind, self, self._clock)

    @override
    async def connect(self) -> None:
        try:
            await self.client.ping()
        except Exception as e:
            self._available = False
            raise BackendConnectionError(self.name, e) from e
        self._available = True
        logger.info("Connected to Redis artifact store")

    @override
    async def cleanup_expired(self) -> int:
        """Redis handles expiration automatically."""
        return 0

    @override
    async def close(self) -> None:
        self._available = False
        await self.client.aclose()

    @override
    def is_available(self) -> bool:
        """Check if the Redis connection is healthy."""
        return self._available

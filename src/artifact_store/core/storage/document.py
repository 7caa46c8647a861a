"""MongoDB-backed artifact storage.

Each artifact is one document keyed by its id. A TTL index on ``expiresAt``
lets MongoDB purge expired documents in the background, while reads filter
on ``expiresAt`` themselves because the TTL monitor only runs periodically.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from typing_extensions import override

from loguru import logger

from src.artifact_store.core.errors import BackendConnectionError
from src.artifact_store.core.storage.base import (
    ArtifactAdapter,
    Clock,
    StorageBackend,
    consumed_at_from,
    utc_now,
)
from src.artifact_store.core.storage.indexing import Payload, extract_indexed_fields
from src.artifact_store.runtime.config.config_data import MongoConfig

if TYPE_CHECKING:
    from pymongo import AsyncMongoClient
    from pymongo.asynchronous.collection import AsyncCollection

PAYLOAD_ONLY = {"_id": 0, "payload": 1}


class DocumentAdapter(ArtifactAdapter):
    """Kind-scoped adapter over the shared artifact collection."""

    def __init__(
        self, kind: str, collection: AsyncCollection, clock: Clock = utc_now
    ) -> None:
        super().__init__(kind, clock)
        self._collection = collection

    def _visible(self, query: dict[str, Any]) -> dict[str, Any]:
        return {
            **query,
            "$or": [{"expiresAt": None}, {"expiresAt": {"$gt": self._clock()}}],
        }

    async def _find_one(self, query: dict[str, Any]) -> Payload | None:
        document = await self._collection.find_one(self._visible(query), PAYLOAD_ONLY)
        return document["payload"] if document else None

    @override
    async def find(self, id: str) -> Payload | None:
        return await self._find_one({"_id": id})

    @override
    async def find_by_uid(self, uid: str) -> Payload | None:
        return await self._find_one({"uid": uid})

    @override
    async def find_by_user_code(self, user_code: str) -> Payload | None:
        return await self._find_one({"userCode": user_code})

    @override
    async def upsert(
        self, id: str, payload: Payload, expires_in: int | None = None
    ) -> None:
        indexed = extract_indexed_fields(self.kind, payload)
        document = {
            "_id": id,
            "kind": self.kind,
            "payload": payload,
            "grantId": indexed.grant_id,
            "uid": indexed.uid,
            "userCode": indexed.user_code,
            "expiresAt": self._expires_at(expires_in),
            "consumedAt": consumed_at_from(payload),
        }
        await self._collection.replace_one({"_id": id}, document, upsert=True)

    @override
    async def consume(self, id: str) -> None:
        now = self._clock()
        await self._collection.update_one(
            {"_id": id, "consumedAt": None},
            {"$set": {"payload.consumed": now.timestamp(), "consumedAt": now}},
        )

    @override
    async def destroy(self, id: str) -> None:
        await self._collection.delete_one({"_id": id})

    @override
    async def revoke_by_grant_id(self, grant_id: str) -> None:
        await self._collection.delete_many({"grantId": grant_id})

    @override
    async def _find_by_payload_field(
        self, kind: str, field_name: str, value: str
    ) -> Payload | None:
        return await self._find_one({"kind": kind, f"payload.{field_name}": value})


class DocumentBackend(StorageBackend):
    """MongoDB storage backend."""

    name = "mongodb"

    def __init__(
        self,
        config: MongoConfig,
        clock: Clock = utc_now,
        client: AsyncMongoClient | None = None,
    ) -> None:
        super().__init__(clock)
        if client is None:
            from pymongo import AsyncMongoClient

            client = AsyncMongoClient(config.url, tz_aware=True)
        self.client = client
        self.collection = client[config.database][config.collection]
        self._available = False

    @override
    def _create_adapter(self, kind: str) -> ArtifactAdapter:
        return DocumentAdapter(kind, self.collection, self._clock)

    @override
    async def connect(self) -> None:
        try:
            await self.client.admin.command("ping")
            await self.collection.create_index("expiresAt", expireAfterSeconds=0)
            for field in ("grantId", "uid", "userCode"):
                await self.collection.create_index(field)
        except Exception as e:
            self._available = False
            raise BackendConnectionError(self.name, e) from e
        self._available = True
        logger.info("Connected to MongoDB artifact store")

    @override
    async def cleanup_expired(self) -> int:
        result = await self.collection.delete_many(
            {"expiresAt": {"$ne": None, "$lte": self._clock()}}
        )
        return result.deleted_count

    @override
    async def close(self) -> None:
        self._available = False
        await self.client.close()

    @override
    def is_available(self) -> bool:
        return self._available

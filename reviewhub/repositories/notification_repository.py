from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from reviewhub.database.operations import insert_if_absent, normalize_id, try_object_id
from reviewhub.models.notification import NotificationDocument


class NotificationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["notifications"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [
                ("recipient_id", ASCENDING),
                ("entity_type", ASCENDING),
                ("entity_id", ASCENDING),
                ("type", ASCENDING),
                ("created_at", DESCENDING),
            ]
        )
        await self.collection.create_index([("recipient_id", ASCENDING), ("is_read", ASCENDING)])
        await self.collection.create_index([("recipient_id", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index([("is_broadcast", ASCENDING), ("recipient_group", ASCENDING)])

    async def insert_with_dedup(self, doc: NotificationDocument, window_seconds: int) -> Tuple[NotificationDocument, bool]:
        """Insert ``doc`` unless the same event reached the same recipient within the window."""
        window_start = datetime.now(timezone.utc) - timedelta(seconds=window_seconds)
        query = {
            "recipient_id": doc["recipient_id"],
            "entity_type": doc["entity_type"],
            "entity_id": doc["entity_id"],
            "type": doc["type"],
            "created_at": {"$gte": window_start},
        }
        return await insert_if_absent(self.collection, query, doc)

    async def insert(self, doc: NotificationDocument) -> NotificationDocument:
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def insert_many(self, docs: List[NotificationDocument]) -> List[NotificationDocument]:
        if not docs:
            return []
        result = await self.collection.insert_many(docs)
        for doc, oid in zip(docs, result.inserted_ids):
            doc["_id"] = str(oid)
        return docs

    async def set_delivery_status(self, notification_ids: Iterable[str], status: str) -> int:
        oids = [oid for oid in (try_object_id(i) for i in notification_ids) if oid is not None]
        if not oids:
            return 0
        result = await self.collection.update_many(
            {"_id": {"$in": oids}}, {"$set": {"delivery_status": status}}
        )
        return result.modified_count or 0

    def _recipient_query(self, recipient_id: str, types: Optional[Sequence[str]]) -> Dict[str, Any]:
        query: Dict[str, Any] = {"recipient_id": recipient_id}
        if types:
            query["type"] = {"$in": list(types)}
        return query

    async def find_undelivered_or_unread(
        self, recipient_id: str, types: Optional[Sequence[str]] = None, limit: int = 20
    ) -> List[NotificationDocument]:
        query = self._recipient_query(recipient_id, types)
        query["is_read"] = False
        query["delivery_status"] = {"$in": ["pending", "delivered"]}
        cursor = self.collection.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(limit)
        items = await cursor.to_list(length=limit)
        return [normalize_id(it) for it in items]

    async def list_for(
        self, recipient_id: str, types: Optional[Sequence[str]] = None, limit: int = 50
    ) -> List[NotificationDocument]:
        cursor = (
            self.collection.find(self._recipient_query(recipient_id, types))
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .limit(limit)
        )
        items = await cursor.to_list(length=limit)
        return [normalize_id(it) for it in items]

    async def count_unread(self, recipient_id: str, types: Optional[Sequence[str]] = None) -> int:
        query = self._recipient_query(recipient_id, types)
        query["is_read"] = False
        return await self.collection.count_documents(query)

    async def mark_read(self, notification_id: str, recipient_id: str) -> Optional[NotificationDocument]:
        oid = try_object_id(notification_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "recipient_id": recipient_id},
            {"$set": {"is_read": True, "read_at": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER,
        )
        return normalize_id(doc)

    async def mark_all_read(self, recipient_id: str, types: Optional[Sequence[str]] = None) -> int:
        query = self._recipient_query(recipient_id, types)
        query["is_read"] = False
        result = await self.collection.update_many(
            query,
            {"$set": {"is_read": True, "read_at": datetime.now(timezone.utc)}},
        )
        return result.modified_count or 0

    async def delete(self, notification_id: str, recipient_id: str) -> bool:
        oid = try_object_id(notification_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid, "recipient_id": recipient_id})
        return result.deleted_count > 0

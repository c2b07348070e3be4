from datetime import datetime, timezone
from typing import List, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from reviewhub.database.operations import normalize_id
from reviewhub.models.message import MessageDocument

CONVERSATION = "conversation_id"
REVIEW_SESSION = "review_session_id"


class MessageRepository:
    """Messages of both thread namespaces, keyed by ``conversation_id`` or ``review_session_id``."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([(CONVERSATION, ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index([(REVIEW_SESSION, ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index(
            [(CONVERSATION, ASCENDING), ("sender_id", ASCENDING), ("is_read", ASCENDING)]
        )

    async def save_message(
        self,
        thread_field: str,
        thread_id: str,
        sender_id: str,
        sender_tag: str,
        content: str,
        message_type: str = "text",
    ) -> MessageDocument:
        doc: MessageDocument = {
            CONVERSATION: None,
            REVIEW_SESSION: None,
            "sender_id": sender_id,
            "sender_tag": sender_tag,
            "content": content,
            "message_type": message_type,
            "is_read": False,
            "read_at": None,
            "is_deleted": False,
            "created_at": datetime.now(timezone.utc),
        }
        doc[thread_field] = thread_id
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def list_for_thread(
        self, thread_field: str, thread_id: str, page: int = 1, page_size: int = 50
    ) -> Tuple[List[MessageDocument], int]:
        query = {thread_field: thread_id, "is_deleted": False}
        skip = (page - 1) * page_size
        cursor = (
            self.collection.find(query)
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .skip(skip)
            .limit(page_size)
        )
        items = await cursor.to_list(length=page_size)
        total = await self.collection.count_documents(query)
        # newest page first from the store, oldest first for the client
        return [normalize_id(it) for it in reversed(items)], total

    async def mark_read(self, conversation_id: str, reader_id: str) -> int:
        result = await self.collection.update_many(
            {CONVERSATION: conversation_id, "sender_id": {"$ne": reader_id}, "is_read": False},
            {"$set": {"is_read": True, "read_at": datetime.now(timezone.utc)}},
        )
        return result.modified_count or 0

    async def count_unread(self, conversation_id: str, reader_id: str) -> int:
        return await self.collection.count_documents(
            {
                CONVERSATION: conversation_id,
                "sender_id": {"$ne": reader_id},
                "is_read": False,
                "is_deleted": False,
            }
        )

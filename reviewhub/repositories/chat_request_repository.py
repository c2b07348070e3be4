from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from reviewhub.database.operations import normalize_id, try_object_id
from reviewhub.models.chat_request import ChatRequestDocument


class ChatRequestRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["chat_requests"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("student_id", ASCENDING), ("reviewer_id", ASCENDING)])
        await self.collection.create_index([("advisor_id", ASCENDING), ("status", ASCENDING)])
        await self.collection.create_index([("status", ASCENDING)])

    async def create(self, student_id: str, reviewer_id: str, advisor_id: str, reason: str) -> ChatRequestDocument:
        doc: ChatRequestDocument = {
            "student_id": student_id,
            "reviewer_id": reviewer_id,
            "advisor_id": advisor_id,
            "status": "pending",
            "reason": reason,
            "rejection_reason": None,
            "responded_at": None,
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def find_by_id(self, request_id: str) -> Optional[ChatRequestDocument]:
        oid = try_object_id(request_id)
        if oid is None:
            return None
        return normalize_id(await self.collection.find_one({"_id": oid}))

    async def find_outstanding(self, student_id: str, reviewer_id: str) -> Optional[ChatRequestDocument]:
        doc = await self.collection.find_one(
            {
                "student_id": student_id,
                "reviewer_id": reviewer_id,
                "status": {"$in": ["pending", "approved"]},
            }
        )
        return normalize_id(doc)

    async def is_chat_approved(self, student_id: str, reviewer_id: str) -> bool:
        doc = await self.collection.find_one(
            {"student_id": student_id, "reviewer_id": reviewer_id, "status": "approved"},
            {"_id": 1},
        )
        return doc is not None

    async def transition(
        self, request_id: str, advisor_id: str, status: str, rejection_reason: Optional[str] = None
    ) -> Optional[ChatRequestDocument]:
        """Move a pending request owned by ``advisor_id`` to ``status``.

        Returns None when nothing matched; the caller decides why.
        """
        oid = try_object_id(request_id)
        if oid is None:
            return None
        update: Dict[str, Any] = {"status": status, "responded_at": datetime.now(timezone.utc)}
        if status == "rejected":
            update["rejection_reason"] = rejection_reason
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "advisor_id": advisor_id, "status": "pending"},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        return normalize_id(doc)

    async def list_for_advisor(self, advisor_id: str, status: Optional[str] = None) -> List[ChatRequestDocument]:
        query: Dict[str, Any] = {"advisor_id": advisor_id}
        if status:
            query["status"] = status
        cursor = self.collection.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
        items = await cursor.to_list(length=500)
        return [normalize_id(it) for it in items]

    async def list_approved(self, field: str, identity_id: str) -> List[ChatRequestDocument]:
        cursor = self.collection.find({field: identity_id, "status": "approved"})
        items = await cursor.to_list(length=500)
        return [normalize_id(it) for it in items]

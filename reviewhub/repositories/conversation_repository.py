from datetime import datetime, timezone
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from reviewhub.database.operations import insert_if_absent, normalize_id, try_object_id
from reviewhub.models.conversation import ConversationDocument


def pair_key(id_a: str, id_b: str) -> str:
    return ":".join(sorted([id_a, id_b]))


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        # one active conversation per unordered pair; concurrent upserts collapse onto it
        await self.collection.create_index(
            [("pair_key", ASCENDING)], unique=True, partialFilterExpression={"is_active": True}
        )
        await self.collection.create_index(
            [("participant_ids", ASCENDING), ("last_message_at", DESCENDING)]
        )

    async def find_by_id(self, conversation_id: str) -> Optional[ConversationDocument]:
        oid = try_object_id(conversation_id)
        if oid is None:
            return None
        return normalize_id(await self.collection.find_one({"_id": oid}))

    async def find_between(self, id_a: str, id_b: str) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one({"pair_key": pair_key(id_a, id_b), "is_active": True})
        return normalize_id(doc)

    async def get_or_create(
        self,
        participant_ids: List[str],
        participant_tags: List[str],
        participant_roles: List[str],
        created_by: str,
    ) -> Tuple[ConversationDocument, bool]:
        now = datetime.now(timezone.utc)
        doc: ConversationDocument = {
            "participant_ids": participant_ids,
            "participant_tags": participant_tags,
            "participant_roles": participant_roles,
            "pair_key": pair_key(*participant_ids),
            "last_message_preview": None,
            "last_message_at": now,
            "unread_counts": {pid: 0 for pid in participant_ids},
            "is_active": True,
            "created_by": created_by,
            "created_at": now,
        }
        return await insert_if_absent(
            self.collection,
            {"pair_key": doc["pair_key"], "is_active": True},
            doc,
        )

    async def update_on_new_message(self, conversation_id: str, preview: str, receiver_id: str) -> None:
        await self.collection.update_one(
            {"_id": try_object_id(conversation_id)},
            {
                "$set": {
                    "last_message_at": datetime.now(timezone.utc),
                    "last_message_preview": preview,
                },
                "$inc": {f"unread_counts.{receiver_id}": 1},
            },
        )

    async def reset_unread(self, conversation_id: str, participant_id: str) -> None:
        await self.set_unread(conversation_id, participant_id, 0)

    async def set_unread(self, conversation_id: str, participant_id: str, count: int) -> None:
        await self.collection.update_one(
            {"_id": try_object_id(conversation_id)},
            {"$set": {f"unread_counts.{participant_id}": count}},
        )

    async def list_for_identity(self, identity_id: str, limit: int = 100) -> List[ConversationDocument]:
        cursor = (
            self.collection.find({"participant_ids": identity_id, "is_active": True})
            .sort([("last_message_at", DESCENDING), ("_id", DESCENDING)])
            .limit(limit)
        )
        items = await cursor.to_list(length=limit)
        return [normalize_id(it) for it in items]

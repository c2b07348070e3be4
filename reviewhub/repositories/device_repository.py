from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from reviewhub.models.device import DeviceDocument


class DeviceRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["devices"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("identity_id", ASCENDING), ("platform", ASCENDING)])

    async def register(self, identity_id: str, platform: str, token: str) -> DeviceDocument:
        now = datetime.now(timezone.utc)
        await self.collection.update_one(
            {"identity_id": identity_id, "platform": platform, "token": token},
            {"$set": {"last_seen_at": now}},
            upsert=True,
        )
        return {"identity_id": identity_id, "platform": platform, "token": token}

    async def get_tokens(self, identity_id: str, platform: Optional[str] = None) -> List[str]:
        query: Dict[str, Any] = {"identity_id": identity_id}
        if platform:
            query["platform"] = platform
        cur = self.collection.find(query)
        items = await cur.to_list(length=100)
        return [it["token"] for it in items]

    async def remove_tokens(self, identity_id: str, tokens: List[str]) -> int:
        if not tokens:
            return 0
        result = await self.collection.delete_many({"identity_id": identity_id, "token": {"$in": tokens}})
        return result.deleted_count or 0

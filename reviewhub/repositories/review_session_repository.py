from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from reviewhub.database.operations import normalize_id, try_object_id
from reviewhub.models.review_session import ReviewSessionDocument


class ReviewSessionRepository:
    """Read-only view of review sessions; they are scheduled elsewhere."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["review_sessions"]

    async def find_by_id(self, review_session_id: str) -> Optional[ReviewSessionDocument]:
        oid = try_object_id(review_session_id)
        if oid is None:
            return None
        return normalize_id(await self.collection.find_one({"_id": oid}))

    async def distinct_for(self, field: str, query: Dict[str, Any]) -> List[str]:
        values = await self.collection.distinct(field, query)
        return [str(v) for v in values if v]

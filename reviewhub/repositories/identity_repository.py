from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from reviewhub.database.operations import normalize_id, try_object_id
from reviewhub.models.identity import AccountDocument, StudentDocument


class AccountRepository:
    """Staff-like identities (admin, advisor, reviewer) in ``users``."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["users"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("role", ASCENDING), ("status", ASCENDING)])

    async def get_by_id(self, account_id: str) -> Optional[AccountDocument]:
        oid = try_object_id(account_id)
        if oid is None:
            return None
        return normalize_id(await self.collection.find_one({"_id": oid}))

    async def find_many(self, account_ids: List[str]) -> List[AccountDocument]:
        oids = [oid for oid in (try_object_id(i) for i in account_ids) if oid is not None]
        if not oids:
            return []
        cursor = self.collection.find({"_id": {"$in": oids}, "status": {"$ne": "inactive"}})
        items = await cursor.to_list(length=len(oids))
        return [normalize_id(it) for it in items]

    async def list_ids_by_role(self, roles: List[str]) -> List[str]:
        cursor = self.collection.find(
            {"role": {"$in": roles}, "status": {"$ne": "inactive"}}, {"_id": 1}
        )
        return [str(doc["_id"]) async for doc in cursor]


class StudentRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["students"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("advisor_id", ASCENDING), ("status", ASCENDING)])

    async def get_by_id(self, student_id: str) -> Optional[StudentDocument]:
        oid = try_object_id(student_id)
        if oid is None:
            return None
        return normalize_id(await self.collection.find_one({"_id": oid}))

    async def find_many(self, student_ids: List[str]) -> List[StudentDocument]:
        oids = [oid for oid in (try_object_id(i) for i in student_ids) if oid is not None]
        if not oids:
            return []
        cursor = self.collection.find({"_id": {"$in": oids}})
        items = await cursor.to_list(length=len(oids))
        return [normalize_id(it) for it in items]

    async def list_by_advisor(self, advisor_id: str) -> List[StudentDocument]:
        cursor = self.collection.find({"advisor_id": advisor_id, "status": "active"})
        items = await cursor.to_list(length=1000)
        return [normalize_id(it) for it in items]

    async def list_active_ids(self) -> List[str]:
        cursor = self.collection.find({"status": {"$ne": "inactive"}}, {"_id": 1})
        return [str(doc["_id"]) async for doc in cursor]

from typing import AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from reviewhub.config.settings import settings
from reviewhub.utils.logging import get_logger

logger = get_logger()

_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo() -> AsyncIOMotorDatabase:
    global _client, _database
    _client = AsyncIOMotorClient(settings.MONGODB_URL)
    _database = _client[settings.MONGODB_DB_NAME]
    logger.info(f"Connected to MongoDB database '{settings.MONGODB_DB_NAME}'")
    return _database


async def close_mongo_connection() -> None:
    global _client, _database
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _database = None


def get_database() -> AsyncIOMotorDatabase:
    if _database is None:
        raise RuntimeError("MongoDB is not connected")
    return _database


async def mongo_db_dependency() -> AsyncIterator[AsyncIOMotorDatabase]:
    yield get_database()

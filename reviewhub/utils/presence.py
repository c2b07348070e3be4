"""Process-wide presence: identity id -> set of live connection ids.

The tracker is created in the application lifespan and handed to whoever
needs it; nothing imports a module-level instance.
"""
import asyncio
from typing import Dict, List, Set

import redis.asyncio as redis

from .logging import get_logger

logger = get_logger()


class PresenceTracker:
    """An identity is online iff it has at least one registered connection."""

    async def mark_online(self, identity_id: str, connection_id: str) -> None:
        raise NotImplementedError

    async def mark_offline(self, identity_id: str, connection_id: str) -> bool:
        """Remove one connection and return whether the identity is still online."""
        raise NotImplementedError

    async def force_offline(self, identity_id: str) -> None:
        raise NotImplementedError

    async def is_online(self, identity_id: str) -> bool:
        raise NotImplementedError

    async def connections_for(self, identity_id: str) -> Set[str]:
        raise NotImplementedError

    async def size(self) -> int:
        raise NotImplementedError

    async def online_ids(self) -> List[str]:
        raise NotImplementedError

    async def close(self) -> None:
        return


class InMemoryPresenceTracker(PresenceTracker):

    def __init__(self) -> None:
        self._connections: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()

    async def mark_online(self, identity_id: str, connection_id: str) -> None:
        if not identity_id or not connection_id:
            return
        async with self._lock:
            sockets = self._connections.setdefault(identity_id, set())
            sockets.add(connection_id)
            count = len(sockets)
        logger.info(f"Identity online: {identity_id} (connections: {count})")

    async def mark_offline(self, identity_id: str, connection_id: str) -> bool:
        async with self._lock:
            sockets = self._connections.get(identity_id)
            if sockets is None:
                return False
            sockets.discard(connection_id)
            remaining = len(sockets)
            if not remaining:
                # never keep an empty set around; size() counts entries
                del self._connections[identity_id]
        if remaining:
            logger.info(f"Connection removed: {identity_id} (remaining: {remaining})")
            return True
        logger.info(f"Identity offline: {identity_id}")
        return False

    async def force_offline(self, identity_id: str) -> None:
        async with self._lock:
            self._connections.pop(identity_id, None)
        logger.info(f"Identity forced offline: {identity_id}")

    async def is_online(self, identity_id: str) -> bool:
        return bool(self._connections.get(identity_id))

    async def connections_for(self, identity_id: str) -> Set[str]:
        return set(self._connections.get(identity_id, ()))

    async def size(self) -> int:
        return len(self._connections)

    async def online_ids(self) -> List[str]:
        return list(self._connections.keys())


class RedisPresenceTracker(PresenceTracker):
    """Presence kept in one Redis SET per identity (``presence:<id>``).

    Redis deletes a set when its last member is removed, so the
    no-empty-entry invariant holds without extra bookkeeping.
    """

    KEY_PREFIX = "presence:"

    def __init__(self, client: "redis.Redis") -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisPresenceTracker":
        return cls(redis.from_url(url, decode_responses=True))

    def _key(self, identity_id: str) -> str:
        return f"{self.KEY_PREFIX}{identity_id}"

    async def mark_online(self, identity_id: str, connection_id: str) -> None:
        if not identity_id or not connection_id:
            return
        await self._redis.sadd(self._key(identity_id), connection_id)
        logger.info(f"Identity online: {identity_id}")

    async def mark_offline(self, identity_id: str, connection_id: str) -> bool:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.srem(self._key(identity_id), connection_id)
            pipe.scard(self._key(identity_id))
            _, remaining = await pipe.execute()
        if remaining:
            logger.info(f"Connection removed: {identity_id} (remaining: {remaining})")
            return True
        logger.info(f"Identity offline: {identity_id}")
        return False

    async def force_offline(self, identity_id: str) -> None:
        await self._redis.delete(self._key(identity_id))
        logger.info(f"Identity forced offline: {identity_id}")

    async def is_online(self, identity_id: str) -> bool:
        return await self._redis.scard(self._key(identity_id)) > 0

    async def connections_for(self, identity_id: str) -> Set[str]:
        members = await self._redis.smembers(self._key(identity_id))
        return {m.decode("utf-8") if isinstance(m, bytes) else m for m in members}

    async def online_ids(self) -> List[str]:
        ids = []
        async for key in self._redis.scan_iter(match=f"{self.KEY_PREFIX}*"):
            if isinstance(key, bytes):
                key = key.decode("utf-8")
            ids.append(key[len(self.KEY_PREFIX):])
        return ids

    async def size(self) -> int:
        return len(await self.online_ids())

    async def close(self) -> None:
        await self._redis.aclose()


def build_presence_tracker(settings) -> PresenceTracker:
    if settings.PRESENCE_BACKEND == "redis":
        logger.info("Using Redis presence backend")
        return RedisPresenceTracker.from_url(settings.REDIS_URL)
    return InMemoryPresenceTracker()

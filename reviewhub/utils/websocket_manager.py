from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from .logging import get_logger
from .serialization import serialize_document

logger = get_logger()


def personal_room(identity_id: str) -> str:
    return f"user:{identity_id}"


class ConnectionManager:
    """Live sockets of this process, addressed by connection id and grouped in rooms."""

    def __init__(self) -> None:
        self.active_connections: Dict[str, WebSocket] = {}
        self.rooms: Dict[str, Set[str]] = {}
        # identity attached to each authenticated connection
        self.owners: Dict[str, Any] = {}

    async def connect(self, connection_id: str, websocket: WebSocket, owner: Any = None) -> None:
        await websocket.accept()
        self.active_connections[connection_id] = websocket
        if owner is not None:
            self.owners[connection_id] = owner

    def disconnect(self, connection_id: str) -> None:
        self.active_connections.pop(connection_id, None)
        self.owners.pop(connection_id, None)
        for room in list(self.rooms):
            self.leave(connection_id, room)

    def join(self, connection_id: str, room: str) -> None:
        self.rooms.setdefault(room, set()).add(connection_id)

    def leave(self, connection_id: str, room: str) -> None:
        members = self.rooms.get(room)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self.rooms[room]

    def room_members(self, room: str) -> Set[str]:
        return set(self.rooms.get(room, ()))

    def identities_in(self, room: str) -> List[Any]:
        """Owners with at least one connection in ``room``, one entry per identity."""
        seen: Dict[str, Any] = {}
        for connection_id in sorted(self.room_members(room)):
            owner = self.owners.get(connection_id)
            if owner is not None:
                seen.setdefault(owner.id, owner)
        return list(seen.values())

    async def send_to_connection(self, connection_id: str, event: str, data: Any) -> bool:
        conn = self.active_connections.get(connection_id)
        if conn is None:
            return False
        try:
            await conn.send_json({"event": event, "data": serialize_document(data)})
        except Exception:
            # a dying socket must not break delivery to the others
            logger.warning(f"Failed to deliver '{event}' to connection {connection_id}")
            return False
        return True

    async def emit_to_room(self, room: str, event: str, data: Any, exclude: Optional[str] = None) -> int:
        delivered = 0
        for connection_id in self.room_members(room):
            if connection_id == exclude:
                continue
            if await self.send_to_connection(connection_id, event, data):
                delivered += 1
        return delivered

    async def emit_to_identity(self, identity_id: str, event: str, data: Any) -> int:
        return await self.emit_to_room(personal_room(identity_id), event, data)

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
from bson import ObjectId
from fastapi import WebSocketDisconnect

from reviewhub.config.settings import settings
from reviewhub.utils.push import PushResult


class FakePush:
    """Push channel double recording every send."""

    enabled = True

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.invalid_tokens: set = set()

    async def send(self, tokens, title, body, data=None):
        self.sent.append({"tokens": list(tokens), "title": title, "body": body, "data": data})
        return [
            PushResult(token=t, success=t not in self.invalid_tokens, invalid=t in self.invalid_tokens)
            for t in tokens
        ]


class FakeWebSocket:
    """Just enough of starlette's WebSocket for the gateway and connection manager."""

    def __init__(self, broken: bool = False) -> None:
        self.accepted = False
        self.broken = broken
        self.closed_code: Optional[int] = None
        self.sent: List[Dict[str, Any]] = []
        self._inbox: "asyncio.Queue[Optional[str]]" = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def close(self, code: int = 1000) -> None:
        self.closed_code = code

    async def send_json(self, data: Any) -> None:
        if self.broken:
            raise RuntimeError("socket is gone")
        # round-trip through json to catch non-serializable payloads
        self.sent.append(json.loads(json.dumps(data)))

    async def receive_text(self) -> str:
        raw = await self._inbox.get()
        if raw is None:
            raise WebSocketDisconnect(code=1000)
        return raw

    def feed(self, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        self._inbox.put_nowait(json.dumps({"event": event, "data": data or {}}))

    def feed_raw(self, raw: str) -> None:
        self._inbox.put_nowait(raw)

    def disconnect(self) -> None:
        self._inbox.put_nowait(None)

    def events(self, name: str) -> List[Any]:
        return [frame["data"] for frame in self.sent if frame["event"] == name]


def make_token(identity_id: str, minutes: int = 15, **claims) -> str:
    payload = {"sub": identity_id, "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes)}
    payload.update(claims)
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


async def insert_account(db, name: str, role: str, **extra) -> str:
    doc = {"_id": ObjectId(), "name": name, "email": f"{name.lower()}@example.com", "role": role, "status": "active"}
    doc.update(extra)
    await db["users"].insert_one(doc)
    return str(doc["_id"])


async def insert_student(db, name: str, advisor_id: Optional[str], **extra) -> str:
    doc = {
        "_id": ObjectId(),
        "name": name,
        "email": f"{name.lower()}@example.com",
        "advisor_id": advisor_id,
        "status": "active",
    }
    doc.update(extra)
    await db["students"].insert_one(doc)
    return str(doc["_id"])


async def approve_pair(services, people) -> Dict[str, Any]:
    request = await services.chat_requests.create(people["student"], people["reviewer"].id, "Question about feedback")
    return await services.chat_requests.approve(request["_id"], people["advisor"])


async def connect(services, identity):
    """Open an authenticated gateway session for ``identity``."""
    ws = FakeWebSocket()
    session = await services.gateway.open(ws, make_token(identity.id))
    return ws, session

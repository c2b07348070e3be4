"""WebSocket sessions: authenticate, attach identity, route inbound events.

Frames are JSON objects ``{"event": name, "data": {...}}`` in both
directions. Every handler re-checks thread membership; a successful
join is never taken as permission for later events.
"""
import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect

from reviewhub.schemas.identity import Identity
from reviewhub.services.chat_service import ChatService
from reviewhub.services.identity_service import IdentityResolver
from reviewhub.services.notification_service import NotificationService
from reviewhub.services.review_chat_service import ReviewChatService, session_participants
from reviewhub.utils.errors import AuthenticationError, NotFoundError, ReviewHubError
from reviewhub.utils.logging import get_logger
from reviewhub.utils.presence import PresenceTracker
from reviewhub.utils.security import decode_access_token
from reviewhub.utils.websocket_manager import ConnectionManager, personal_room

logger = get_logger()

UNAUTHORIZED_CLOSE_CODE = 4401


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class Session:
    connection_id: str
    websocket: WebSocket
    state: SessionState = SessionState.CONNECTING
    identity: Optional[Identity] = None
    rooms: Set[str] = field(default_factory=set)


def chat_room(conversation_id: str) -> str:
    return f"chat:{conversation_id}"


def review_room(review_session_id: str) -> str:
    return f"review:{review_session_id}"


class SessionGateway:

    def __init__(
        self,
        identities: IdentityResolver,
        presence: PresenceTracker,
        manager: ConnectionManager,
        chat: ChatService,
        review_chat: ReviewChatService,
        notifications: NotificationService,
    ) -> None:
        self._identities = identities
        self._presence = presence
        self._manager = manager
        self._chat = chat
        self._review_chat = review_chat
        self._notifications = notifications
        self._handlers: Dict[str, Callable[[Session, Dict[str, Any]], Awaitable[None]]] = {
            "chat:join": self.on_chat_join,
            "chat:send": self.on_chat_send,
            "chat:markRead": self.on_chat_mark_read,
            "chat:leave": self.on_chat_leave,
            "chat:typing": self.on_chat_typing,
            "reviewChat:join": self.on_review_join,
            "reviewChat:send": self.on_review_send,
            "reviewChat:leave": self.on_review_leave,
            "reviewChat:getParticipants": self.on_review_participants,
            "notification:markRead": self.on_notification_mark_read,
            "notification:markAllRead": self.on_notification_mark_all_read,
            "notification:getUnreadCount": self.on_notification_unread_count,
        }

    # lifecycle

    async def authenticate(self, token: Optional[str]) -> Identity:
        claims = decode_access_token(token)
        try:
            return await self._identities.resolve(claims["sub"])
        except NotFoundError:
            raise AuthenticationError("User not found")

    async def open(self, websocket: WebSocket, token: Optional[str]) -> Optional[Session]:
        session = Session(connection_id=uuid.uuid4().hex, websocket=websocket)
        try:
            identity = await self.authenticate(token)
        except AuthenticationError as exc:
            logger.warning(f"Socket auth error: {exc.message}")
            session.state = SessionState.CLOSED
            await websocket.close(code=UNAUTHORIZED_CLOSE_CODE)
            return None

        session.identity = identity
        session.state = SessionState.AUTHENTICATED
        await self._manager.connect(session.connection_id, websocket, identity)
        await self._presence.mark_online(identity.id, session.connection_id)
        self._manager.join(session.connection_id, personal_room(identity.id))
        logger.info(
            f"Socket connected: {identity.display_name} ({identity.role}) - {session.connection_id}"
        )
        await self._notifications.send_pending(identity, session.connection_id)
        session.state = SessionState.ACTIVE
        return session

    async def close(self, session: Session) -> None:
        if session.state == SessionState.CLOSED:
            return
        session.state = SessionState.CLOSED
        self._manager.disconnect(session.connection_id)
        if session.identity is not None:
            await self._presence.mark_offline(session.identity.id, session.connection_id)
            logger.info(f"Socket disconnected: {session.identity.display_name} - {session.connection_id}")

    async def serve(self, websocket: WebSocket, token: Optional[str]) -> None:
        session = await self.open(websocket, token)
        if session is None:
            return
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    frame = json.loads(raw)
                except ValueError:
                    await self._emit(session, "error", {"message": "Invalid message payload"})
                    continue
                if not isinstance(frame, dict):
                    await self._emit(session, "error", {"message": "Invalid message payload"})
                    continue
                # awaited in order: events of one connection are never reordered
                await self.dispatch(session, frame.get("event"), frame.get("data") or {})
        except WebSocketDisconnect:
            pass
        finally:
            await self.close(session)

    async def dispatch(self, session: Session, event: Any, data: Dict[str, Any]) -> None:
        if session.state != SessionState.ACTIVE:
            return
        if not isinstance(event, str):
            await self._emit(session, "error", {"message": "Invalid message payload"})
            return
        handler = self._handlers.get(event)
        if handler is None:
            await self._emit(session, "error", {"message": f"Unknown event: {event}"})
            return
        namespace = event.split(":", 1)[0]
        try:
            await handler(session, data if isinstance(data, dict) else {})
        except ReviewHubError as exc:
            await self._emit(session, f"{namespace}:error", exc.to_payload())
        except Exception:
            logger.exception(f"{event} error")
            await self._emit(
                session, f"{namespace}:error", {"message": f"Failed to handle {event}", "error_code": "INTERNAL_ERROR"}
            )

    async def _emit(self, session: Session, event: str, data: Any) -> None:
        await self._manager.send_to_connection(session.connection_id, event, data)

    def _join(self, session: Session, room: str) -> None:
        self._manager.join(session.connection_id, room)
        session.rooms.add(room)

    def _leave(self, session: Session, room: str) -> None:
        self._manager.leave(session.connection_id, room)
        session.rooms.discard(room)

    # chat

    async def on_chat_join(self, session: Session, data: Dict[str, Any]) -> None:
        conversation = await self._chat.get_for_participant(data.get("conversationId"), session.identity)
        self._join(session, chat_room(conversation["_id"]))
        logger.info(f"{session.identity.display_name} joined chat:{conversation['_id']}")
        await self._emit(session, "chat:joined", {"conversationId": conversation["_id"]})

    async def on_chat_send(self, session: Session, data: Dict[str, Any]) -> None:
        identity = session.identity
        message, conversation, recipient_id = await self._chat.send_message(
            data.get("conversationId"), identity, data.get("content")
        )
        message_data = {
            "_id": message["_id"],
            "conversationId": conversation["_id"],
            "senderId": identity.id,
            "senderName": identity.display_name,
            "content": message["content"],
            "createdAt": message["created_at"],
        }
        await self._manager.emit_to_room(chat_room(conversation["_id"]), "chat:receive", message_data)
        await self._manager.emit_to_identity(
            recipient_id, "chat:newMessage", {"conversationId": conversation["_id"], "message": message_data}
        )

    async def on_chat_mark_read(self, session: Session, data: Dict[str, Any]) -> None:
        conversation_id = data.get("conversationId")
        await self._chat.mark_read(conversation_id, session.identity)
        await self._emit(session, "chat:messagesRead", {"conversationId": conversation_id})

    async def on_chat_leave(self, session: Session, data: Dict[str, Any]) -> None:
        conversation = await self._chat.get_for_participant(data.get("conversationId"), session.identity)
        self._leave(session, chat_room(conversation["_id"]))
        logger.info(f"{session.identity.display_name} left chat:{conversation['_id']}")

    async def on_chat_typing(self, session: Session, data: Dict[str, Any]) -> None:
        conversation = await self._chat.get_for_participant(data.get("conversationId"), session.identity)
        await self._manager.emit_to_room(
            chat_room(conversation["_id"]),
            "chat:userTyping",
            {
                "conversationId": conversation["_id"],
                "userId": session.identity.id,
                "userName": session.identity.display_name,
                "isTyping": bool(data.get("isTyping")),
            },
            exclude=session.connection_id,
        )

    # review session chat

    async def on_review_join(self, session: Session, data: Dict[str, Any]) -> None:
        review = await self._review_chat.get_for_participant(data.get("reviewSessionId"), session.identity)
        self._join(session, review_room(review["_id"]))
        await self._emit(
            session,
            "reviewChat:joined",
            {"reviewSessionId": review["_id"], "reviewInfo": {"week": review.get("week"), "status": review.get("status")}},
        )

    async def on_review_send(self, session: Session, data: Dict[str, Any]) -> None:
        identity = session.identity
        message, review = await self._review_chat.send(data.get("reviewSessionId"), identity, data.get("content"))
        message_data = {
            "_id": message["_id"],
            "reviewSessionId": review["_id"],
            "senderId": identity.id,
            "senderName": identity.display_name,
            "senderRole": identity.role,
            "content": message["content"],
            "createdAt": message["created_at"],
        }
        await self._manager.emit_to_room(review_room(review["_id"]), "reviewChat:receive", message_data)
        for participant_id in session_participants(review):
            if participant_id != identity.id:
                await self._manager.emit_to_identity(
                    participant_id,
                    "reviewChat:newMessage",
                    {"reviewSessionId": review["_id"], "message": message_data},
                )

    async def on_review_leave(self, session: Session, data: Dict[str, Any]) -> None:
        review = await self._review_chat.get_for_participant(data.get("reviewSessionId"), session.identity)
        self._leave(session, review_room(review["_id"]))

    async def on_review_participants(self, session: Session, data: Dict[str, Any]) -> None:
        review = await self._review_chat.get_for_participant(data.get("reviewSessionId"), session.identity)
        participants = [
            {"id": identity.id, "name": identity.display_name, "role": identity.role}
            for identity in self._manager.identities_in(review_room(review["_id"]))
        ]
        await self._emit(
            session, "reviewChat:participants", {"reviewSessionId": review["_id"], "participants": participants}
        )

    # notifications

    async def on_notification_mark_read(self, session: Session, data: Dict[str, Any]) -> None:
        notification_id = data.get("notificationId")
        await self._notifications.mark_read(notification_id, session.identity)
        await self._emit(session, "notification:read", {"notificationId": notification_id})

    async def on_notification_mark_all_read(self, session: Session, data: Dict[str, Any]) -> None:
        await self._notifications.mark_all_read(session.identity)
        await self._emit(session, "notification:allRead", {})

    async def on_notification_unread_count(self, session: Session, data: Dict[str, Any]) -> None:
        count = await self._notifications.unread_count(session.identity)
        await self._emit(session, "notification:unreadCount", {"count": count})

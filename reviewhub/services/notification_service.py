"""Notification dispatch: persist with dedup, then push live or fall back to FCM.

Nothing in here raises to the business operation that triggered it.
Callers submit the coroutines to the background queue and move on.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from reviewhub.models.notification import ADMIN_NOTIFICATION_TYPES
from reviewhub.repositories.identity_repository import AccountRepository, StudentRepository
from reviewhub.repositories.notification_repository import NotificationRepository
from reviewhub.schemas.identity import Identity
from reviewhub.schemas.notification import NotificationPayload
from reviewhub.services.identity_service import IdentityResolver
from reviewhub.services.push_service import PushNotificationService
from reviewhub.utils.errors import AuthorizationError, NotFoundError, ValidationError
from reviewhub.utils.logging import get_logger
from reviewhub.utils.presence import PresenceTracker
from reviewhub.utils.websocket_manager import ConnectionManager

logger = get_logger()

BROADCAST_GROUPS = ("students", "reviewers", "advisors", "all_users")


def preview(text: str, length: int = 100) -> str:
    return text[:length] + ("..." if len(text) > length else "")


class NotificationService:

    def __init__(
        self,
        repository: NotificationRepository,
        identities: IdentityResolver,
        presence: PresenceTracker,
        manager: ConnectionManager,
        push: PushNotificationService,
        accounts: AccountRepository,
        students: StudentRepository,
        dedup_window_seconds: int = 60,
        pending_limit: int = 20,
    ) -> None:
        self._repo = repository
        self._identities = identities
        self._presence = presence
        self._manager = manager
        self._push = push
        self._accounts = accounts
        self._students = students
        self._window = dedup_window_seconds
        self._pending_limit = pending_limit

    def _build_document(self, recipient_id: Optional[str], recipient_tag: str, payload: NotificationPayload) -> Dict[str, Any]:
        return {
            "recipient_id": recipient_id,
            "recipient_tag": recipient_tag,
            "sender_id": payload.sender_id,
            "sender_tag": payload.sender_tag,
            "is_broadcast": False,
            "recipient_group": None,
            "type": payload.type,
            "title": payload.title,
            "message": payload.message,
            "is_read": False,
            "read_at": None,
            "link": payload.link,
            "entity_type": payload.entity_type,
            "entity_id": payload.entity_id,
            "priority": payload.priority,
            "delivery_status": "pending",
            "created_at": datetime.now(timezone.utc),
        }

    async def notify(
        self, recipient_id: str, recipient_tag: str, payload: NotificationPayload
    ) -> Optional[Tuple[Dict[str, Any], bool]]:
        """Store and deliver one notification.

        Returns ``(notification, created)``; ``created`` is False when an
        identical event was stored within the dedup window, in which case
        nothing is delivered again. Returns None if anything failed.
        """
        try:
            doc = self._build_document(recipient_id, recipient_tag, payload)
            if payload.dedup_enabled:
                doc, created = await self._repo.insert_with_dedup(doc, self._window)
            else:
                doc, created = await self._repo.insert(doc), True
            if not created:
                logger.info(
                    f"Duplicate {payload.type} notification for {recipient_id} "
                    f"({payload.entity_type}:{payload.entity_id}) suppressed"
                )
                return doc, False
            await self._route(doc)
            return doc, True
        except Exception:
            logger.exception(f"Failed to create notification for {recipient_id}")
            return None

    async def _route(self, doc: Dict[str, Any]) -> None:
        recipient_id = doc["recipient_id"]
        if await self._presence.is_online(recipient_id):
            delivered = await self._manager.emit_to_identity(recipient_id, "notification:new", doc)
            if delivered:
                await self._repo.set_delivery_status([doc["_id"]], "delivered")
                doc["delivery_status"] = "delivered"
                logger.info(f"Notification sent to online identity: {recipient_id}")
                return
        logger.info(f"Notification stored for offline identity: {recipient_id}")
        await self._push.send_for_notification(doc)

    # chat events

    async def notify_chat_message(
        self, recipient_id: str, recipient_tag: str, conversation_id: str, sender: Identity, content: str
    ):
        return await self.notify(
            recipient_id,
            recipient_tag,
            NotificationPayload(
                type="new_message",
                title=f"Message from {sender.display_name}",
                message=preview(content),
                entity_type="chat",
                entity_id=conversation_id,
                link=f"/chat/{conversation_id}",
            ),
        )

    async def _names(self, request: Dict[str, Any]) -> Tuple[str, str]:
        people = await self._identities.resolve_many([request["student_id"], request["reviewer_id"]])
        student = people.get(request["student_id"])
        reviewer = people.get(request["reviewer_id"])
        return (
            student.display_name if student else "A student",
            reviewer.display_name if reviewer else "the reviewer",
        )

    async def notify_chat_request_created(self, request: Dict[str, Any]):
        student_name, reviewer_name = await self._names(request)
        return await self.notify(
            request["advisor_id"],
            "Account",
            NotificationPayload(
                type="info",
                title="Chat Request Pending",
                message=f"{student_name} is requesting to chat with {reviewer_name}. Please review and approve.",
                entity_type="chat_request",
                entity_id=request["_id"],
                priority="high",
                link="/chat/requests",
            ),
        )

    async def notify_chat_request_approved(self, request: Dict[str, Any]):
        student_name, reviewer_name = await self._names(request)
        await self.notify(
            request["student_id"],
            "Student",
            NotificationPayload(
                type="success",
                title="Chat Approved",
                message=f"Your request to chat with {reviewer_name} has been approved. You can now start a conversation.",
                entity_type="chat_request",
                entity_id=request["_id"],
                link="/chat",
            ),
        )
        await self.notify(
            request["reviewer_id"],
            "Account",
            NotificationPayload(
                type="info",
                title="New Chat Available",
                message=f"You can now chat with {student_name}. Their advisor has approved the chat request.",
                entity_type="chat_request",
                entity_id=request["_id"],
                link="/chat",
            ),
        )

    async def notify_chat_request_rejected(self, request: Dict[str, Any]):
        _, reviewer_name = await self._names(request)
        reason = request.get("rejection_reason")
        return await self.notify(
            request["student_id"],
            "Student",
            NotificationPayload(
                type="warning",
                title="Chat Request Declined",
                message=f"Your request to chat with {reviewer_name} was declined."
                + (f" Reason: {reason}" if reason else ""),
                entity_type="chat_request",
                entity_id=request["_id"],
            ),
        )

    async def notify_admins(self, title: str, message: str, notification_type: str = "system") -> int:
        admin_ids = await self._accounts.list_ids_by_role(["admin"])
        payload = NotificationPayload(type=notification_type, title=title, message=message, priority="high")
        sent = 0
        for admin_id in admin_ids:
            if await self.notify(admin_id, "Account", payload) is not None:
                sent += 1
        return sent

    # broadcast

    async def _broadcast_recipients(self, group: str) -> List[Tuple[str, str]]:
        if group == "students":
            return [(i, "Student") for i in await self._students.list_active_ids()]
        if group == "reviewers":
            return [(i, "Account") for i in await self._accounts.list_ids_by_role(["reviewer"])]
        if group == "advisors":
            return [(i, "Account") for i in await self._accounts.list_ids_by_role(["advisor"])]
        accounts = await self._accounts.list_ids_by_role(["advisor", "reviewer"])
        students = await self._students.list_active_ids()
        return [(i, "Account") for i in accounts] + [(i, "Student") for i in students]

    async def broadcast(self, sender: Identity, recipient_group: str, title: str, message: str) -> Dict[str, Any]:
        """Admin broadcast: one record per recipient plus a reference record for the sender."""
        if sender.role != "admin":
            raise AuthorizationError("Only admins can send broadcast notifications")
        if recipient_group not in BROADCAST_GROUPS:
            raise ValidationError(
                "Invalid recipient group. Must be: students, reviewers, advisors, or all_users"
            )
        payload = NotificationPayload(
            type="admin_broadcast", title=title, message=message, sender_id=sender.id, sender_tag="Account"
        )
        recipients = await self._broadcast_recipients(recipient_group)
        docs = []
        for recipient_id, tag in recipients:
            doc = self._build_document(recipient_id, tag, payload)
            doc["is_broadcast"] = True
            doc["recipient_group"] = recipient_group
            docs.append(doc)
        await self._repo.insert_many(docs)

        delivered_ids = []
        for doc in docs:
            try:
                if not await self._presence.is_online(doc["recipient_id"]):
                    continue
                if await self._manager.emit_to_identity(doc["recipient_id"], "notification:new", doc):
                    delivered_ids.append(doc["_id"])
            except Exception:
                logger.exception(f"Broadcast delivery to {doc['recipient_id']} failed")
        await self._repo.set_delivery_status(delivered_ids, "delivered")

        reference = self._build_document(None, "Account", payload)
        reference.update(
            {
                "is_broadcast": True,
                "recipient_group": recipient_group,
                "recipient_count": len(docs),
                "delivery_status": "delivered",
            }
        )
        await self._repo.insert(reference)
        logger.info(
            f"Broadcast '{title}' to {recipient_group}: {len(docs)} recipients, {len(delivered_ids)} live"
        )
        return reference

    # catch-up and read state

    def _visible_types(self, identity: Identity):
        # admins only get the critical subset
        return ADMIN_NOTIFICATION_TYPES if identity.role == "admin" else None

    async def send_pending(self, identity: Identity, connection_id: str) -> List[Dict[str, Any]]:
        try:
            items = await self._repo.find_undelivered_or_unread(
                identity.id, self._visible_types(identity), self._pending_limit
            )
            if not items:
                return []
            await self._manager.send_to_connection(
                connection_id, "notification:pending", {"count": len(items), "notifications": items}
            )
            pending_ids = [it["_id"] for it in items if it.get("delivery_status") == "pending"]
            await self._repo.set_delivery_status(pending_ids, "delivered")
            logger.info(f"Sent {len(items)} pending notifications to {identity.id}")
            return items
        except Exception:
            logger.exception(f"Failed to send pending notifications to {identity.id}")
            return []

    async def list_for(self, identity: Identity, limit: int = 50) -> Dict[str, Any]:
        items = await self._repo.list_for(identity.id, self._visible_types(identity), limit)
        return {"notifications": items, "unread_count": sum(1 for it in items if not it.get("is_read"))}

    async def unread_count(self, identity: Identity) -> int:
        return await self._repo.count_unread(identity.id, self._visible_types(identity))

    async def mark_read(self, notification_id: str, identity: Identity) -> Dict[str, Any]:
        doc = await self._repo.mark_read(notification_id, identity.id)
        if doc is None:
            raise NotFoundError("Notification not found")
        return doc

    async def mark_all_read(self, identity: Identity) -> int:
        count = await self._repo.mark_all_read(identity.id, self._visible_types(identity))
        logger.info(f"All notifications marked read for {identity.id} ({count})")
        return count

    async def delete(self, notification_id: str, identity: Identity) -> None:
        if not await self._repo.delete(notification_id, identity.id):
            raise NotFoundError("Notification not found")

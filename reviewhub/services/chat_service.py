from typing import Any, Dict, List, Optional, Tuple

from reviewhub.models.message import MAX_CONTENT_LENGTH, PREVIEW_LENGTH
from reviewhub.repositories.chat_request_repository import ChatRequestRepository
from reviewhub.repositories.conversation_repository import ConversationRepository
from reviewhub.repositories.identity_repository import AccountRepository, StudentRepository
from reviewhub.repositories.message_repository import CONVERSATION, MessageRepository
from reviewhub.repositories.review_session_repository import ReviewSessionRepository
from reviewhub.schemas.identity import Identity
from reviewhub.services.identity_service import (
    IdentityResolver,
    account_to_identity,
    public_profile,
    student_to_identity,
)
from reviewhub.services.notification_service import NotificationService
from reviewhub.services.permission_service import can_converse, denial_message
from reviewhub.utils.errors import AuthorizationError, NotFoundError, ValidationError
from reviewhub.utils.logging import get_logger
from reviewhub.utils.task_queue import BackgroundTaskQueue

logger = get_logger()

ACTIVE_REVIEW_STATUSES = ["pending", "scheduled", "accepted", "completed"]


def validate_content(content: Any) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Message content required")
    content = content.strip()
    if len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"Message content must be at most {MAX_CONTENT_LENGTH} characters")
    return content


def other_participant(conversation: Dict[str, Any], identity_id: str) -> Tuple[str, str]:
    """Return ``(id, tag)`` of the participant that is not ``identity_id``."""
    ids = conversation["participant_ids"]
    index = 1 if ids[0] == identity_id else 0
    return ids[index], conversation["participant_tags"][index]


class ChatService:
    """Two-party conversations: creation, messages, unread bookkeeping and contacts."""

    def __init__(
        self,
        conversation_repo: ConversationRepository,
        message_repo: MessageRepository,
        chat_request_repo: ChatRequestRepository,
        identities: IdentityResolver,
        accounts: AccountRepository,
        students: StudentRepository,
        review_sessions: ReviewSessionRepository,
        notifications: Optional[NotificationService] = None,
        queue: Optional[BackgroundTaskQueue] = None,
    ) -> None:
        self._conversation_repo = conversation_repo
        self._message_repo = message_repo
        self._chat_request_repo = chat_request_repo
        self._identities = identities
        self._accounts = accounts
        self._students = students
        self._review_sessions = review_sessions
        self._notifications = notifications
        self._queue = queue

    async def find_between(self, id_a: str, id_b: str) -> Optional[Dict[str, Any]]:
        return await self._conversation_repo.find_between(id_a, id_b)

    async def start_or_get(self, a: Identity, b: Identity, initiator_id: str) -> Tuple[Dict[str, Any], bool]:
        """Existing conversation for the unordered pair, or a new one with ``a`` first.

        Callers must have checked ``can_converse`` already.
        """
        conversation, created = await self._conversation_repo.get_or_create(
            [a.id, b.id], [a.tag, b.tag], [a.role, b.role], created_by=initiator_id
        )
        if created:
            logger.info(f"Conversation {conversation['_id']} created between {a.id} and {b.id}")
        return conversation, created

    async def start_conversation(self, initiator: Identity, target_id: Optional[str]) -> Tuple[Dict[str, Any], bool, Identity]:
        if not target_id:
            raise ValidationError("Target user ID required")
        if target_id == initiator.id:
            raise ValidationError("Cannot start conversation with yourself")
        target = await self._identities.resolve_or_none(target_id)
        if target is None:
            raise NotFoundError("Target user not found")
        if not await can_converse(initiator.role, target.role, initiator.id, target.id, self._chat_request_repo):
            raise AuthorizationError(denial_message(initiator.role, target.role))
        conversation, created = await self.start_or_get(initiator, target, initiator.id)
        return conversation, created, target

    async def get_for_participant(self, conversation_id: Optional[str], identity: Identity) -> Dict[str, Any]:
        if not conversation_id:
            raise ValidationError("Conversation ID required")
        conversation = await self._conversation_repo.find_by_id(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if identity.id not in conversation["participant_ids"]:
            raise AuthorizationError("Not authorized for this conversation")
        return conversation

    async def append_message(self, conversation_id: str, sender_id: str, sender_tag: str, content: str) -> Dict[str, Any]:
        content = validate_content(content)
        conversation = await self._conversation_repo.find_by_id(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if sender_id not in conversation["participant_ids"]:
            raise AuthorizationError("Not authorized to send messages here")
        receiver_id, _ = other_participant(conversation, sender_id)
        message = await self._message_repo.save_message(
            CONVERSATION, conversation["_id"], sender_id, sender_tag, content
        )
        # preview and counter are a cache; recount_unread() rebuilds the counter
        await self._conversation_repo.update_on_new_message(
            conversation["_id"], content[:PREVIEW_LENGTH], receiver_id
        )
        return message

    async def send_message(
        self, conversation_id: Optional[str], sender: Identity, content: Any
    ) -> Tuple[Dict[str, Any], Dict[str, Any], str]:
        """Permission-checked send; returns ``(message, conversation, recipient_id)``."""
        content = validate_content(content)
        conversation = await self.get_for_participant(conversation_id, sender)
        recipient_id, recipient_tag = other_participant(conversation, sender.id)
        recipient = await self._identities.resolve_or_none(recipient_id)
        if recipient is None:
            raise NotFoundError("Conversation participant not found")
        # approval can be revoked between messages, so this is never cached
        if not await can_converse(sender.role, recipient.role, sender.id, recipient.id, self._chat_request_repo):
            raise AuthorizationError("Chat with this user requires advisor approval")

        message = await self.append_message(conversation["_id"], sender.id, sender.tag, content)
        logger.info(f"Message sent in chat:{conversation['_id']} by {sender.id}")

        if self._notifications is not None and self._queue is not None:
            self._queue.submit(
                self._notifications.notify_chat_message(
                    recipient_id, recipient_tag, conversation["_id"], sender, content
                ),
                name=f"notify_chat_message:{conversation['_id']}",
            )
        return message, conversation, recipient_id

    async def mark_read(self, conversation_id: Optional[str], reader: Identity) -> int:
        conversation = await self.get_for_participant(conversation_id, reader)
        modified = await self._message_repo.mark_read(conversation["_id"], reader.id)
        await self._conversation_repo.reset_unread(conversation["_id"], reader.id)
        return modified

    async def recount_unread(self, conversation_id: str, participant_id: str) -> int:
        count = await self._message_repo.count_unread(conversation_id, participant_id)
        await self._conversation_repo.set_unread(conversation_id, participant_id, count)
        return count

    async def list_messages(
        self, conversation_id: str, identity: Identity, page: int = 1, page_size: int = 50
    ) -> Tuple[List[Dict[str, Any]], int]:
        conversation = await self.get_for_participant(conversation_id, identity)
        return await self._message_repo.list_for_thread(CONVERSATION, conversation["_id"], page, page_size)

    async def list_conversations(self, identity: Identity) -> List[Dict[str, Any]]:
        conversations = await self._conversation_repo.list_for_identity(identity.id)
        others = await self._identities.resolve_many(
            [other_participant(c, identity.id)[0] for c in conversations]
        )
        items = []
        for conv in conversations:
            other_id, _ = other_participant(conv, identity.id)
            other = others.get(other_id)
            items.append(
                {
                    "_id": conv["_id"],
                    "other_participant": public_profile(other) if other else {"_id": other_id, "name": "Unknown"},
                    "last_message": conv.get("last_message_preview"),
                    "last_message_at": conv.get("last_message_at"),
                    "unread_count": (conv.get("unread_counts") or {}).get(identity.id, 0),
                    "created_at": conv.get("created_at"),
                }
            )
        return items

    async def get_contacts(self, identity: Identity) -> List[Dict[str, Any]]:
        contacts: List[Dict[str, Any]] = []

        if identity.role == "advisor":
            for doc in await self._students.list_by_advisor(identity.id):
                contacts.append(public_profile(student_to_identity(doc)))
            reviewer_ids = await self._review_sessions.distinct_for("reviewer_id", {"advisor_id": identity.id})
            for doc in await self._accounts.find_many(reviewer_ids):
                contacts.append(public_profile(account_to_identity(doc)))

        elif identity.role == "student":
            if identity.advisor_id:
                advisor = await self._accounts.get_by_id(identity.advisor_id)
                if advisor:
                    contacts.append(public_profile(account_to_identity(advisor)))
            approved = await self._chat_request_repo.list_approved("student_id", identity.id)
            approved_ids = [r["reviewer_id"] for r in approved]
            for doc in await self._accounts.find_many(approved_ids):
                contacts.append({**public_profile(account_to_identity(doc)), "chat_approved": True})
            session_reviewers = await self._review_sessions.distinct_for(
                "reviewer_id", {"student_id": identity.id, "status": {"$in": ACTIVE_REVIEW_STATUSES}}
            )
            requestable = [r for r in session_reviewers if r not in approved_ids]
            for doc in await self._accounts.find_many(requestable):
                contacts.append({**public_profile(account_to_identity(doc)), "can_request_chat": True})

        elif identity.role == "reviewer":
            advisor_ids = await self._review_sessions.distinct_for("advisor_id", {"reviewer_id": identity.id})
            for doc in await self._accounts.find_many(advisor_ids):
                contacts.append(public_profile(account_to_identity(doc)))
            approved = await self._chat_request_repo.list_approved("reviewer_id", identity.id)
            for doc in await self._students.find_many([r["student_id"] for r in approved]):
                contacts.append({**public_profile(student_to_identity(doc)), "chat_approved": True})

        unique = {}
        for contact in contacts:
            unique.setdefault(contact["_id"], contact)
        return list(unique.values())

from typing import Any, Dict, List, Optional, Tuple

from reviewhub.repositories.message_repository import REVIEW_SESSION, MessageRepository
from reviewhub.repositories.review_session_repository import ReviewSessionRepository
from reviewhub.schemas.identity import Identity
from reviewhub.services.chat_service import validate_content
from reviewhub.utils.errors import AuthorizationError, NotFoundError, ValidationError
from reviewhub.utils.logging import get_logger

logger = get_logger()


def session_participants(review: Dict[str, Any]) -> List[str]:
    return [pid for pid in (review.get("student_id"), review.get("reviewer_id"), review.get("advisor_id")) if pid]


class ReviewChatService:
    """Messages scoped to a review session; its student, reviewer and advisor talk freely."""

    def __init__(self, review_sessions: ReviewSessionRepository, message_repo: MessageRepository) -> None:
        self._review_sessions = review_sessions
        self._message_repo = message_repo

    async def get_for_participant(self, review_session_id: Optional[str], identity: Identity) -> Dict[str, Any]:
        if not review_session_id:
            raise ValidationError("Review session ID required")
        review = await self._review_sessions.find_by_id(review_session_id)
        if review is None:
            raise NotFoundError("Review session not found")
        if identity.id not in session_participants(review):
            raise AuthorizationError("You are not a participant in this review session")
        return review

    async def send(
        self, review_session_id: Optional[str], sender: Identity, content: Any
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        content = validate_content(content)
        review = await self.get_for_participant(review_session_id, sender)
        if review.get("status") == "cancelled":
            raise ValidationError("Cannot send messages in a cancelled review")
        message = await self._message_repo.save_message(
            REVIEW_SESSION, review["_id"], sender.id, sender.tag, content
        )
        logger.info(f"Review message sent in review:{review['_id']} by {sender.id}")
        return message, review

    async def list_messages(
        self, review_session_id: str, identity: Identity, page: int = 1, page_size: int = 50
    ) -> Tuple[List[Dict[str, Any]], int]:
        review = await self.get_for_participant(review_session_id, identity)
        return await self._message_repo.list_for_thread(REVIEW_SESSION, review["_id"], page, page_size)

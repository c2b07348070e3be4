from typing import Any, Dict, List, Optional

from reviewhub.models.chat_request import DEFAULT_REASON, MAX_REASON_LENGTH
from reviewhub.repositories.chat_request_repository import ChatRequestRepository
from reviewhub.schemas.identity import Identity
from reviewhub.services.identity_service import IdentityResolver
from reviewhub.services.notification_service import NotificationService
from reviewhub.utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from reviewhub.utils.logging import get_logger
from reviewhub.utils.task_queue import BackgroundTaskQueue

logger = get_logger()


class ChatRequestService:
    """Advisor approval of student <-> reviewer chats.

    pending -> approved | rejected, both terminal. Transitions are a single
    conditional update so concurrent approve/reject calls cannot both win.
    """

    def __init__(
        self,
        repository: ChatRequestRepository,
        identities: IdentityResolver,
        notifications: Optional[NotificationService] = None,
        queue: Optional[BackgroundTaskQueue] = None,
    ) -> None:
        self._repo = repository
        self._identities = identities
        self._notifications = notifications
        self._queue = queue

    def _fire(self, job, name: str) -> None:
        if self._queue is None:
            job.close()
            return
        self._queue.submit(job, name=name)

    async def create(self, student: Identity, reviewer_id: Optional[str], reason: Optional[str] = None) -> Dict[str, Any]:
        if not student.is_student:
            raise AuthorizationError("Only students can request chat with reviewers")
        if not reviewer_id:
            raise ValidationError("Reviewer ID required")
        reason = (reason or "").strip() or DEFAULT_REASON
        if len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(f"Reason must be at most {MAX_REASON_LENGTH} characters")

        reviewer = await self._identities.resolve_or_none(reviewer_id)
        if reviewer is None or reviewer.role != "reviewer":
            raise NotFoundError("Reviewer not found")

        # the advisor comes from the stored profile, never from the caller
        profile = await self._identities.resolve_or_none(student.id)
        if profile is None or not profile.advisor_id:
            raise ValidationError("Student advisor not found")

        existing = await self._repo.find_outstanding(student.id, reviewer.id)
        if existing is not None:
            if existing["status"] == "approved":
                raise ConflictError("Chat already approved with this reviewer", current_state="approved")
            raise ConflictError("A pending request already exists", current_state="pending")

        request = await self._repo.create(student.id, reviewer.id, profile.advisor_id, reason)
        logger.info(f"Chat request {request['_id']} created: {student.id} -> {reviewer.id}")
        if self._notifications is not None:
            self._fire(self._notifications.notify_chat_request_created(request), f"chat_request_created:{request['_id']}")
        return request

    async def _explain_failure(self, request_id: str, advisor: Identity) -> None:
        request = await self._repo.find_by_id(request_id)
        if request is None:
            raise NotFoundError("Request not found")
        if request["advisor_id"] != advisor.id:
            raise AuthorizationError("This request belongs to another advisor")
        raise ConflictError(f"Request already {request['status']}", current_state=request["status"])

    def _require_advisor(self, identity: Identity, action: str) -> None:
        if identity.role != "advisor":
            raise AuthorizationError(f"Only advisors can {action} chat requests")

    async def approve(self, request_id: str, advisor: Identity) -> Dict[str, Any]:
        self._require_advisor(advisor, "approve")
        request = await self._repo.transition(request_id, advisor.id, "approved")
        if request is None:
            await self._explain_failure(request_id, advisor)
        logger.info(f"Chat request {request_id} approved by {advisor.id}")
        if self._notifications is not None:
            self._fire(self._notifications.notify_chat_request_approved(request), f"chat_request_approved:{request_id}")
        return request

    async def reject(self, request_id: str, advisor: Identity, rejection_reason: Optional[str] = None) -> Dict[str, Any]:
        self._require_advisor(advisor, "reject")
        rejection_reason = (rejection_reason or "").strip() or None
        if rejection_reason and len(rejection_reason) > MAX_REASON_LENGTH:
            raise ValidationError(f"Rejection reason must be at most {MAX_REASON_LENGTH} characters")
        request = await self._repo.transition(request_id, advisor.id, "rejected", rejection_reason)
        if request is None:
            await self._explain_failure(request_id, advisor)
        logger.info(f"Chat request {request_id} rejected by {advisor.id}")
        if self._notifications is not None:
            self._fire(self._notifications.notify_chat_request_rejected(request), f"chat_request_rejected:{request_id}")
        return request

    async def list_for_advisor(self, advisor: Identity, status: Optional[str] = None) -> List[Dict[str, Any]]:
        self._require_advisor(advisor, "view")
        if status and status not in ("pending", "approved", "rejected"):
            raise ValidationError("Invalid status filter")
        requests = await self._repo.list_for_advisor(advisor.id, status)
        people = await self._identities.resolve_many(
            [r["student_id"] for r in requests] + [r["reviewer_id"] for r in requests]
        )
        for request in requests:
            student = people.get(request["student_id"])
            reviewer = people.get(request["reviewer_id"])
            request["student_name"] = student.display_name if student else None
            request["reviewer_name"] = reviewer.display_name if reviewer else None
        return requests

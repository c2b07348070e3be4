from datetime import datetime
from typing import Literal, Optional, TypedDict


ChatRequestStatus = Literal["pending", "approved", "rejected"]

MAX_REASON_LENGTH = 500
DEFAULT_REASON = "Student requested to chat with reviewer"


class ChatRequestDocument(TypedDict, total=False):
    _id: str
    student_id: str
    reviewer_id: str
    advisor_id: str
    status: ChatRequestStatus
    reason: Optional[str]
    rejection_reason: Optional[str]
    responded_at: Optional[datetime]
    created_at: datetime

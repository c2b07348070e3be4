from datetime import datetime
from typing import Literal, Optional, TypedDict


MessageType = Literal["text", "system", "file"]

MAX_CONTENT_LENGTH = 5000
PREVIEW_LENGTH = 100


class MessageDocument(TypedDict, total=False):
    _id: str
    # exactly one of conversation_id / review_session_id is set
    conversation_id: Optional[str]
    review_session_id: Optional[str]
    sender_id: str
    sender_tag: str
    content: str
    message_type: MessageType
    is_read: bool
    read_at: Optional[datetime]
    is_deleted: bool
    created_at: datetime

from typing import Optional

from pydantic import BaseModel, Field

from reviewhub.models.chat_request import MAX_REASON_LENGTH


class ConversationCreate(BaseModel):

    target_user_id: str = Field(min_length=1)


class ChatRequestCreate(BaseModel):

    reviewer_id: str = Field(min_length=1)
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class ChatRequestReject(BaseModel):

    rejection_reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)

from typing import Optional

from pydantic import BaseModel, Field

from reviewhub.models.notification import NotificationType, Priority, RecipientGroup


class NotificationPayload(BaseModel):
    """Content of a notification before it is bound to a recipient."""

    type: NotificationType
    title: str
    message: str
    link: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    priority: Priority = "normal"
    sender_id: Optional[str] = None
    sender_tag: str = "System"

    @property
    def dedup_enabled(self) -> bool:
        return bool(self.entity_type and self.entity_id)


class BroadcastCreate(BaseModel):

    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=2000)
    recipient_group: RecipientGroup

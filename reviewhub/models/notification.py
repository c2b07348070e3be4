from datetime import datetime
from typing import Literal, Optional, TypedDict


NotificationType = Literal[
    "review_reminder",
    "review_scheduled",
    "review_rescheduled",
    "review_cancelled",
    "review_completed",
    "feedback_available",
    "new_message",
    "task_deadline",
    "task_assigned",
    "system",
    "info",
    "success",
    "warning",
    "admin_broadcast",
]
Priority = Literal["low", "normal", "high"]
DeliveryStatus = Literal["pending", "delivered", "failed"]
RecipientGroup = Literal["students", "reviewers", "advisors", "all_users"]

# the only types an admin sees in catch-up and unread counts
ADMIN_NOTIFICATION_TYPES = ("system", "warning", "admin_broadcast")


class NotificationDocument(TypedDict, total=False):
    _id: str
    # absent only on the reference record of a broadcast
    recipient_id: Optional[str]
    recipient_tag: str
    sender_id: Optional[str]
    sender_tag: Literal["Account", "System"]
    is_broadcast: bool
    recipient_group: Optional[RecipientGroup]
    recipient_count: int
    type: NotificationType
    title: str
    message: str
    is_read: bool
    read_at: Optional[datetime]
    link: Optional[str]
    entity_type: Optional[str]
    entity_id: Optional[str]
    priority: Priority
    delivery_status: DeliveryStatus
    created_at: datetime

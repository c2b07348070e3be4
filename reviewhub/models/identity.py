from datetime import datetime
from typing import List, Literal, Optional, TypedDict


Role = Literal["admin", "advisor", "reviewer", "student"]
IdentityTag = Literal["Account", "Student"]


class NotificationPreferences(TypedDict, total=False):
    push_enabled: bool
    # conversation ids whose chat notifications must not reach the push channel
    muted_chats: List[str]


class AccountDocument(TypedDict, total=False):

    _id: str
    name: str
    email: str
    role: Literal["admin", "advisor", "reviewer"]
    status: str
    notification_preferences: NotificationPreferences
    created_at: datetime


class StudentDocument(TypedDict, total=False):

    _id: str
    name: str
    email: str
    advisor_id: Optional[str]
    status: str
    notification_preferences: NotificationPreferences
    created_at: datetime

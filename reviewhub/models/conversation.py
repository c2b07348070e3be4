from datetime import datetime
from typing import Dict, List, Optional, TypedDict


class ConversationDocument(TypedDict, total=False):
    _id: str
    # always two ids; tags and roles are parallel arrays paired by index
    participant_ids: List[str]
    participant_tags: List[str]
    participant_roles: List[str]
    # sorted "a:b" of the two ids, unique per unordered pair
    pair_key: str
    last_message_preview: Optional[str]
    last_message_at: datetime
    # per-participant unread counters (identity_id -> count)
    unread_counts: Dict[str, int]
    is_active: bool
    created_by: str
    created_at: datetime

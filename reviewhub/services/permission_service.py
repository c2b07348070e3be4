"""Who may open or continue a two-party conversation.

Reviewer <-> student is the only pairing that depends on stored state: it
needs an approved chat request for that exact pair, so the check is redone
on every send instead of being cached on the conversation.
"""
from typing import Tuple

from reviewhub.repositories.chat_request_repository import ChatRequestRepository

ALLOWED_ROLE_PAIRS = frozenset(
    frozenset(pair)
    for pair in (
        ("advisor", "student"),
        ("advisor", "reviewer"),
        ("admin", "advisor"),
        ("admin", "reviewer"),
        ("admin", "student"),
    )
)
APPROVAL_ROLE_PAIR = frozenset(("reviewer", "student"))


def is_role_pair_allowed(role_a: str, role_b: str) -> bool:
    return frozenset((role_a, role_b)) in ALLOWED_ROLE_PAIRS


def requires_approval(role_a: str, role_b: str) -> bool:
    return role_a != role_b and frozenset((role_a, role_b)) == APPROVAL_ROLE_PAIR


def student_reviewer_ids(role_a: str, id_a: str, id_b: str) -> Tuple[str, str]:
    if role_a == "student":
        return id_a, id_b
    return id_b, id_a


async def can_converse(
    role_a: str, role_b: str, id_a: str, id_b: str, chat_requests: ChatRequestRepository
) -> bool:
    if is_role_pair_allowed(role_a, role_b):
        return True
    if requires_approval(role_a, role_b):
        student_id, reviewer_id = student_reviewer_ids(role_a, id_a, id_b)
        return await chat_requests.is_chat_approved(student_id, reviewer_id)
    return False


def denial_message(role_a: str, role_b: str) -> str:
    if requires_approval(role_a, role_b):
        return "Chat with this user requires advisor approval. Please request permission first."
    return f"{role_a} cannot chat with {role_b}"

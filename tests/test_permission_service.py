import pytest

from reviewhub.repositories.chat_request_repository import ChatRequestRepository
from reviewhub.services.permission_service import (
    can_converse,
    denial_message,
    is_role_pair_allowed,
    requires_approval,
)


@pytest.mark.parametrize(
    "role_a,role_b",
    [
        ("advisor", "student"),
        ("advisor", "reviewer"),
        ("admin", "advisor"),
        ("admin", "reviewer"),
        ("admin", "student"),
    ],
)
def test_role_pairs_are_symmetric(role_a, role_b):
    assert is_role_pair_allowed(role_a, role_b)
    assert is_role_pair_allowed(role_b, role_a)


@pytest.mark.parametrize(
    "role_a,role_b",
    [("student", "student"), ("reviewer", "reviewer"), ("advisor", "advisor"), ("admin", "admin")],
)
def test_same_role_pairs_are_denied(role_a, role_b):
    assert not is_role_pair_allowed(role_a, role_b)
    assert not requires_approval(role_a, role_b)


def test_reviewer_student_needs_approval():
    assert requires_approval("reviewer", "student")
    assert requires_approval("student", "reviewer")
    assert "approval" in denial_message("student", "reviewer")
    assert denial_message("student", "student") == "student cannot chat with student"


@pytest.mark.asyncio
async def test_can_converse_without_request_is_false(db):
    repo = ChatRequestRepository(db)
    assert not await can_converse("student", "reviewer", "s1", "r1", repo)
    assert not await can_converse("reviewer", "student", "r1", "s1", repo)


@pytest.mark.asyncio
async def test_can_converse_follows_request_state(db):
    repo = ChatRequestRepository(db)
    request = await repo.create("s1", "r1", "a1", "help")
    assert not await can_converse("student", "reviewer", "s1", "r1", repo)

    await repo.transition(request["_id"], "a1", "approved")
    assert await can_converse("student", "reviewer", "s1", "r1", repo)
    assert await can_converse("reviewer", "student", "r1", "s1", repo)
    # approval is per pair
    assert not await can_converse("student", "reviewer", "s1", "r2", repo)


@pytest.mark.asyncio
async def test_rejected_request_does_not_permit(db):
    repo = ChatRequestRepository(db)
    request = await repo.create("s1", "r1", "a1", "help")
    await repo.transition(request["_id"], "a1", "rejected", "not now")
    assert not await can_converse("reviewer", "student", "r1", "s1", repo)


@pytest.mark.asyncio
async def test_role_pairs_never_hit_the_store(db):
    repo = ChatRequestRepository(db)
    assert await can_converse("advisor", "student", "a1", "s1", repo)
    assert not await can_converse("reviewer", "reviewer", "r1", "r2", repo)

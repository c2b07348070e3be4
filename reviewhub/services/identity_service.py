from typing import Any, Dict, List, Optional, Tuple

from reviewhub.repositories.identity_repository import AccountRepository, StudentRepository
from reviewhub.schemas.identity import Identity
from reviewhub.utils.errors import NotFoundError


def account_to_identity(doc: Dict[str, Any]) -> Identity:
    return Identity(
        id=str(doc["_id"]),
        display_name=doc.get("name") or doc.get("email") or "Unknown",
        role=doc.get("role", "reviewer"),
        tag="Account",
        email=doc.get("email"),
    )


def student_to_identity(doc: Dict[str, Any]) -> Identity:
    advisor_id = doc.get("advisor_id")
    return Identity(
        id=str(doc["_id"]),
        display_name=doc.get("name") or doc.get("email") or "Unknown",
        role="student",
        tag="Student",
        email=doc.get("email"),
        advisor_id=str(advisor_id) if advisor_id else None,
    )


def public_profile(identity: Identity) -> Dict[str, Any]:
    return {
        "_id": identity.id,
        "name": identity.display_name,
        "email": identity.email,
        "role": identity.role,
        "tag": identity.tag,
    }


class IdentityResolver:
    """Resolves an opaque id against ``users`` first, then ``students``."""

    def __init__(self, accounts: AccountRepository, students: StudentRepository) -> None:
        self._accounts = accounts
        self._students = students

    async def _find_document(self, identity_id: str) -> Optional[Tuple[Dict[str, Any], str]]:
        if not identity_id:
            return None
        doc = await self._accounts.get_by_id(identity_id)
        if doc:
            return doc, "Account"
        doc = await self._students.get_by_id(identity_id)
        if doc:
            return doc, "Student"
        return None

    async def resolve_or_none(self, identity_id: str) -> Optional[Identity]:
        found = await self._find_document(identity_id)
        if found is None:
            return None
        doc, tag = found
        return account_to_identity(doc) if tag == "Account" else student_to_identity(doc)

    async def resolve(self, identity_id: str) -> Identity:
        identity = await self.resolve_or_none(identity_id)
        if identity is None:
            raise NotFoundError("User not found")
        return identity

    async def resolve_many(self, identity_ids: List[str]) -> Dict[str, Identity]:
        resolved = {}
        for identity_id in dict.fromkeys(identity_ids):
            identity = await self.resolve_or_none(identity_id)
            if identity is not None:
                resolved[identity_id] = identity
        return resolved

    async def preferences(self, identity_id: str) -> Tuple[bool, List[str]]:
        """Return ``(push_enabled, muted_chats)``; unknown identities get the defaults."""
        found = await self._find_document(identity_id)
        prefs = (found[0].get("notification_preferences") if found else None) or {}
        muted = [str(chat_id) for chat_id in prefs.get("muted_chats") or []]
        return prefs.get("push_enabled", True) is not False, muted

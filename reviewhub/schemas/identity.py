from typing import Optional

from pydantic import BaseModel

from reviewhub.models.identity import IdentityTag, Role


class Identity(BaseModel):
    """Normalized projection of an Account or Student record."""

    id: str
    display_name: str
    role: Role
    tag: IdentityTag
    email: Optional[str] = None
    # set for students only
    advisor_id: Optional[str] = None

    @property
    def is_student(self) -> bool:
        return self.tag == "Student"


from typing import Literal, TypedDict


ReviewStatus = Literal["pending", "scheduled", "accepted", "completed", "cancelled"]


class ReviewSessionDocument(TypedDict, total=False):
    _id: str
    student_id: str
    reviewer_id: str
    advisor_id: str
    week: int
    status: ReviewStatus

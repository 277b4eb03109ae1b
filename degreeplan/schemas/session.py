from pydantic import BaseModel, Field

from degreeplan.schemas.course import CourseRecord
from degreeplan.schemas.plan import AggregateOut, PlanRecord


class SessionSnapshotResponse(BaseModel):
    session_id: str
    state: str
    dirty: bool
    plan: PlanRecord | None = None
    courses: list[CourseRecord] = []
    aggregate: AggregateOut | None = None
    last_error: str | None = None


class SessionUpdateRequest(BaseModel):
    """All fields optional; only provided fields are applied."""

    title: str | None = None
    university: str | None = None
    is_public: bool | None = None


class NoteCreateRequest(BaseModel):
    text: str = Field(..., min_length=1)

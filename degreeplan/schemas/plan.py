from datetime import datetime

from pydantic import BaseModel, Field

from degreeplan.schemas.course import CourseRecord


class PlanRecord(BaseModel):
    id: str
    owner_id: str
    title: str
    university: str | None = None
    semesters: list[int] = []
    is_public: bool = False
    notes: list[str] = []
    total_credits: float = 0
    cumulative_gpa: str = "0.00"
    revision: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PlanSummary(BaseModel):
    id: str
    owner_id: str
    title: str
    university: str | None = None
    is_public: bool = False
    total_credits: float = 0
    cumulative_gpa: str = "0.00"
    created_at: datetime | None = None


class PlanCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    university: str | None = None


class PlanRenameRequest(BaseModel):
    """Only provided fields are written."""

    title: str | None = Field(None, min_length=1)
    university: str | None = None


class AggregateOut(BaseModel):
    total_credits: float
    gpa: str
    completion_percent: int
    max_credits: int
    semester_credits: dict[int, float] = {}


class PlanDetailResponse(BaseModel):
    plan: PlanRecord
    courses: list[CourseRecord] = []
    aggregate: AggregateOut

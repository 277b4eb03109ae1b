from datetime import datetime

from pydantic import BaseModel, Field


class CourseRecord(BaseModel):
    id: str
    plan_id: str
    code: str
    name: str
    credits: float = Field(0, ge=0, allow_inf_nan=False)
    semester: int
    # Any symbol of the configured grading policy, or W
    grade: str | None = Field(None, max_length=8)
    section: str | None = None
    timing: str | None = None
    difficulty: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class CourseDraft(BaseModel):
    """Edit context for the add/edit course form.

    Deliberately loose: every field is checked by the editor on commit, so a
    half-filled form can be held without raising.
    """

    id: str | None = None  # None while adding
    code: str = ""
    name: str = ""
    credits: float = 0
    semester: int = 1
    grade: str | None = None
    section: str | None = ""
    timing: str | None = ""
    difficulty: int | None = 1


class CourseMoveRequest(BaseModel):
    semester: int = Field(..., ge=1)

import math
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from degreeplan.core.config import settings
from degreeplan.core.errors import NotFound, ValidationError
from degreeplan.schemas.course import CourseDraft, CourseRecord
from degreeplan.schemas.plan import PlanRecord
from degreeplan.services.grading import GradingPolicy, policy_from_settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class CourseCollectionEditor:
    """In-memory working copy of a plan's semesters, courses and notes.

    Courses are kept as one flat list in insertion order; `by_semester()`
    derives the grouping shown on the semester cards. Every mutating method
    either succeeds completely or raises without touching the collection.
    """

    def __init__(
        self,
        plan: PlanRecord,
        courses: list[CourseRecord] | None = None,
        max_semesters: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
        policy: GradingPolicy | None = None,
    ):
        self.plan = plan.model_copy(deep=True)
        self.courses: list[CourseRecord] = [c.model_copy() for c in courses or []]
        self.max_semesters = max_semesters if max_semesters is not None else settings.max_semesters
        self._clock = clock
        self._id_factory = id_factory
        self.policy = policy or policy_from_settings()

    @property
    def semesters(self) -> list[int]:
        return self.plan.semesters

    @property
    def notes(self) -> list[str]:
        return self.plan.notes

    # ── Semesters ───────────────────────────────────────────────────────────

    def add_semester(self) -> int:
        if len(self.semesters) >= self.max_semesters:
            raise ValidationError(
                f"Maximum number of semesters reached ({self.max_semesters}).",
                field="semesters",
            )
        next_semester = max(self.semesters) + 1 if self.semesters else 1
        self.semesters.append(next_semester)
        return next_semester

    def remove_semester(self, semester: int) -> None:
        if semester not in self.semesters:
            raise ValidationError(f"Semester {semester} does not exist.", field="semester")
        in_use = sum(1 for c in self.courses if c.semester == semester)
        if in_use:
            raise ValidationError(
                f"Semester {semester} still has {in_use} course(s); move or delete them first.",
                field="semester",
            )
        self.semesters.remove(semester)

    def by_semester(self) -> dict[int, list[CourseRecord]]:
        grouped: dict[int, list[CourseRecord]] = {s: [] for s in self.semesters}
        for course in self.courses:
            grouped.setdefault(course.semester, []).append(course)
        return grouped

    # ── Courses ─────────────────────────────────────────────────────────────

    def get_course(self, course_id: str) -> CourseRecord | None:
        for course in self.courses:
            if course.id == course_id:
                return course
        return None

    def begin_add_course(self, semester: int) -> CourseDraft:
        self._require_semester(semester)
        return CourseDraft(semester=semester)

    def begin_edit_course(self, course_id: str) -> CourseDraft:
        course = self.get_course(course_id)
        if course is None:
            raise NotFound("Course not found.", resource_id=course_id)
        return CourseDraft(
            id=course.id,
            code=course.code,
            name=course.name,
            credits=course.credits,
            semester=course.semester,
            grade=course.grade,
            section=course.section,
            timing=course.timing,
            difficulty=course.difficulty,
        )

    def commit_course(self, draft: CourseDraft) -> CourseRecord:
        fields = self._validate(draft)
        now = self._clock()

        if draft.id is not None:
            existing = self.get_course(draft.id)
            if existing is None:
                raise NotFound("Course not found.", resource_id=draft.id)
            updated = existing.model_copy(update={**fields, "updated_at": now})
            self.courses = [updated if c.id == draft.id else c for c in self.courses]
            return updated

        course = CourseRecord(
            id=self._id_factory(),
            plan_id=self.plan.id,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.courses.append(course)
        return course

    def delete_course(self, course_id: str) -> bool:
        remaining = [c for c in self.courses if c.id != course_id]
        removed = len(remaining) != len(self.courses)
        self.courses = remaining
        return removed

    def move_course(self, course_id: str, semester: int) -> CourseRecord:
        course = self.get_course(course_id)
        if course is None:
            raise NotFound("Course not found.", resource_id=course_id)
        self._require_semester(semester)
        moved = course.model_copy(update={"semester": semester, "updated_at": self._clock()})
        self.courses = [moved if c.id == course_id else c for c in self.courses]
        return moved

    # ── Notes ───────────────────────────────────────────────────────────────

    def add_note(self, text: str) -> None:
        note = (text or "").strip()
        if not note:
            raise ValidationError("Note cannot be empty.", field="text")
        self.notes.append(note)

    def delete_note(self, index: int) -> str:
        if index < 0 or index >= len(self.notes):
            raise ValidationError(f"No note at position {index}.", field="index")
        return self.notes.pop(index)

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _require_semester(self, semester: int) -> None:
        if semester not in self.semesters:
            raise ValidationError(f"Semester {semester} does not exist.", field="semester")

    def _validate(self, draft: CourseDraft) -> dict:
        code = (draft.code or "").strip()
        name = (draft.name or "").strip()
        if not code or not name:
            raise ValidationError("Please fill in the Course Code and Course Name", field="code" if not code else "name")
        if draft.credits is None or not math.isfinite(draft.credits):
            raise ValidationError("Credits must be a number.", field="credits")
        if draft.credits < 0:
            raise ValidationError("Credits cannot be negative.", field="credits")
        if draft.credits > settings.max_course_credits:
            raise ValidationError(
                f"Credits cannot exceed {settings.max_course_credits:g}.",
                field="credits",
            )
        if draft.difficulty is not None and not 1 <= draft.difficulty <= 5:
            raise ValidationError("Difficulty must be between 1 and 5.", field="difficulty")
        self._require_semester(draft.semester)

        grade = self.policy.normalize(draft.grade)
        if not self.policy.accepts(grade):
            raise ValidationError(f"Unknown grade '{draft.grade}'.", field="grade")

        return {
            "code": code,
            "name": name,
            "credits": draft.credits,
            "semester": draft.semester,
            "grade": grade,
            "section": draft.section or None,
            "timing": draft.timing or None,
            "difficulty": draft.difficulty,
        }

"""
Plan editing session.

A session owns the working copy of one plan while a user edits it:

    LOADING --open ok--> READY --save--> SAVING --ok/fail--> READY
    LOADING --open fails--> ERROR (terminal)
    READY --close/delete--> CLOSED

Local edits are never thrown away by a failed save; the error is recorded
in `last_error`, re-raised, and the user can retry. A second `save()` while
one is in flight is rejected with SaveInProgressError. Saving never
recreates a plan that was deleted elsewhere; it fails with NotFound.
"""

import enum
import logging
import threading
from dataclasses import dataclass

from degreeplan.core.config import settings
from degreeplan.core.errors import (
    AuthError,
    DegreePlanError,
    ForbiddenError,
    SaveInProgressError,
    SessionStateError,
    ValidationError,
)
from degreeplan.schemas.course import CourseDraft, CourseRecord
from degreeplan.schemas.plan import PlanRecord
from degreeplan.services.aggregator import PlanAggregate, aggregate
from degreeplan.services.editor import CourseCollectionEditor
from degreeplan.services.gateway import SqlPlanGateway
from degreeplan.services.grading import GradingPolicy, policy_from_settings

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    LOADING = "loading"
    READY = "ready"
    SAVING = "saving"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionSnapshot:
    state: SessionState
    dirty: bool
    plan: PlanRecord | None
    courses: list[CourseRecord]
    aggregate: PlanAggregate | None
    last_error: DegreePlanError | None


class PlanEditingSession:
    def __init__(
        self,
        gateway: SqlPlanGateway,
        plan_id: str,
        user_id: str | None,
        policy: GradingPolicy | None = None,
        max_credits: int | None = None,
        optimistic_concurrency: bool | None = None,
    ):
        self.gateway = gateway
        self.plan_id = plan_id
        self.user_id = user_id
        self.policy = policy or policy_from_settings()
        self.max_credits = max_credits if max_credits is not None else settings.max_credits
        self.optimistic_concurrency = (
            optimistic_concurrency if optimistic_concurrency is not None else settings.optimistic_concurrency
        )

        self.state = SessionState.LOADING
        self.dirty = False
        self.last_error: DegreePlanError | None = None
        self.editor: CourseCollectionEditor | None = None
        self._persisted_ids: set[str] = set()
        self._loaded_revision: int | None = None
        self._save_lock = threading.Lock()

    # ── Lifecycle ───────────────────────────────────────────────────────────

    def open(self) -> "PlanEditingSession":
        if self.state is not SessionState.LOADING:
            raise SessionStateError(f"Session cannot be opened from state '{self.state.value}'.")
        try:
            plan, courses = self.gateway.load_plan(self.plan_id)
        except DegreePlanError as exc:
            self.last_error = exc
            self.state = SessionState.ERROR
            logger.warning("Could not open plan %s: %s", self.plan_id, exc)
            raise
        self._hydrate(plan, courses)
        self.state = SessionState.READY
        logger.info("Opened editing session for plan %s", self.plan_id)
        return self

    def close(self) -> None:
        # An in-flight save is not cancelled; it completes or fails on its own
        if self.state is SessionState.SAVING:
            logger.warning("Closing plan %s while a save is still in flight", self.plan_id)
        self.state = SessionState.CLOSED

    def discard(self) -> None:
        self._require_ready()
        try:
            plan, courses = self.gateway.load_plan(self.plan_id)
        except DegreePlanError as exc:
            self.last_error = exc
            logger.warning("Could not reload plan %s, local edits kept: %s", self.plan_id, exc)
            raise
        self._hydrate(plan, courses)
        logger.info("Discarded local edits for plan %s", self.plan_id)

    def _hydrate(self, plan: PlanRecord, courses: list[CourseRecord]) -> None:
        self.editor = CourseCollectionEditor(plan, courses, policy=self.policy)
        self._persisted_ids = {c.id for c in courses}
        self._loaded_revision = plan.revision
        # Cached aggregates are re-derived, never trusted
        derived = self.aggregate()
        if (plan.total_credits, plan.cumulative_gpa) != (derived.total_credits, derived.gpa):
            logger.debug(
                "Plan %s had stale cached aggregates (%s, %s), replaced with (%s, %s)",
                plan.id,
                plan.total_credits,
                plan.cumulative_gpa,
                derived.total_credits,
                derived.gpa,
            )
        self._apply_aggregate(derived)
        self.dirty = False
        self.last_error = None

    # ── Read side ───────────────────────────────────────────────────────────

    @property
    def plan(self) -> PlanRecord | None:
        return self.editor.plan if self.editor else None

    @property
    def courses(self) -> list[CourseRecord]:
        return list(self.editor.courses) if self.editor else []

    def aggregate(self) -> PlanAggregate:
        return aggregate(self.courses, self.max_credits, self.policy)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self.state,
            dirty=self.dirty,
            plan=self.plan.model_copy(deep=True) if self.plan else None,
            courses=self.courses,
            aggregate=self.aggregate() if self.editor else None,
            last_error=self.last_error,
        )

    # ── Editing ─────────────────────────────────────────────────────────────

    def add_semester(self) -> int:
        semester = self._require_ready().add_semester()
        self.dirty = True
        return semester

    def remove_semester(self, semester: int) -> None:
        self._require_ready().remove_semester(semester)
        self.dirty = True

    def begin_add_course(self, semester: int) -> CourseDraft:
        return self._require_ready().begin_add_course(semester)

    def begin_edit_course(self, course_id: str) -> CourseDraft:
        return self._require_ready().begin_edit_course(course_id)

    def commit_course(self, draft: CourseDraft) -> CourseRecord:
        course = self._require_ready().commit_course(draft)
        self.dirty = True
        return course

    def delete_course(self, course_id: str) -> bool:
        removed = self._require_ready().delete_course(course_id)
        if removed:
            self.dirty = True
        return removed

    def move_course(self, course_id: str, semester: int) -> CourseRecord:
        course = self._require_ready().move_course(course_id, semester)
        self.dirty = True
        return course

    def add_note(self, text: str) -> None:
        self._require_ready().add_note(text)
        self.dirty = True

    def delete_note(self, index: int) -> str:
        note = self._require_ready().delete_note(index)
        self.dirty = True
        return note

    def set_public(self, is_public: bool) -> None:
        self._require_ready().plan.is_public = is_public
        self.dirty = True

    def rename(self, title: str | None = None, university: str | None = None) -> None:
        editor = self._require_ready()
        if title is not None:
            if not title.strip():
                raise ValidationError("Plan title is required.", field="title")
            editor.plan.title = title.strip()
        if university is not None:
            editor.plan.university = university.strip() or None
        self.dirty = True

    # ── Persistence ─────────────────────────────────────────────────────────

    def save(self) -> PlanRecord:
        editor = self._require_ready()
        self._require_owner(editor.plan)
        if not self._save_lock.acquire(blocking=False):
            raise SaveInProgressError("A save is already in progress for this plan.")
        try:
            self.state = SessionState.SAVING
            derived = self.aggregate()
            self._apply_aggregate(derived)
            courses = self.courses
            removed_ids = self._persisted_ids - {c.id for c in courses}
            expected = self._loaded_revision if self.optimistic_concurrency else None

            saved = self.gateway.upsert_plan(editor.plan, expected_revision=expected, must_exist=True)
            self._loaded_revision = saved.revision
            editor.plan.revision = saved.revision
            editor.plan.updated_at = saved.updated_at
            self.gateway.upsert_courses(courses)
            for course_id in sorted(removed_ids):
                self.gateway.delete_course(course_id)
        except DegreePlanError as exc:
            self.last_error = exc
            logger.warning("Saving plan %s failed, local edits kept: %s", self.plan_id, exc)
            raise
        finally:
            if self.state is SessionState.SAVING:
                self.state = SessionState.READY
            self._save_lock.release()

        self._persisted_ids = {c.id for c in courses}
        self.dirty = False
        self.last_error = None
        logger.info(
            "Saved plan %s: %d course(s), %s credits, GPA %s",
            self.plan_id,
            len(courses),
            derived.total_credits,
            derived.gpa,
        )
        return editor.plan.model_copy(deep=True)

    def delete_plan(self) -> None:
        editor = self._require_ready()
        self._require_owner(editor.plan)
        try:
            self.gateway.delete_plan(self.plan_id)
        except DegreePlanError as exc:
            self.last_error = exc
            raise
        self.state = SessionState.CLOSED
        logger.info("Deleted plan %s", self.plan_id)

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _apply_aggregate(self, derived: PlanAggregate) -> None:
        self.editor.plan.total_credits = derived.total_credits
        self.editor.plan.cumulative_gpa = derived.gpa

    def _require_ready(self) -> CourseCollectionEditor:
        if self.state is SessionState.SAVING:
            raise SaveInProgressError("A save is already in progress for this plan.")
        if self.state is not SessionState.READY or self.editor is None:
            raise SessionStateError(f"Session is not ready (state '{self.state.value}').")
        return self.editor

    def _require_owner(self, plan: PlanRecord) -> None:
        if not self.user_id:
            raise AuthError("No authenticated user found.")
        if plan.owner_id != self.user_id:
            raise ForbiddenError("Only the plan owner can change this plan.")

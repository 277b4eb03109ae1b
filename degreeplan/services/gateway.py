"""
Persistence gateway for plans and their courses.

The gateway is a stateless transport between the typed in-memory records
(`PlanRecord`, `CourseRecord`) and the `plans` / `courses` tables. Every
call opens its own short-lived SQLAlchemy session from the injected factory,
so a gateway can be shared by long-lived editing sessions.

Stored shapes are parsed here and nowhere else: `semesters` must be a list
of positive ints, `notes` is a JSON list of strings (older rows holding a
bare string are read as a single note).

Any SQLAlchemy failure, including pool/connect timeouts, is re-raised as
StoreError. Nothing is retried.
"""

import json
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from degreeplan.core.errors import ConflictError, NotFound, StoreError
from degreeplan.models.course import Course
from degreeplan.models.plan import Plan
from degreeplan.schemas.course import CourseRecord
from degreeplan.schemas.plan import PlanRecord, PlanSummary

logger = logging.getLogger(__name__)

_PLAN_FIELDS = {
    "owner_id",
    "title",
    "university",
    "semesters",
    "is_public",
    "notes",
    "total_credits",
    "cumulative_gpa",
}
_COURSE_FIELDS = (
    "id",
    "plan_id",
    "code",
    "name",
    "credits",
    "semester",
    "grade",
    "section",
    "timing",
    "difficulty",
    "created_at",
    "updated_at",
)


def parse_notes(raw) -> list[str]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, list):
        return [str(n) for n in raw]
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        return [str(raw)]
    if isinstance(decoded, list):
        return [str(n) for n in decoded]
    return [str(decoded)]


def parse_semesters(raw) -> list[int]:
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise StoreError(f"Stored semesters are not valid JSON: {raw!r}") from exc
    if not isinstance(raw, list):
        raise StoreError(f"Stored semesters must be a list, got {type(raw).__name__}.")
    try:
        semesters = [int(s) for s in raw]
    except (TypeError, ValueError) as exc:
        raise StoreError(f"Stored semesters contain a non-integer value: {raw!r}") from exc
    if any(s < 1 for s in semesters):
        raise StoreError(f"Stored semesters must be positive: {semesters!r}")
    return semesters


def plan_to_record(row: Plan) -> PlanRecord:
    return PlanRecord(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        university=row.university,
        semesters=parse_semesters(row.semesters),
        is_public=bool(row.is_public),
        notes=parse_notes(row.notes),
        total_credits=row.total_credits or 0,
        cumulative_gpa=row.cumulative_gpa or "0.00",
        revision=row.revision or 0,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _plan_columns(plan: PlanRecord, fields: Iterable[str]) -> dict:
    values = {}
    for name in fields:
        value = getattr(plan, name)
        if name == "notes":
            value = json.dumps(value)
        elif name == "semesters":
            value = list(value)
        values[name] = value
    return values


class SqlPlanGateway:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Store failure while trying to %s: %s", action, exc)
            raise StoreError(f"Failed to {action}: {exc}") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ── Plans ───────────────────────────────────────────────────────────────

    def load_plan(self, plan_id: str) -> tuple[PlanRecord, list[CourseRecord]]:
        with self._transaction("load plan") as db:
            row = db.get(Plan, plan_id)
            if row is None:
                raise NotFound("Plan not found.", resource_id=plan_id)
            plan = plan_to_record(row)
            course_rows = (
                db.query(Course)
                .filter(Course.plan_id == plan_id)
                .order_by(Course.created_at, Course.id)
                .all()
            )
            courses = [CourseRecord.model_validate(c) for c in course_rows]
        logger.debug("Loaded plan %s with %d course(s)", plan_id, len(courses))
        return plan, courses

    def upsert_plan(
        self,
        plan: PlanRecord,
        fields: Iterable[str] | None = None,
        expected_revision: int | None = None,
        must_exist: bool = False,
    ) -> PlanRecord:
        """Insert or replace a plan row.

        With `fields`, only those columns are written (e.g. a title-only
        rename) and the plan must already exist. An empty `fields` writes no
        column and only bumps the revision. With `must_exist`, a missing row
        raises NotFound instead of being inserted. With `expected_revision`,
        the write is refused with ConflictError unless the stored revision
        still matches.
        """
        narrowed = set(fields) if fields is not None else None
        if narrowed is not None and not narrowed <= _PLAN_FIELDS:
            raise ValueError(f"Unknown plan fields: {sorted(narrowed - _PLAN_FIELDS)}")

        with self._transaction("save plan") as db:
            row = db.get(Plan, plan.id)
            if row is None and (narrowed is not None or must_exist):
                raise NotFound("Plan not found.", resource_id=plan.id)
            current = row.revision if row is not None else 0
            if expected_revision is not None and expected_revision != current:
                raise ConflictError(
                    "Plan was modified elsewhere; reload before saving.",
                    expected=expected_revision,
                    actual=current,
                )

            now = datetime.now(timezone.utc)
            if row is None:
                row = Plan(id=plan.id, **_plan_columns(plan, _PLAN_FIELDS))
                row.created_at = plan.created_at or now
                db.add(row)
            else:
                columns = _plan_columns(plan, narrowed if narrowed is not None else _PLAN_FIELDS)
                for name, value in columns.items():
                    setattr(row, name, value)
            row.revision = current + 1
            row.updated_at = now
            db.flush()
            saved = plan_to_record(row)
        logger.info("Saved plan %s (revision %d)", saved.id, saved.revision)
        return saved

    def delete_plan(self, plan_id: str) -> None:
        with self._transaction("delete plan") as db:
            removed = db.query(Course).filter(Course.plan_id == plan_id).delete(synchronize_session=False)
            db.query(Plan).filter(Plan.id == plan_id).delete(synchronize_session=False)
        logger.info("Deleted plan %s and %d course(s)", plan_id, removed)

    def list_plans(self, owner_id: str) -> list[PlanSummary]:
        with self._transaction("list plans") as db:
            rows = db.query(Plan).filter(Plan.owner_id == owner_id).order_by(Plan.created_at).all()
            return [self._summary(r) for r in rows]

    def list_public_plans(self) -> list[PlanSummary]:
        with self._transaction("list public plans") as db:
            rows = db.query(Plan).filter(Plan.is_public.is_(True)).order_by(Plan.created_at.desc()).all()
            return [self._summary(r) for r in rows]

    def count_plans(self, owner_id: str) -> int:
        with self._transaction("count plans") as db:
            return db.query(Plan).filter(Plan.owner_id == owner_id).count()

    # ── Courses ─────────────────────────────────────────────────────────────

    def upsert_courses(self, courses: list[CourseRecord]) -> None:
        """Insert or replace a batch of courses in one transaction.

        On failure the transaction is rolled back, so the StoreError carries
        an empty `applied_ids`.
        """
        if not courses:
            return
        with self._transaction("save courses") as db:
            for course in courses:
                db.merge(Course(**{name: getattr(course, name) for name in _COURSE_FIELDS}))
        logger.info("Saved %d course(s)", len(courses))

    def delete_course(self, course_id: str) -> None:
        with self._transaction("delete course") as db:
            db.query(Course).filter(Course.id == course_id).delete(synchronize_session=False)

    @staticmethod
    def _summary(row: Plan) -> PlanSummary:
        return PlanSummary(
            id=row.id,
            owner_id=row.owner_id,
            title=row.title,
            university=row.university,
            is_public=bool(row.is_public),
            total_credits=row.total_credits or 0,
            cumulative_gpa=row.cumulative_gpa or "0.00",
            created_at=row.created_at,
        )

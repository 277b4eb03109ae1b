from unittest.mock import patch

import pytest

from degreeplan.core.errors import (
    AuthError,
    ConflictError,
    ForbiddenError,
    NotFound,
    SaveInProgressError,
    SessionStateError,
    StoreError,
    ValidationError,
)
from degreeplan.core.config import settings
from degreeplan.models.course import Course
from degreeplan.models.plan import Plan
from degreeplan.schemas.course import CourseDraft
from degreeplan.services.session import PlanEditingSession, SessionState
from tests.conftest import OTHER_ID, OWNER_ID


def open_session(gateway, plan_id="plan-1", user_id=OWNER_ID, **kwargs) -> PlanEditingSession:
    return PlanEditingSession(gateway, plan_id, user_id, **kwargs).open()


def add_course(session, semester=3, code="MATH201", name="Linear Algebra", credits=4, grade=None):
    draft = session.begin_add_course(semester).model_copy(
        update={"code": code, "name": name, "credits": credits, "grade": grade}
    )
    return session.commit_course(draft)


class TestOpen:
    def test_open_hydrates_and_derives_aggregates(self, gateway, seeded_plan):
        session = open_session(gateway)

        snap = session.snapshot()
        assert snap.state is SessionState.READY
        assert snap.dirty is False
        assert len(snap.courses) == 3
        assert snap.aggregate.gpa == "3.43"
        assert snap.aggregate.total_credits == 10
        assert snap.plan.cumulative_gpa == "3.43"

    def test_stale_cached_aggregates_are_replaced(self, gateway, session_factory, seeded_plan):
        db = session_factory()
        row = db.get(Plan, seeded_plan.id)
        row.total_credits = 999
        row.cumulative_gpa = "1.00"
        db.commit()
        db.close()

        session = open_session(gateway)

        assert session.plan.total_credits == 10
        assert session.plan.cumulative_gpa == "3.43"

    def test_missing_plan_enters_error_state(self, gateway):
        session = PlanEditingSession(gateway, "missing", OWNER_ID)

        with pytest.raises(NotFound):
            session.open()

        assert session.state is SessionState.ERROR
        assert isinstance(session.last_error, NotFound)
        with pytest.raises(SessionStateError):
            session.add_semester()
        with pytest.raises(SessionStateError):
            session.open()


class TestEditing:
    def test_edits_mark_session_dirty(self, gateway, seeded_plan):
        session = open_session(gateway)
        add_course(session)
        assert session.dirty is True
        assert session.aggregate().total_credits == 14

    def test_failed_validation_keeps_session_clean(self, gateway, seeded_plan):
        session = open_session(gateway)
        with pytest.raises(ValidationError):
            session.commit_course(CourseDraft(code="", name="Nameless", semester=1))
        assert session.dirty is False
        assert len(session.courses) == 3

    def test_deleting_missing_course_keeps_session_clean(self, gateway, seeded_plan):
        session = open_session(gateway)
        assert session.delete_course("missing") is False
        assert session.dirty is False

    def test_rename_requires_title(self, gateway, seeded_plan):
        session = open_session(gateway)
        with pytest.raises(ValidationError):
            session.rename(title="   ")
        session.rename(title="Math BS", university="")
        assert session.plan.title == "Math BS"
        assert session.plan.university is None

    def test_closed_session_rejects_edits(self, gateway, seeded_plan):
        session = open_session(gateway)
        session.close()
        assert session.state is SessionState.CLOSED
        with pytest.raises(SessionStateError):
            add_course(session)


class TestSave:
    def test_save_persists_everything(self, gateway, seeded_plan):
        session = open_session(gateway)
        added = add_course(session, grade="A")
        session.delete_course("c-201")
        session.move_course("c-102", 2)
        session.add_semester()
        session.add_note("Check co-op deadlines")
        session.set_public(True)

        saved = session.save()

        assert session.dirty is False
        assert session.state is SessionState.READY
        assert saved.total_credits == 11
        plan, courses = gateway.load_plan(seeded_plan.id)
        assert plan.is_public is True
        assert plan.semesters == list(range(1, 14))
        assert plan.notes == ["Take calculus early", "Check co-op deadlines"]
        assert plan.total_credits == 11
        assert plan.cumulative_gpa == "3.64"
        assert sorted(c.id for c in courses) == sorted(["c-101", "c-102", added.id])
        assert {c.id: c.semester for c in courses}["c-102"] == 2

    def test_save_requires_authenticated_user(self, gateway, seeded_plan):
        session = open_session(gateway, user_id=None)
        add_course(session)

        with patch.object(gateway, "upsert_plan") as upsert_plan:
            with pytest.raises(AuthError):
                session.save()
            upsert_plan.assert_not_called()
        assert session.dirty is True

    def test_only_owner_can_save(self, gateway, seeded_plan):
        session = open_session(gateway, user_id=OTHER_ID)
        with pytest.raises(ForbiddenError):
            session.save()

    def test_course_write_failure_keeps_local_edits(self, gateway, seeded_plan):
        session = open_session(gateway)
        added = add_course(session)
        session.delete_course("c-101")

        with patch.object(gateway, "upsert_courses", side_effect=StoreError("network down")):
            with pytest.raises(StoreError):
                session.save()

        assert session.state is SessionState.READY
        assert session.dirty is True
        assert str(session.last_error) == "network down"
        assert sorted(c.id for c in session.courses) == sorted(["c-102", "c-201", added.id])

        # Retrying without re-entering anything succeeds
        session.save()
        _, courses = gateway.load_plan(seeded_plan.id)
        assert sorted(c.id for c in courses) == sorted(["c-102", "c-201", added.id])
        assert session.last_error is None

    def test_plan_write_failure_skips_course_write(self, gateway, seeded_plan):
        session = open_session(gateway)
        add_course(session)

        with patch.object(gateway, "upsert_plan", side_effect=StoreError("timeout")), patch.object(
            gateway, "upsert_courses"
        ) as upsert_courses:
            with pytest.raises(StoreError):
                session.save()
            upsert_courses.assert_not_called()

        assert session.dirty is True
        assert len(session.courses) == 4

    def test_second_save_while_saving_is_rejected(self, gateway, seeded_plan):
        session = open_session(gateway)
        add_course(session)
        original = gateway.upsert_plan
        nested = []

        def reentrant_upsert(plan, **kwargs):
            try:
                session.save()
            except SaveInProgressError as exc:
                nested.append(exc)
            return original(plan, **kwargs)

        with patch.object(gateway, "upsert_plan", side_effect=reentrant_upsert):
            session.save()

        assert len(nested) == 1
        assert session.dirty is False

    def test_save_does_not_recreate_a_deleted_plan(self, gateway, session_factory, seeded_plan):
        session = open_session(gateway)
        add_course(session)
        gateway.delete_plan(seeded_plan.id)

        with pytest.raises(NotFound):
            session.save()

        assert session.state is SessionState.READY
        assert session.dirty is True
        assert isinstance(session.last_error, NotFound)
        with pytest.raises(NotFound):
            gateway.load_plan(seeded_plan.id)
        with session_factory() as db:
            assert db.query(Course).count() == 0

    def test_save_after_delete_with_optimistic_concurrency_is_not_found(self, gateway, seeded_plan):
        session = open_session(gateway, optimistic_concurrency=True)
        gateway.delete_plan(seeded_plan.id)
        with pytest.raises(NotFound):
            session.save()

    def test_last_writer_wins_by_default(self, gateway, seeded_plan):
        first = open_session(gateway)
        second = open_session(gateway)
        first.rename(title="First")
        second.rename(title="Second")

        first.save()
        second.save()

        plan, _ = gateway.load_plan(seeded_plan.id)
        assert plan.title == "Second"

    def test_optimistic_concurrency_detects_conflict(self, gateway, seeded_plan):
        first = open_session(gateway, optimistic_concurrency=True)
        second = open_session(gateway, optimistic_concurrency=True)
        first.rename(title="First")
        second.rename(title="Second")

        first.save()
        with pytest.raises(ConflictError):
            second.save()

        assert second.plan.title == "Second"
        assert second.dirty is True
        plan, _ = gateway.load_plan(seeded_plan.id)
        assert plan.title == "First"

        # Consecutive saves from one session keep working
        first.rename(title="First again")
        first.save()


class TestDiscardAndDelete:
    def test_discard_reloads_from_store(self, gateway, seeded_plan):
        session = open_session(gateway)
        add_course(session)
        session.add_note("temporary")

        session.discard()

        assert session.dirty is False
        assert len(session.courses) == 3
        assert session.plan.notes == ["Take calculus early"]

    def test_delete_plan(self, gateway, seeded_plan):
        session = open_session(gateway)
        session.delete_plan()

        assert session.state is SessionState.CLOSED
        with pytest.raises(NotFound):
            gateway.load_plan(seeded_plan.id)

    def test_delete_plan_requires_user(self, gateway, seeded_plan):
        session = open_session(gateway, user_id=None)
        with pytest.raises(AuthError):
            session.delete_plan()
        gateway.load_plan(seeded_plan.id)

    def test_failed_discard_is_recorded_and_keeps_edits(self, gateway, seeded_plan):
        session = open_session(gateway)
        added = add_course(session)

        with patch.object(gateway, "load_plan", side_effect=StoreError("connection reset")):
            with pytest.raises(StoreError):
                session.discard()

        assert session.state is SessionState.READY
        assert session.dirty is True
        assert str(session.last_error) == "connection reset"
        assert session.snapshot().last_error is session.last_error
        assert added.id in {c.id for c in session.courses}


class TestConfiguredGradeScale:
    @pytest.fixture(autouse=True)
    def plus_minus_scale(self, monkeypatch):
        monkeypatch.setattr(settings, "grade_scale", {"A": 4.0, "A-": 3.7, "P": 0.0})
        monkeypatch.setattr(settings, "gpa_countable_grades", ["A", "A-"])

    def test_scale_symbols_commit_and_count(self, gateway, seeded_plan):
        session = open_session(gateway)
        # Only the seeded A is countable under this scale
        assert session.aggregate().gpa == "4.00"

        course = add_course(session, credits=4, grade="A-")
        add_course(session, code="PE100", name="Swimming", credits=3, grade="P")

        assert course.grade == "A-"
        derived = session.aggregate()
        assert derived.total_credits == 17
        assert derived.gpa == "3.83"

        session.save()
        _, courses = gateway.load_plan(seeded_plan.id)
        assert {c.grade for c in courses} >= {"A-", "P"}

    def test_symbols_outside_the_scale_are_rejected(self, gateway, seeded_plan):
        session = open_session(gateway)
        with pytest.raises(ValidationError):
            add_course(session, grade="B+")
        assert session.dirty is False

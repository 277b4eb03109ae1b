from fastapi import APIRouter, Depends, Request, Response

from degreeplan.schemas.course import CourseDraft, CourseMoveRequest, CourseRecord
from degreeplan.schemas.plan import (
    AggregateOut,
    PlanCreateRequest,
    PlanDetailResponse,
    PlanRecord,
    PlanRenameRequest,
    PlanSummary,
)
from degreeplan.schemas.session import NoteCreateRequest, SessionSnapshotResponse, SessionUpdateRequest
from degreeplan.services import plans as plan_service
from degreeplan.services.aggregator import PlanAggregate
from degreeplan.services.auth import get_current_user_id, get_optional_user_id
from degreeplan.services.gateway import SqlPlanGateway
from degreeplan.services.registry import SessionRegistry
from degreeplan.services.session import PlanEditingSession

router = APIRouter(prefix="/api")


def get_gateway(request: Request) -> SqlPlanGateway:
    return request.app.state.gateway


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def _aggregate_out(derived: PlanAggregate) -> AggregateOut:
    return AggregateOut(
        total_credits=derived.total_credits,
        gpa=derived.gpa,
        completion_percent=derived.completion_percent,
        max_credits=derived.max_credits,
        semester_credits=derived.semester_credits,
    )


def _snapshot_out(session_id: str, session: PlanEditingSession) -> SessionSnapshotResponse:
    snap = session.snapshot()
    return SessionSnapshotResponse(
        session_id=session_id,
        state=snap.state.value,
        dirty=snap.dirty,
        plan=snap.plan,
        courses=snap.courses,
        aggregate=_aggregate_out(snap.aggregate) if snap.aggregate else None,
        last_error=snap.last_error.message if snap.last_error else None,
    )


# NOTE: /plans/public MUST be registered BEFORE the parametric route
# /plans/{plan_id} or FastAPI will swallow it.

@router.get("/plans/public", response_model=list[PlanSummary])
def list_public_plans_endpoint(gateway: SqlPlanGateway = Depends(get_gateway)):
    return plan_service.list_public_plans(gateway)


@router.get("/plans", response_model=list[PlanSummary])
def list_plans_endpoint(
    user_id: str = Depends(get_current_user_id),
    gateway: SqlPlanGateway = Depends(get_gateway),
):
    return plan_service.list_plans(gateway, user_id)


@router.post("/plans", response_model=PlanRecord, status_code=201)
def create_plan_endpoint(
    payload: PlanCreateRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: SqlPlanGateway = Depends(get_gateway),
):
    return plan_service.create_plan(gateway, user_id, payload.title, payload.university)


@router.get("/plans/{plan_id}", response_model=PlanDetailResponse)
def get_plan_endpoint(
    plan_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    gateway: SqlPlanGateway = Depends(get_gateway),
):
    plan, courses, derived = plan_service.get_plan_detail(gateway, plan_id, user_id)
    return PlanDetailResponse(plan=plan, courses=courses, aggregate=_aggregate_out(derived))


@router.patch("/plans/{plan_id}", response_model=PlanRecord)
def rename_plan_endpoint(
    plan_id: str,
    payload: PlanRenameRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: SqlPlanGateway = Depends(get_gateway),
):
    return plan_service.rename_plan(gateway, user_id, plan_id, payload.title, payload.university)


@router.delete("/plans/{plan_id}", status_code=204)
def delete_plan_endpoint(
    plan_id: str,
    user_id: str = Depends(get_current_user_id),
    gateway: SqlPlanGateway = Depends(get_gateway),
    registry: SessionRegistry = Depends(get_registry),
):
    plan_service.delete_plan(gateway, user_id, plan_id)
    # Open sessions would otherwise write the deleted plan back on save
    registry.close_plan(plan_id)
    return Response(status_code=204)


# ── Editing sessions ──────────────────────────────────────────────────────────

@router.post("/plans/{plan_id}/sessions", response_model=SessionSnapshotResponse, status_code=201)
def open_session_endpoint(
    plan_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session_id, session = registry.open(plan_id, user_id)
    return _snapshot_out(session_id, session)


@router.get("/sessions/{session_id}", response_model=SessionSnapshotResponse)
def get_session_endpoint(
    session_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    return _snapshot_out(session_id, registry.get(session_id, user_id))


@router.patch("/sessions/{session_id}", response_model=SessionSnapshotResponse)
def update_session_endpoint(
    session_id: str,
    payload: SessionUpdateRequest,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session = registry.get(session_id, user_id)
    if payload.title is not None or payload.university is not None:
        session.rename(payload.title, payload.university)
    if payload.is_public is not None:
        session.set_public(payload.is_public)
    return _snapshot_out(session_id, session)


@router.post("/sessions/{session_id}/semesters", response_model=SessionSnapshotResponse)
def add_semester_endpoint(
    session_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session = registry.get(session_id, user_id)
    session.add_semester()
    return _snapshot_out(session_id, session)


@router.delete("/sessions/{session_id}/semesters/{semester}", response_model=SessionSnapshotResponse)
def remove_semester_endpoint(
    session_id: str,
    semester: int,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session = registry.get(session_id, user_id)
    session.remove_semester(semester)
    return _snapshot_out(session_id, session)


@router.get("/sessions/{session_id}/semesters/{semester}/draft", response_model=CourseDraft)
def new_course_draft_endpoint(
    session_id: str,
    semester: int,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    return registry.get(session_id, user_id).begin_add_course(semester)


@router.get("/sessions/{session_id}/courses/{course_id}/draft", response_model=CourseDraft)
def edit_course_draft_endpoint(
    session_id: str,
    course_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    return registry.get(session_id, user_id).begin_edit_course(course_id)


@router.post("/sessions/{session_id}/courses", response_model=CourseRecord, status_code=201)
def add_course_endpoint(
    session_id: str,
    payload: CourseDraft,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session = registry.get(session_id, user_id)
    return session.commit_course(payload.model_copy(update={"id": None}))


@router.put("/sessions/{session_id}/courses/{course_id}", response_model=CourseRecord)
def edit_course_endpoint(
    session_id: str,
    course_id: str,
    payload: CourseDraft,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session = registry.get(session_id, user_id)
    return session.commit_course(payload.model_copy(update={"id": course_id}))


@router.post("/sessions/{session_id}/courses/{course_id}/move", response_model=CourseRecord)
def move_course_endpoint(
    session_id: str,
    course_id: str,
    payload: CourseMoveRequest,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    return registry.get(session_id, user_id).move_course(course_id, payload.semester)


@router.delete("/sessions/{session_id}/courses/{course_id}", response_model=SessionSnapshotResponse)
def delete_course_endpoint(
    session_id: str,
    course_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session = registry.get(session_id, user_id)
    session.delete_course(course_id)
    return _snapshot_out(session_id, session)


@router.post("/sessions/{session_id}/notes", response_model=SessionSnapshotResponse)
def add_note_endpoint(
    session_id: str,
    payload: NoteCreateRequest,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session = registry.get(session_id, user_id)
    session.add_note(payload.text)
    return _snapshot_out(session_id, session)


@router.delete("/sessions/{session_id}/notes/{index}", response_model=SessionSnapshotResponse)
def delete_note_endpoint(
    session_id: str,
    index: int,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session = registry.get(session_id, user_id)
    session.delete_note(index)
    return _snapshot_out(session_id, session)


@router.post("/sessions/{session_id}/save", response_model=SessionSnapshotResponse)
def save_session_endpoint(
    session_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session = registry.get(session_id, user_id)
    session.save()
    return _snapshot_out(session_id, session)


@router.post("/sessions/{session_id}/discard", response_model=SessionSnapshotResponse)
def discard_session_endpoint(
    session_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    session = registry.get(session_id, user_id)
    session.discard()
    return _snapshot_out(session_id, session)


@router.delete("/sessions/{session_id}", status_code=204)
def close_session_endpoint(
    session_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    registry.close(session_id, user_id)
    return Response(status_code=204)

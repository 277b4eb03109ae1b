import logging
import uuid

from degreeplan.core.config import settings
from degreeplan.core.errors import AuthError, ForbiddenError, NotFound, ValidationError
from degreeplan.schemas.course import CourseRecord
from degreeplan.schemas.plan import PlanRecord, PlanSummary
from degreeplan.services.aggregator import PlanAggregate, aggregate
from degreeplan.services.gateway import SqlPlanGateway
from degreeplan.services.grading import policy_from_settings

logger = logging.getLogger(__name__)


def create_plan(
    gateway: SqlPlanGateway,
    owner_id: str | None,
    title: str,
    university: str | None = None,
) -> PlanRecord:
    if not owner_id:
        raise AuthError("No authenticated user found.")
    title = (title or "").strip()
    if not title:
        raise ValidationError("Plan title is required.", field="title")
    if gateway.count_plans(owner_id) >= settings.max_plans_per_user:
        raise ValidationError(
            f"You can only have a maximum of {settings.max_plans_per_user} plans.",
            field="plans",
        )

    plan = PlanRecord(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        title=title,
        university=(university or "").strip() or None,
        semesters=list(range(1, settings.default_semester_count + 1)),
        is_public=False,
        notes=[],
        total_credits=0,
        cumulative_gpa="0.00",
    )
    saved = gateway.upsert_plan(plan)
    logger.info("User %s created plan %s", owner_id, saved.id)
    return saved


def list_plans(gateway: SqlPlanGateway, owner_id: str | None) -> list[PlanSummary]:
    if not owner_id:
        raise AuthError("No authenticated user found.")
    return gateway.list_plans(owner_id)


def list_public_plans(gateway: SqlPlanGateway) -> list[PlanSummary]:
    return gateway.list_public_plans()


def get_plan_detail(
    gateway: SqlPlanGateway,
    plan_id: str,
    viewer_id: str | None,
) -> tuple[PlanRecord, list[CourseRecord], PlanAggregate]:
    plan, courses = gateway.load_plan(plan_id)
    # Private plans are invisible to everyone but their owner
    if not plan.is_public and plan.owner_id != viewer_id:
        raise NotFound("Plan not found.", resource_id=plan_id)
    derived = aggregate(courses, settings.max_credits, policy_from_settings())
    plan.total_credits = derived.total_credits
    plan.cumulative_gpa = derived.gpa
    return plan, courses, derived


def _load_owned(gateway: SqlPlanGateway, owner_id: str | None, plan_id: str) -> PlanRecord:
    if not owner_id:
        raise AuthError("No authenticated user found.")
    plan, _ = gateway.load_plan(plan_id)
    if plan.owner_id != owner_id:
        raise ForbiddenError("Only the plan owner can change this plan.")
    return plan


def rename_plan(
    gateway: SqlPlanGateway,
    owner_id: str | None,
    plan_id: str,
    title: str | None = None,
    university: str | None = None,
) -> PlanRecord:
    plan = _load_owned(gateway, owner_id, plan_id)
    fields = set()
    if title is not None:
        if not title.strip():
            raise ValidationError("Plan title is required.", field="title")
        plan.title = title.strip()
        fields.add("title")
    if university is not None:
        plan.university = university.strip() or None
        fields.add("university")
    if not fields:
        return plan
    return gateway.upsert_plan(plan, fields=fields)


def delete_plan(gateway: SqlPlanGateway, owner_id: str | None, plan_id: str) -> None:
    _load_owned(gateway, owner_id, plan_id)
    gateway.delete_plan(plan_id)
    logger.info("User %s deleted plan %s", owner_id, plan_id)

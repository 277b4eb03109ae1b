import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from degreeplan.schemas.course import CourseRecord
from degreeplan.services.grading import DEFAULT_POLICY, GradingPolicy


@dataclass(frozen=True)
class PlanAggregate:
    total_credits: float
    gpa: str  # always two decimals, "0.00" when nothing is graded
    completion_percent: int  # not clamped, may exceed 100
    max_credits: int
    semester_credits: dict[int, float] = field(default_factory=dict)


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_gpa(points: float, credits: float) -> str:
    if credits <= 0:
        return "0.00"
    return f"{points / credits:.2f}"


def semester_totals(courses: Iterable[CourseRecord]) -> dict[int, float]:
    totals: dict[int, float] = {}
    for course in courses:
        totals[course.semester] = totals.get(course.semester, 0) + course.credits
    return dict(sorted(totals.items()))


def aggregate(
    courses: Iterable[CourseRecord],
    max_credits: int,
    policy: GradingPolicy = DEFAULT_POLICY,
) -> PlanAggregate:
    courses = list(courses)
    # fsum keeps the totals independent of course order
    total_credits = math.fsum(course.credits for course in courses)

    graded = [course for course in courses if policy.is_countable(course.grade)]
    quality_points = math.fsum(policy.points_for(course.grade) * course.credits for course in graded)
    gpa_credits = math.fsum(course.credits for course in graded)

    completion = _round_half_up(total_credits / max_credits * 100) if max_credits > 0 else 0

    return PlanAggregate(
        total_credits=total_credits,
        gpa=format_gpa(quality_points, gpa_credits),
        completion_percent=completion,
        max_credits=max_credits,
        semester_credits=semester_totals(courses),
    )

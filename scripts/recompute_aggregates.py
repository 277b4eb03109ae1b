"""
Re-derive the cached total_credits / cumulative_gpa of every plan.

The cached columns are only refreshed when a plan is saved; run this after
changing GRADE_SCALE or after importing rows directly into the database.
Pass --dry-run to only report plans whose cached values are stale.
"""
import sys

from degreeplan.core.config import settings
from degreeplan.core.database import SessionLocal
from degreeplan.models.plan import Plan
from degreeplan.services.aggregator import aggregate
from degreeplan.services.gateway import SqlPlanGateway
from degreeplan.services.grading import policy_from_settings

dry_run = "--dry-run" in sys.argv
gateway = SqlPlanGateway(SessionLocal)
policy = policy_from_settings()

db = SessionLocal()
plan_ids = [row.id for row in db.query(Plan.id).all()]
db.close()

stale = 0
for plan_id in plan_ids:
    plan, courses = gateway.load_plan(plan_id)
    derived = aggregate(courses, settings.max_credits, policy)
    if (plan.total_credits, plan.cumulative_gpa) == (derived.total_credits, derived.gpa):
        continue
    stale += 1
    print(
        f"{plan_id}: credits {plan.total_credits!r} → {derived.total_credits!r}, "
        f"gpa {plan.cumulative_gpa!r} → {derived.gpa!r}"
    )
    if not dry_run:
        plan.total_credits = derived.total_credits
        plan.cumulative_gpa = derived.gpa
        gateway.upsert_plan(plan, fields={"total_credits", "cumulative_gpa"})

print(f"{stale} of {len(plan_ids)} plan(s) {'stale' if dry_run else 'updated'}.")

"""
Shared fixtures: an in-memory SQLite store, a gateway bound to it, seeded
plans and an API client whose app uses the same store.
"""

import os

# Must be set before degreeplan.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from degreeplan.core.database import build_engine
from degreeplan.core.security import create_access_token
from degreeplan.main import create_app
from degreeplan.models.base import Base
from degreeplan.schemas.course import CourseRecord
from degreeplan.schemas.plan import PlanRecord
from degreeplan.services.gateway import SqlPlanGateway

OWNER_ID = "user-owner"
OTHER_ID = "user-other"


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def gateway(session_factory) -> SqlPlanGateway:
    return SqlPlanGateway(session_factory)


def make_plan(**overrides) -> PlanRecord:
    values = {
        "id": "plan-1",
        "owner_id": OWNER_ID,
        "title": "Computer Science BS",
        "university": "State University",
        "semesters": list(range(1, 13)),
        "is_public": False,
        "notes": [],
    }
    values.update(overrides)
    return PlanRecord(**values)


def make_course(course_id: str, **overrides) -> CourseRecord:
    now = datetime(2026, 1, 15, tzinfo=timezone.utc)
    values = {
        "id": course_id,
        "plan_id": "plan-1",
        "code": f"CS{course_id[-3:]}",
        "name": "Course " + course_id,
        "credits": 3,
        "semester": 1,
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return CourseRecord(**values)


@pytest.fixture
def seeded_plan(gateway) -> PlanRecord:
    """Plan owned by OWNER_ID with an A (3 cr), a B (4 cr) and a W (3 cr)."""
    plan = gateway.upsert_plan(make_plan(notes=["Take calculus early"]))
    gateway.upsert_courses(
        [
            make_course("c-101", credits=3, grade="A", semester=1),
            make_course("c-102", credits=4, grade="B", semester=1),
            make_course("c-201", credits=3, grade="W", semester=2),
        ]
    )
    return plan


@pytest.fixture
def app(session_factory):
    return create_app(session_factory)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def auth_headers(user_id: str = OWNER_ID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}

from degreeplan.models.base import Base
from degreeplan.models.course import Course
from degreeplan.models.plan import Plan

__all__ = ["Base", "Course", "Plan"]

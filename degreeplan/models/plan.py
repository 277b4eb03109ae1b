from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import relationship

from degreeplan.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Plan(Base):
    __tablename__ = "plans"

    id = Column(String(36), primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    university = Column(String, nullable=True)
    semesters = Column(JSON, nullable=False, default=list)
    is_public = Column(Boolean, default=False, index=True)
    notes = Column(Text, nullable=True)  # JSON-encoded list of strings
    # Cached aggregates, re-derived from courses on every load and save
    total_credits = Column(Float, default=0)
    cumulative_gpa = Column(String, default="0.00")
    revision = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    courses = relationship("Course", back_populates="plan")

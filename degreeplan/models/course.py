from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from degreeplan.models.base import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True)
    plan_id = Column(String(36), ForeignKey("plans.id"), nullable=False, index=True)
    code = Column(String, nullable=False)
    name = Column(String, nullable=False)
    credits = Column(Float, nullable=False, default=0)
    semester = Column(Integer, nullable=False)
    grade = Column(String(8), nullable=True)
    section = Column(String, nullable=True)
    timing = Column(String, nullable=True)
    difficulty = Column(Integer, nullable=True)  # 1-5, display only
    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    plan = relationship("Plan", back_populates="courses")

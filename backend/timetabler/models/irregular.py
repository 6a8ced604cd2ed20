import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from timetabler.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IrregularRequirement(Base):
    """A course an irregular student still owes from an earlier level."""

    __tablename__ = "irregular_course_requirements"
    __table_args__ = (UniqueConstraint("student_id", "course_code", name="uq_irregular_requirement_student_course"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    course_code: Mapped[str] = mapped_column(String(50), nullable=False)
    original_level: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(200), nullable=False, default="failed")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class IrregularSchedule(Base):
    __tablename__ = "irregular_schedules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id: Mapped[str] = mapped_column(String(36), unique=True, index=True, nullable=False)
    enrolled_level: Mapped[int] = mapped_column(Integer, nullable=False)
    sections: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    unplaced: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    total_courses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

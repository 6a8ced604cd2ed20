import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from timetabler.db.base import Base


class CourseType(str, Enum):
    compulsory = "compulsory"
    elective = "elective"


class RoomAffinity(str, Enum):
    lecture = "lecture"
    lab = "lab"


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    type: Mapped[CourseType] = mapped_column(
        SAEnum(CourseType, name="course_type"),
        nullable=False,
        default=CourseType.compulsory,
    )
    room_affinity: Mapped[RoomAffinity] = mapped_column(
        SAEnum(RoomAffinity, name="room_affinity"),
        nullable=False,
        default=RoomAffinity.lecture,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

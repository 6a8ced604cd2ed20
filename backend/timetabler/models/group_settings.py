from datetime import datetime

from sqlalchemy import DateTime, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from timetabler.db.base import Base


class LevelGroupSettings(Base):
    __tablename__ = "level_group_settings"

    level: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    students_per_group: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    total_students: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    num_groups: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    group_names: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

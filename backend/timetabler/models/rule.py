import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from timetabler.db.base import Base


class RuleCategory(str, Enum):
    general = "general"
    break_time = "break_time"
    no_friday = "no_friday"
    lab_continuity = "lab_continuity"
    day_off_balance = "day_off_balance"
    room = "room"
    conflict_prevention = "conflict_prevention"


CHECKABLE_RULE_CATEGORIES = frozenset(
    {
        RuleCategory.break_time,
        RuleCategory.no_friday,
        RuleCategory.lab_continuity,
        RuleCategory.day_off_balance,
    }
)


class SchedulingRule(Base):
    __tablename__ = "scheduling_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    rule_text: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[RuleCategory] = mapped_column(
        SAEnum(RuleCategory, name="rule_category"),
        nullable=False,
        default=RuleCategory.general,
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applies_to_levels: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

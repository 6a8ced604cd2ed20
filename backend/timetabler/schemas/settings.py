from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator, model_validator

WEEK_DAYS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
DAY_VALUES = set(WEEK_DAYS)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DEFAULT_BREAK_NAME = "Daily Break"
DEFAULT_BREAK_START = "11:00"
DEFAULT_BREAK_END = "12:00"


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


def add_minutes(value: str, minutes: int) -> str:
    return minutes_to_time(parse_time_to_minutes(value) + minutes)


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return max(start_a, start_b) < min(end_a, end_b)


def _validate_day(value: str) -> str:
    day = value.strip()
    if day not in DAY_VALUES:
        raise ValueError("Invalid day value")
    return day


class BreakWindowEntry(BaseModel):
    name: str = Field(default=DEFAULT_BREAK_NAME, min_length=1, max_length=100)
    start_time: str = DEFAULT_BREAK_START
    end_time: str = DEFAULT_BREAK_END

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_time_order(self) -> "BreakWindowEntry":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("Break end time must be after start time")
        return self


class SchedulePolicy(BaseModel):
    """Institution-wide time grid used by placement, resolution and validation."""

    teaching_days: list[str] = Field(default_factory=lambda: ["Monday", "Tuesday", "Wednesday", "Thursday"])
    blocked_days: list[str] = Field(default_factory=lambda: ["Friday", "Saturday", "Sunday"])
    day_start: str = "08:00"
    day_end: str = "18:00"
    slot_starts: list[str] = Field(
        default_factory=lambda: ["08:00", "09:00", "10:00", "12:00", "13:00", "14:00", "15:00", "16:00"]
    )
    session_minutes: int = Field(default=60, ge=15, le=240)
    break_window: BreakWindowEntry = Field(default_factory=BreakWindowEntry)

    @field_validator("teaching_days", "blocked_days")
    @classmethod
    def validate_days(cls, value: list[str]) -> list[str]:
        return [_validate_day(item) for item in value]

    @field_validator("day_start", "day_end")
    @classmethod
    def validate_bounds(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @field_validator("slot_starts")
    @classmethod
    def validate_slot_starts(cls, value: list[str]) -> list[str]:
        for item in value:
            if not TIME_PATTERN.match(item):
                raise ValueError(f"Slot start {item!r} must be in HH:MM 24-hour format")
        return sorted(set(value), key=parse_time_to_minutes)

    @model_validator(mode="after")
    def validate_day_sets(self) -> "SchedulePolicy":
        overlap = set(self.teaching_days) & set(self.blocked_days)
        if overlap:
            raise ValueError(f"Days cannot be both teaching and blocked: {', '.join(sorted(overlap))}")
        if not self.teaching_days:
            raise ValueError("At least one teaching day is required")
        if parse_time_to_minutes(self.day_end) <= parse_time_to_minutes(self.day_start):
            raise ValueError("day_end must be after day_start")
        return self

    def end_time_for(self, start_time: str) -> str:
        return add_minutes(start_time, self.session_minutes)

    def intersects_break(self, start_time: str, end_time: str) -> bool:
        return intervals_overlap(
            parse_time_to_minutes(start_time),
            parse_time_to_minutes(end_time),
            parse_time_to_minutes(self.break_window.start_time),
            parse_time_to_minutes(self.break_window.end_time),
        )

    def is_teaching_day(self, day: str) -> bool:
        return day in self.teaching_days and day not in self.blocked_days

    def within_teaching_hours(self, start_time: str, end_time: str) -> bool:
        return parse_time_to_minutes(self.day_start) <= parse_time_to_minutes(start_time) and parse_time_to_minutes(
            end_time
        ) <= parse_time_to_minutes(self.day_end)

    def candidate_starts(self) -> list[str]:
        starts: list[str] = []
        for start in self.slot_starts:
            end = self.end_time_for(start)
            if not self.within_teaching_hours(start, end):
                continue
            if self.intersects_break(start, end):
                continue
            starts.append(start)
        return starts

    def candidate_days(self) -> list[str]:
        return [day for day in WEEK_DAYS if self.is_teaching_day(day)]


DEFAULT_SCHEDULE_POLICY = SchedulePolicy()

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from timetabler.schemas.conflict import ConflictDetail, RuleViolation
from timetabler.schemas.settings import DAY_VALUES, TIME_PATTERN, parse_time_to_minutes


def group_key(name: str) -> str:
    """Schedule dictionaries key groups as ``"Group <name>"``."""
    cleaned = name.strip()
    if cleaned.startswith("Group "):
        return cleaned
    return f"Group {cleaned}"


def group_label(key: str) -> str:
    return key.removeprefix("Group ").strip()


class SectionPayload(BaseModel):
    course_code: str = Field(min_length=1, max_length=50)
    course_title: str = ""
    section_label: str = ""
    group: str = ""
    day: str
    start_time: str
    end_time: str
    room: str = Field(min_length=1, max_length=100)
    student_count: int = Field(default=0, ge=0)
    capacity: int = Field(default=0, ge=0)

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        day = value.strip()
        if day not in DAY_VALUES:
            raise ValueError("Invalid day value")
        return day

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "SectionPayload":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def slot_key(self) -> tuple[str, str]:
        return (self.day, self.start_time)

    @property
    def room_key(self) -> tuple[str, str, str]:
        return (self.room, self.day, self.start_time)


class GroupPayload(BaseModel):
    name: str
    student_count: int = Field(default=0, ge=0)
    sections: list[SectionPayload] = Field(default_factory=list)


class PlacementGap(BaseModel):
    level: int
    group: str
    course_code: str
    reason: str


class ScheduleVersionOut(BaseModel):
    id: str
    level: int
    groups: dict[str, GroupPayload]
    total_sections: int
    conflicts: int
    efficiency: int
    status: str = "draft"
    conflict_snapshot: list[ConflictDetail] = Field(default_factory=list)
    placement_gaps: list[PlacementGap] = Field(default_factory=list)
    created_by_id: str | None = None
    generated_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    def all_sections(self) -> list[SectionPayload]:
        return [section for group in self.groups.values() for section in group.sections]


class GenerateScheduleRequest(BaseModel):
    level: int = Field(ge=1, le=20)
    groups: list[str] | None = Field(default=None, max_length=52)
    students_per_group: int | None = Field(default=None, ge=1, le=500)
    persist: bool = True


class GenerationResponse(BaseModel):
    schedule: ScheduleVersionOut
    persisted: bool
    oracle_status: str
    needs_manual_review: bool
    warnings: list[str] = Field(default_factory=list)
    state_history: list[str] = Field(default_factory=list)


class ScheduleEditResponse(BaseModel):
    schedule: ScheduleVersionOut
    needs_manual_review: bool
    rule_violations: list[RuleViolation] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class GenerateAllResponse(BaseModel):
    results: list[GenerationResponse]
    skipped: dict[int, str] = Field(default_factory=dict)


class UpdateScheduleRequest(BaseModel):
    groups: dict[str, GroupPayload]

    @field_validator("groups")
    @classmethod
    def validate_groups(cls, value: dict[str, GroupPayload]) -> dict[str, GroupPayload]:
        if not value:
            raise ValueError("At least one group is required")
        return {group_key(key): group for key, group in value.items()}


class RegenerateScheduleRequest(BaseModel):
    prompt: str = Field(min_length=1, max_length=5000)
    students_per_group: int | None = Field(default=None, ge=1, le=500)


class ScheduleDeleteOut(BaseModel):
    success: bool
    id: str

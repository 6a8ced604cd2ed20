from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from timetabler.schemas.settings import TIME_PATTERN, parse_time_to_minutes


def _clean_time(value: str) -> str:
    stripped = value.strip()
    # Oracles sometimes answer "9:00"; pad it before matching.
    if len(stripped) == 4 and stripped[1] == ":":
        stripped = f"0{stripped}"
    if not TIME_PATTERN.match(stripped):
        raise ValueError("Time must be in HH:MM 24-hour format")
    return stripped


class BlockedSlot(BaseModel):
    day: str
    start: str
    end: str
    room: str | None = None


class ObjectivePriorities(BaseModel):
    minimize_conflicts: bool = True
    minimize_gaps: bool = True
    balance_instructor_loads: bool = True


class OracleConstraints(BaseModel):
    students_per_course: dict[str, int] = Field(default_factory=dict)
    blocked_slots: list[BlockedSlot] = Field(default_factory=list)
    available_rooms: list[str] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    objective_priorities: ObjectivePriorities = Field(default_factory=ObjectivePriorities)


class OracleRequest(BaseModel):
    constraints: OracleConstraints
    level: int


class TimeslotPayload(BaseModel):
    day: str = Field(min_length=1)
    start: str
    end: str

    @field_validator("day")
    @classmethod
    def normalize_day(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("day is required")
        return stripped[:1].upper() + stripped[1:].lower()

    @field_validator("start", "end", mode="before")
    @classmethod
    def validate_time(cls, value: object) -> str:
        if not isinstance(value, str):
            raise ValueError("Time must be a string")
        return _clean_time(value)

    @model_validator(mode="after")
    def validate_order(self) -> "TimeslotPayload":
        if parse_time_to_minutes(self.end) <= parse_time_to_minutes(self.start):
            raise ValueError("end must be after start")
        return self


class Recommendation(BaseModel):
    course_code: str = Field(min_length=1)
    section_label: str = ""
    timeslot: TimeslotPayload
    room: str = Field(min_length=1)
    allocated_student_ids: list[str] = Field(default_factory=list)
    justification: str = ""
    confidence_score: float | None = None

    @field_validator("course_code", "room")
    @classmethod
    def strip_value(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("value cannot be blank")
        return stripped

    @field_validator("allocated_student_ids", mode="before")
    @classmethod
    def coerce_ids(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, list):
            return [str(item) for item in value]
        raise ValueError("allocated_student_ids must be a list")

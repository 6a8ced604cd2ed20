from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class RequirementIn(BaseModel):
    course_code: str = Field(min_length=1, max_length=50)
    reason: str = Field(default="failed", min_length=1, max_length=200)


class RequirementsUpdate(BaseModel):
    requirements: list[RequirementIn] = Field(max_length=50)

    @field_validator("requirements")
    @classmethod
    def validate_unique_codes(cls, value: list[RequirementIn]) -> list[RequirementIn]:
        codes = [item.course_code for item in value]
        if len(codes) != len(set(codes)):
            raise ValueError("Each course can be required only once")
        return value


class RequirementOut(BaseModel):
    course_code: str
    original_level: int
    reason: str

    model_config = {"from_attributes": True}


class IrregularSection(BaseModel):
    course_code: str
    course_title: str = ""
    course_level: int
    source: Literal["failed", "current"]
    section_label: str = ""
    group: str = ""
    day: str
    start_time: str
    end_time: str
    room: str


class PersonalizedSchedule(BaseModel):
    id: str
    student_id: str
    enrolled_level: int
    sections: list[IrregularSection] = Field(default_factory=list)
    unplaced: list[str] = Field(default_factory=list)
    total_courses: int
    generated_at: datetime

    model_config = {"from_attributes": True}


class IrregularBatchResult(BaseModel):
    level: int
    total: int
    success: int
    failed: int
    errors: dict[str, str] = Field(default_factory=dict)

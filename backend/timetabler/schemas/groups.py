from pydantic import BaseModel, Field


class GroupRebalanceRequest(BaseModel):
    students_per_group: int = Field(ge=1, le=500)


class GroupStat(BaseModel):
    name: str
    student_count: int
    has_schedule: bool


class GroupStatistics(BaseModel):
    level: int
    students_per_group: int
    total_students: int
    groups: list[GroupStat]
    unassigned_students: int = 0

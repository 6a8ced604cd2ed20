from pydantic import BaseModel, Field
from typing import Literal, Optional, List

ConflictType = Literal["room_conflict", "time_overlap", "inter_level_conflict"]
Severity = Literal["low", "medium", "high", "critical"]


class AffectedSection(BaseModel):
    level: int
    group: str
    course_code: str
    room: str
    day: str
    start_time: str
    schedule_version_id: Optional[str] = None


class ConflictDetail(BaseModel):
    id: str
    conflict_type: ConflictType
    severity: Severity
    description: str
    level: int
    group: Optional[str] = None
    affected_sections: List[AffectedSection]
    suggested_resolution: str = ""


class RuleViolation(BaseModel):
    id: str
    category: str
    description: str
    level: int
    group: str
    course_code: Optional[str] = None
    severity: Severity = "medium"


class ConflictSummary(BaseModel):
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_level: dict[str, int] = Field(default_factory=dict)
    critical: int = 0


class ConflictReport(BaseModel):
    conflicts: List[ConflictDetail]
    rule_violations: List[RuleViolation] = Field(default_factory=list)
    summary: ConflictSummary


class ResolutionOutcome(BaseModel):
    schedule_version_id: str
    level: int
    conflicts_before: int
    conflicts_after: int
    moved_sections: int
    unresolved_sections: int
    needs_manual_review: bool

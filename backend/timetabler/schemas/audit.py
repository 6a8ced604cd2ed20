from datetime import datetime

from pydantic import BaseModel


class ScheduleAuditLogOut(BaseModel):
    id: str
    schedule_version_id: str | None
    action_type: str
    user_id: str | None
    level: int
    group_name: str | None
    prompt_used: str | None
    changes_summary: dict
    conflicts_before: int
    conflicts_after: int
    execution_time_ms: int
    created_at: datetime

    model_config = {"from_attributes": True}

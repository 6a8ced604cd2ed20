from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from timetabler.models.audit_log import ScheduleAuditLog
from timetabler.schemas.schedule import GroupPayload, SectionPayload


def _section_index(groups: dict[str, GroupPayload]) -> dict[tuple[str, str], SectionPayload]:
    index: dict[tuple[str, str], SectionPayload] = {}
    for name, group in groups.items():
        for section in group.sections:
            index[(name, section.course_code)] = section
    return index


def generate_changes_summary(
    before: dict[str, GroupPayload] | None,
    after: dict[str, GroupPayload],
) -> dict:
    old = _section_index(before or {})
    new = _section_index(after)
    added = sorted(set(new) - set(old))
    removed = sorted(set(old) - set(new))
    moved = []
    for key in sorted(set(old) & set(new)):
        previous, current = old[key], new[key]
        if (previous.day, previous.start_time, previous.room) != (current.day, current.start_time, current.room):
            moved.append(
                {
                    "group": key[0],
                    "course_code": key[1],
                    "from": {"day": previous.day, "start_time": previous.start_time, "room": previous.room},
                    "to": {"day": current.day, "start_time": current.start_time, "room": current.room},
                }
            )
    return {
        "sections_before": len(old),
        "sections_after": len(new),
        "added": [{"group": group, "course_code": code} for group, code in added],
        "removed": [{"group": group, "course_code": code} for group, code in removed],
        "moved": moved,
    }


def log_schedule_action(
    db: Session,
    *,
    action_type: str,
    level: int,
    schedule_version_id: str | None = None,
    user_id: str | None = None,
    group_name: str | None = None,
    prompt_used: str | None = None,
    changes_summary: dict | None = None,
    conflicts_before: int = 0,
    conflicts_after: int = 0,
    execution_time_ms: int = 0,
) -> ScheduleAuditLog:
    record = ScheduleAuditLog(
        schedule_version_id=schedule_version_id,
        action_type=action_type,
        user_id=user_id,
        level=level,
        group_name=group_name,
        prompt_used=prompt_used,
        changes_summary=changes_summary or {},
        conflicts_before=conflicts_before,
        conflicts_after=conflicts_after,
        execution_time_ms=execution_time_ms,
    )
    db.add(record)
    return record


def list_audit_entries(db: Session, schedule_version_id: str) -> list[ScheduleAuditLog]:
    return (
        db.execute(
            select(ScheduleAuditLog)
            .where(ScheduleAuditLog.schedule_version_id == schedule_version_id)
            .order_by(ScheduleAuditLog.created_at.asc())
        )
        .scalars()
        .all()
    )

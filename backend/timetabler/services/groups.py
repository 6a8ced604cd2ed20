from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from timetabler.core.exceptions import InputError
from timetabler.models.group_settings import LevelGroupSettings
from timetabler.models.student import Student
from timetabler.schemas.groups import GroupStat, GroupStatistics
from timetabler.schemas.schedule import group_key, group_label
from timetabler.services.catalog import count_unassigned_students, load_group_sizes
from timetabler.services.schedule_store import ScheduleVersionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentRef:
    id: str
    student_number: str
    group_name: str | None = None


def generate_group_names(count: int) -> list[str]:
    """A, B, ... Z, AA, AB, ..."""
    names: list[str] = []
    for index in range(count):
        label = ""
        value = index + 1
        while value > 0:
            value, remainder = divmod(value - 1, 26)
            label = chr(ord("A") + remainder) + label
        names.append(label)
    return names


def rebalance_groups(students: Sequence[StudentRef], students_per_group: int) -> dict[str, str]:
    """Assign every student a group name, keeping current assignments where possible.

    Students already in a surviving group keep it until the group is full; the
    rest spill into the following groups in name order. Unassigned students fill
    the first group with room.
    """
    if students_per_group < 1:
        raise ValueError("students_per_group must be at least 1")
    ordered = sorted(students, key=lambda student: student.student_number)
    names = generate_group_names(math.ceil(len(ordered) / students_per_group))
    if not names:
        return {}

    sizes = dict.fromkeys(names, 0)
    assignment: dict[str, str] = {}
    overflow: list[tuple[StudentRef, int]] = []
    unassigned: list[StudentRef] = []

    for student in ordered:
        current = group_label(student.group_name) if student.group_name else None
        if current not in sizes:
            unassigned.append(student)
            continue
        if sizes[current] < students_per_group:
            sizes[current] += 1
            assignment[student.id] = current
        else:
            overflow.append((student, names.index(current)))

    for student, origin in overflow:
        for step in range(1, len(names) + 1):
            name = names[(origin + step) % len(names)]
            if sizes[name] < students_per_group:
                sizes[name] += 1
                assignment[student.id] = name
                break

    for student in unassigned:
        for name in names:
            if sizes[name] < students_per_group:
                sizes[name] += 1
                assignment[student.id] = name
                break

    return assignment


def students_per_group_for(db: Session, level: int, default: int) -> int:
    row = db.get(LevelGroupSettings, level)
    return row.students_per_group if row is not None else default


def apply_group_settings(db: Session, level: int, students_per_group: int) -> LevelGroupSettings:
    students = (
        db.execute(
            select(Student)
            .where(Student.level == level, Student.is_irregular.is_(False))
            .order_by(Student.student_number)
        )
        .scalars()
        .all()
    )
    if not students:
        raise InputError(f"No students found for Level {level}", level=level)

    refs = [StudentRef(id=row.id, student_number=row.student_number, group_name=row.group_name) for row in students]
    assignment = rebalance_groups(refs, students_per_group)
    moved = 0
    for row in students:
        target = assignment[row.id]
        if row.group_name != target:
            moved += 1
            row.group_name = target

    names = generate_group_names(math.ceil(len(students) / students_per_group))
    settings_row = db.get(LevelGroupSettings, level)
    if settings_row is None:
        settings_row = LevelGroupSettings(level=level)
        db.add(settings_row)
    settings_row.students_per_group = students_per_group
    settings_row.total_students = len(students)
    settings_row.num_groups = len(names)
    settings_row.group_names = names
    db.commit()
    db.refresh(settings_row)
    logger.info(
        "GROUPS REBALANCED | level=%s | students=%s | groups=%s | moved=%s",
        level,
        len(students),
        len(names),
        moved,
    )
    return settings_row


def group_statistics(db: Session, level: int, *, default_students_per_group: int = 25) -> GroupStatistics:
    sizes = load_group_sizes(db, level)
    latest = ScheduleVersionStore(db).latest_for_level(level)
    scheduled = set(latest.groups) if latest is not None else set()
    return GroupStatistics(
        level=level,
        students_per_group=students_per_group_for(db, level, default_students_per_group),
        total_students=sum(sizes.values()),
        groups=[
            GroupStat(name=group_key(name), student_count=count, has_schedule=group_key(name) in scheduled)
            for name, count in sizes.items()
        ],
        unassigned_students=count_unassigned_students(db, level),
    )

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timetabler.core.exceptions import InputError
from timetabler.models.course import Course, CourseType, RoomAffinity
from timetabler.models.elective_choice import ElectiveChoice
from timetabler.models.room import Room, RoomType
from timetabler.models.rule import RuleCategory, SchedulingRule
from timetabler.models.student import Student
from timetabler.schemas.schedule import group_key


@dataclass(frozen=True)
class CourseSpec:
    code: str
    title: str
    level: int
    type: CourseType = CourseType.compulsory
    room_affinity: RoomAffinity = RoomAffinity.lecture

    @property
    def is_lab(self) -> bool:
        return self.room_affinity == RoomAffinity.lab

    @property
    def is_compulsory(self) -> bool:
        return self.type == CourseType.compulsory


@dataclass(frozen=True)
class RoomSpec:
    name: str
    capacity: int = 30
    type: RoomType = RoomType.lecture

    @property
    def is_lab(self) -> bool:
        return self.type == RoomType.lab


@dataclass(frozen=True)
class RuleSpec:
    text: str
    category: RuleCategory = RuleCategory.general
    priority: int = 0


@dataclass
class LevelInputs:
    level: int
    courses: list[CourseSpec]
    groups: dict[str, int]
    rooms: list[RoomSpec]
    rules: list[RuleSpec] = field(default_factory=list)
    elective_demand: dict[str, int] = field(default_factory=dict)

    @property
    def course_map(self) -> dict[str, CourseSpec]:
        return {course.code: course for course in self.courses}


def group_sort_key(name: str) -> tuple[int, str]:
    label = name.removeprefix("Group ")
    return (len(label), label)


def list_levels(db: Session) -> list[int]:
    rows = db.execute(select(Course.level).distinct().order_by(Course.level)).scalars().all()
    return [int(level) for level in rows]


def load_courses(db: Session, level: int) -> list[CourseSpec]:
    rows = db.execute(select(Course).where(Course.level == level).order_by(Course.code)).scalars().all()
    return [
        CourseSpec(
            code=row.code,
            title=row.title,
            level=row.level,
            type=row.type,
            room_affinity=row.room_affinity,
        )
        for row in rows
    ]


def load_rooms(db: Session) -> list[RoomSpec]:
    rows = db.execute(select(Room).where(Room.is_active.is_(True)).order_by(Room.name)).scalars().all()
    return [RoomSpec(name=row.name, capacity=row.capacity, type=row.type) for row in rows]


def load_group_sizes(db: Session, level: int) -> dict[str, int]:
    rows = db.execute(
        select(Student.group_name, func.count(Student.id))
        .where(
            Student.level == level,
            Student.is_irregular.is_(False),
            Student.group_name.is_not(None),
        )
        .group_by(Student.group_name)
    ).all()
    sizes = {group_key(name): int(count) for name, count in rows if count}
    return dict(sorted(sizes.items(), key=lambda item: group_sort_key(item[0])))


def count_unassigned_students(db: Session, level: int) -> int:
    return int(
        db.execute(
            select(func.count(Student.id)).where(
                Student.level == level,
                Student.is_irregular.is_(False),
                Student.group_name.is_(None),
            )
        ).scalar_one()
    )


def load_rules_for_level(db: Session, level: int) -> list[RuleSpec]:
    rows = (
        db.execute(
            select(SchedulingRule)
            .where(SchedulingRule.is_active.is_(True))
            .order_by(SchedulingRule.priority.desc(), SchedulingRule.created_at.asc())
        )
        .scalars()
        .all()
    )
    rules: list[RuleSpec] = []
    for row in rows:
        levels = row.applies_to_levels or []
        if levels and level not in levels:
            continue
        rules.append(RuleSpec(text=row.rule_text, category=row.category, priority=row.priority))
    return rules


def load_elective_demand(db: Session, level: int) -> dict[str, int]:
    rows = db.execute(
        select(ElectiveChoice.course_code, ElectiveChoice.student_id).where(ElectiveChoice.level == level)
    ).all()
    demand: Counter[str] = Counter()
    seen: set[tuple[str, str]] = set()
    for course_code, student_id in rows:
        if (course_code, student_id) in seen:
            continue
        seen.add((course_code, student_id))
        demand[course_code] += 1
    return dict(demand)


def load_level_inputs(db: Session, level: int, *, groups: list[str] | None = None) -> LevelInputs:
    courses = load_courses(db, level)
    if not courses:
        raise InputError(f"No courses found for Level {level}", level=level)

    group_sizes = load_group_sizes(db, level)
    if not group_sizes:
        raise InputError(f"No students found for Level {level}", level=level)

    if groups:
        wanted = {group_key(name) for name in groups}
        group_sizes = {name: size for name, size in group_sizes.items() if name in wanted}
        if not group_sizes:
            raise InputError(
                f"No groups with students found for Level {level}",
                level=level,
                details={"requested_groups": sorted(wanted)},
            )

    rooms = load_rooms(db)
    if not rooms:
        raise InputError("No rooms available for generation", level=level)

    return LevelInputs(
        level=level,
        courses=courses,
        groups=group_sizes,
        rooms=rooms,
        rules=load_rules_for_level(db, level),
        elective_demand=load_elective_demand(db, level),
    )

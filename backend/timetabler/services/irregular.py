from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timetabler.core.exceptions import InputError, PersistenceError, ResourceNotFoundError
from timetabler.models.course import Course
from timetabler.models.irregular import IrregularRequirement, IrregularSchedule
from timetabler.models.student import Student
from timetabler.schemas.irregular import (
    IrregularBatchResult,
    IrregularSection,
    PersonalizedSchedule,
    RequirementIn,
    RequirementOut,
)
from timetabler.schemas.schedule import SectionPayload, ScheduleVersionOut
from timetabler.schemas.settings import intervals_overlap, parse_time_to_minutes
from timetabler.services.catalog import load_courses
from timetabler.services.schedule_store import ScheduleVersionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NeededCourse:
    code: str
    title: str
    level: int
    source: str


def sections_overlap(first: SectionPayload | IrregularSection, second: SectionPayload | IrregularSection) -> bool:
    if first.day != second.day:
        return False
    return intervals_overlap(
        parse_time_to_minutes(first.start_time),
        parse_time_to_minutes(first.end_time),
        parse_time_to_minutes(second.start_time),
        parse_time_to_minutes(second.end_time),
    )


def select_conflict_free_sections(
    needed: Sequence[NeededCourse],
    versions: Sequence[ScheduleVersionOut],
) -> tuple[list[IrregularSection], list[str]]:
    """Pick one offered section per needed course so no two picks overlap in time.

    Courses are taken in the order given and each gets the first offered
    section that fits around the picks already made. Returns the picks and
    the codes of courses that got none.
    """
    offered: dict[str, list[tuple[int, SectionPayload]]] = defaultdict(list)
    for version in versions:
        for section in version.all_sections():
            offered[section.course_code].append((version.level, section))

    chosen: list[IrregularSection] = []
    unplaced: list[str] = []
    for course in needed:
        candidates = offered.get(course.code, [])
        if not candidates:
            logger.warning("No section offered | course=%s", course.code)
            unplaced.append(course.code)
            continue
        pick = next(
            (
                (level, section)
                for level, section in candidates
                if not any(sections_overlap(section, taken) for taken in chosen)
            ),
            None,
        )
        if pick is None:
            logger.warning("No overlap-free section | course=%s | offered=%s", course.code, len(candidates))
            unplaced.append(course.code)
            continue
        level, section = pick
        chosen.append(
            IrregularSection(
                course_code=course.code,
                course_title=course.title or section.course_title,
                course_level=level,
                source=course.source,
                section_label=section.section_label,
                group=section.group,
                day=section.day,
                start_time=section.start_time,
                end_time=section.end_time,
                room=section.room,
            )
        )
    return chosen, unplaced


def _irregular_student(db: Session, student_id: str) -> Student:
    student = db.get(Student, student_id)
    if student is None or not student.is_irregular:
        raise ResourceNotFoundError("Irregular student", student_id)
    return student


def load_requirements(db: Session, student_id: str) -> list[RequirementOut]:
    _irregular_student(db, student_id)
    rows = db.execute(
        select(IrregularRequirement)
        .where(IrregularRequirement.student_id == student_id)
        .order_by(IrregularRequirement.original_level, IrregularRequirement.course_code)
    ).scalars()
    return [RequirementOut.model_validate(row) for row in rows]


def replace_requirements(db: Session, student_id: str, requirements: Sequence[RequirementIn]) -> list[RequirementOut]:
    """Swap a student's owed courses for ``requirements``. Each course's own level is recorded."""
    _irregular_student(db, student_id)
    codes = [item.course_code for item in requirements]
    courses = {row.code: row for row in db.execute(select(Course).where(Course.code.in_(codes))).scalars()}
    unknown = sorted(set(codes) - set(courses))
    if unknown:
        raise InputError("Unknown course codes", details={"course_codes": unknown})

    for row in db.execute(select(IrregularRequirement).where(IrregularRequirement.student_id == student_id)).scalars():
        db.delete(row)
    # Deletes must reach the database before re-adding the same course codes.
    db.flush()
    for item in requirements:
        db.add(
            IrregularRequirement(
                student_id=student_id,
                course_code=item.course_code,
                original_level=courses[item.course_code].level,
                reason=item.reason,
            )
        )
    _commit(db, "replace requirements", student_id=student_id)
    logger.info("IRREGULAR REQUIREMENTS SET | student_id=%s | courses=%s", student_id, len(codes))
    return load_requirements(db, student_id)


def courses_needed(db: Session, student: Student) -> list[NeededCourse]:
    """Owed courses first, then the compulsory courses of the student's own level."""
    requirements = db.execute(
        select(IrregularRequirement, Course.title)
        .join(Course, Course.code == IrregularRequirement.course_code, isouter=True)
        .where(IrregularRequirement.student_id == student.id)
        .order_by(IrregularRequirement.original_level, IrregularRequirement.course_code)
    ).all()
    needed = [
        NeededCourse(code=row.course_code, title=title or "", level=row.original_level, source="failed")
        for row, title in requirements
    ]
    owed = {course.code for course in needed}
    needed.extend(
        NeededCourse(code=course.code, title=course.title, level=course.level, source="current")
        for course in load_courses(db, student.level)
        if course.is_compulsory and course.code not in owed
    )
    return needed


def generate_personalized_schedule(db: Session, student_id: str) -> PersonalizedSchedule:
    student = _irregular_student(db, student_id)
    needed = courses_needed(db, student)
    if not needed:
        raise InputError(
            f"No courses to schedule for student {student.student_number}",
            level=student.level,
            details={"student_id": student_id},
        )

    levels = {course.level for course in needed}
    versions = [version for version in ScheduleVersionStore(db).latest_per_level() if version.level in levels]
    if not versions:
        raise InputError(
            "No schedule versions for the student's levels",
            details={"student_id": student_id, "levels": sorted(levels)},
        )

    sections, unplaced = select_conflict_free_sections(needed, versions)
    record = db.execute(select(IrregularSchedule).where(IrregularSchedule.student_id == student_id)).scalars().first()
    if record is None:
        record = IrregularSchedule(student_id=student_id)
        db.add(record)
    record.enrolled_level = student.level
    record.sections = [item.model_dump(mode="json") for item in sections]
    record.unplaced = unplaced
    record.total_courses = len(sections)
    record.generated_at = datetime.now(timezone.utc)
    _commit(db, "store personalized schedule", student_id=student_id)
    db.refresh(record)
    logger.info(
        "IRREGULAR SCHEDULE GENERATED | student_id=%s | level=%s | courses=%s | unplaced=%s",
        student_id,
        student.level,
        len(sections),
        len(unplaced),
    )
    return PersonalizedSchedule.model_validate(record)


def get_personalized_schedule(db: Session, student_id: str) -> PersonalizedSchedule:
    _irregular_student(db, student_id)
    record = db.execute(select(IrregularSchedule).where(IrregularSchedule.student_id == student_id)).scalars().first()
    if record is None:
        raise ResourceNotFoundError("Personalized schedule for student", student_id)
    return PersonalizedSchedule.model_validate(record)


def generate_for_all_irregular_students(db: Session, level: int) -> IrregularBatchResult:
    students = (
        db.execute(
            select(Student)
            .where(Student.level == level, Student.is_irregular.is_(True))
            .order_by(Student.student_number)
        )
        .scalars()
        .all()
    )
    errors: dict[str, str] = {}
    for student in students:
        try:
            generate_personalized_schedule(db, student.id)
        except InputError as exc:
            logger.warning(
                "Personalized schedule skipped | student=%s | reason=%s",
                student.student_number,
                exc.message,
            )
            errors[student.student_number] = exc.message
    result = IrregularBatchResult(
        level=level,
        total=len(students),
        success=len(students) - len(errors),
        failed=len(errors),
        errors=errors,
    )
    logger.info(
        "IRREGULAR SCHEDULES GENERATED | level=%s | success=%s | failed=%s",
        level,
        result.success,
        result.failed,
    )
    return result


def _commit(db: Session, action: str, *, student_id: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("IRREGULAR SCHEDULE WRITE FAILED | action=%s | student_id=%s", action, student_id)
        raise PersistenceError(
            f"Failed to {action}",
            storage_error=str(getattr(exc, "orig", None) or exc),
            details={"student_id": student_id},
        ) from exc

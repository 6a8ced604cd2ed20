from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from timetabler.models.rule import CHECKABLE_RULE_CATEGORIES, RuleCategory
from timetabler.schemas.conflict import RuleViolation
from timetabler.schemas.schedule import GroupPayload
from timetabler.schemas.settings import DEFAULT_SCHEDULE_POLICY, SchedulePolicy

Validator = Callable[
    [int, Mapping[str, GroupPayload], SchedulePolicy, Mapping[str, bool], Mapping[str, bool]],
    list[RuleViolation],
]


def check_break_time(level, groups, policy, lab_courses, lab_rooms) -> list[RuleViolation]:
    violations = []
    window = policy.break_window
    for group_name, group in groups.items():
        for section in group.sections:
            if policy.intersects_break(section.start_time, section.end_time):
                violations.append(
                    RuleViolation(
                        id=f"break_time:{level}:{group_name}:{section.course_code}:{section.day}",
                        category=RuleCategory.break_time.value,
                        description=(
                            f"{section.course_code} on {section.day} {section.start_time}-{section.end_time} "
                            f"overlaps {window.name} ({window.start_time}-{window.end_time})"
                        ),
                        level=level,
                        group=group_name,
                        course_code=section.course_code,
                        severity="high",
                    )
                )
    return violations


def check_blocked_days(level, groups, policy, lab_courses, lab_rooms) -> list[RuleViolation]:
    violations = []
    for group_name, group in groups.items():
        for section in group.sections:
            if not policy.is_teaching_day(section.day):
                violations.append(
                    RuleViolation(
                        id=f"no_friday:{level}:{group_name}:{section.course_code}:{section.day}",
                        category=RuleCategory.no_friday.value,
                        description=f"{section.course_code} is scheduled on {section.day}, which is not a teaching day",
                        level=level,
                        group=group_name,
                        course_code=section.course_code,
                        severity="high",
                    )
                )
    return violations


def check_lab_continuity(level, groups, policy, lab_courses, lab_rooms) -> list[RuleViolation]:
    violations = []
    for group_name, group in groups.items():
        for section in group.sections:
            if section.course_code not in lab_courses or section.room not in lab_rooms:
                continue
            needs_lab = lab_courses[section.course_code]
            in_lab = lab_rooms[section.room]
            if needs_lab == in_lab:
                continue
            expected = "a lab" if needs_lab else "a lecture room"
            violations.append(
                RuleViolation(
                    id=f"lab_continuity:{level}:{group_name}:{section.course_code}",
                    category=RuleCategory.lab_continuity.value,
                    description=f"{section.course_code} should be taught in {expected}, not {section.room}",
                    level=level,
                    group=group_name,
                    course_code=section.course_code,
                )
            )
    return violations


def check_day_off_balance(level, groups, policy, lab_courses, lab_rooms) -> list[RuleViolation]:
    teaching_days = set(policy.candidate_days())
    violations = []
    # A single teaching day leaves nothing to balance.
    if len(teaching_days) < 2:
        return violations
    for group_name, group in groups.items():
        used = {section.day for section in group.sections}
        if teaching_days <= used:
            violations.append(
                RuleViolation(
                    id=f"day_off_balance:{level}:{group_name}",
                    category=RuleCategory.day_off_balance.value,
                    description=f"{group_name} has classes on every teaching day and no day off",
                    level=level,
                    group=group_name,
                    severity="low",
                )
            )
    return violations


VALIDATORS: dict[RuleCategory, Validator] = {
    RuleCategory.break_time: check_break_time,
    RuleCategory.no_friday: check_blocked_days,
    RuleCategory.lab_continuity: check_lab_continuity,
    RuleCategory.day_off_balance: check_day_off_balance,
}


def validate_rules(
    level: int,
    groups: Mapping[str, GroupPayload],
    *,
    policy: SchedulePolicy = DEFAULT_SCHEDULE_POLICY,
    lab_courses: Mapping[str, bool] | None = None,
    lab_rooms: Mapping[str, bool] | None = None,
    categories: Iterable[RuleCategory] | None = None,
) -> list[RuleViolation]:
    """Run the machine-checkable rule categories over one level's groups.

    ``lab_courses`` and ``lab_rooms`` map course codes and room names to whether
    they are labs. With no ``categories`` every checkable category runs.
    """
    selected = CHECKABLE_RULE_CATEGORIES if categories is None else {RuleCategory(item) for item in categories}
    violations: list[RuleViolation] = []
    for category in sorted(selected, key=lambda item: item.value):
        validator = VALIDATORS.get(category)
        if validator is None:
            continue
        violations.extend(validator(level, groups, policy, lab_courses or {}, lab_rooms or {}))
    return violations

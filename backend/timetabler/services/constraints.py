from __future__ import annotations

import logging
from collections.abc import Sequence

from timetabler.schemas.oracle import BlockedSlot, ObjectivePriorities, OracleConstraints
from timetabler.schemas.settings import DEFAULT_SCHEDULE_POLICY, SchedulePolicy
from timetabler.services.catalog import CourseSpec, LevelInputs
from timetabler.services.occupancy import OccupiedSlot

logger = logging.getLogger(__name__)

# Occupied slots spelled out in the rule text; the rest are counted.
MAX_OCCUPIED_SLOTS_IN_RULES = 200


class ConstraintBuilder:
    def __init__(self, policy: SchedulePolicy = DEFAULT_SCHEDULE_POLICY, *, section_capacity: int = 30) -> None:
        self.policy = policy
        self.section_capacity = section_capacity

    def schedulable_courses(self, inputs: LevelInputs) -> list[CourseSpec]:
        """Compulsory courses always; electives only with recorded demand."""
        courses: list[CourseSpec] = []
        for course in inputs.courses:
            if course.is_compulsory:
                courses.append(course)
                continue
            if inputs.elective_demand.get(course.code, 0) > 0:
                courses.append(course)
            else:
                logger.info(
                    "Elective skipped without demand | level=%s course=%s",
                    inputs.level,
                    course.code,
                )
        return courses

    def blocked_slots(self, occupied: Sequence[OccupiedSlot]) -> list[BlockedSlot]:
        policy = self.policy
        blocked = [BlockedSlot(day=day, start=policy.day_start, end=policy.day_end) for day in policy.blocked_days]
        blocked.extend(
            BlockedSlot(day=day, start=policy.break_window.start_time, end=policy.break_window.end_time)
            for day in policy.candidate_days()
        )
        blocked.extend(
            BlockedSlot(
                day=slot.day,
                start=slot.start_time,
                end=slot.end_time or policy.end_time_for(slot.start_time),
                room=slot.room,
            )
            for slot in occupied
        )
        return blocked

    def build(
        self,
        inputs: LevelInputs,
        *,
        group_name: str,
        student_count: int,
        occupied: Sequence[OccupiedSlot] = (),
        extra_rules: Sequence[str] = (),
    ) -> OracleConstraints:
        courses = self.schedulable_courses(inputs)
        students_per_course: dict[str, int] = {}
        for course in courses:
            if course.is_compulsory:
                students_per_course[course.code] = student_count
            else:
                students_per_course[course.code] = inputs.elective_demand[course.code]

        return OracleConstraints(
            students_per_course=students_per_course,
            blocked_slots=self.blocked_slots(occupied),
            available_rooms=[room.name for room in inputs.rooms],
            rules=self._rules(inputs, group_name=group_name, occupied=occupied, courses=courses, extra_rules=extra_rules),
            objective_priorities=ObjectivePriorities(),
        )

    def _rules(
        self,
        inputs: LevelInputs,
        *,
        group_name: str,
        occupied: Sequence[OccupiedSlot],
        courses: Sequence[CourseSpec],
        extra_rules: Sequence[str],
    ) -> list[str]:
        policy = self.policy
        lab_rooms = [room.name for room in inputs.rooms if room.is_lab]
        lecture_rooms = [room.name for room in inputs.rooms if not room.is_lab]
        lab_courses = [course.code for course in courses if course.is_lab]
        listed = list(occupied)[:MAX_OCCUPIED_SLOTS_IN_RULES]
        occupied_text = ", ".join(
            f"{slot.room} on {slot.day} at {slot.start_time} (Level {slot.level})" for slot in listed
        )
        if len(occupied) > len(listed):
            occupied_text += f" and {len(occupied) - len(listed)} more"

        rules = [
            f"This is for {group_name} in Level {inputs.level} - create a unique schedule",
            "Never use time/room slots that are occupied by other levels",
            f"Occupied slots (must avoid): {occupied_text or 'None yet'}",
            f"No classes on {', '.join(policy.blocked_days)}" if policy.blocked_days else "All days are open",
            (
                f"No classes during {policy.break_window.start_time}-{policy.break_window.end_time} "
                f"{policy.break_window.name.lower()}"
            ),
            f"Allowed start times: {', '.join(policy.candidate_starts())}",
            f"Each section lasts {policy.session_minutes} minutes",
            f"Each section should have {self.section_capacity} students maximum",
            "No duplicate courses in the same group schedule",
            f"Lab courses ({', '.join(lab_courses) or 'none'}) must use lab rooms ({', '.join(lab_rooms) or 'none'})",
            f"Lecture courses must use regular rooms ({', '.join(lecture_rooms) or 'none'})",
            f"Distribute courses evenly across {', '.join(policy.candidate_days())}",
            "Avoid scheduling all courses on the same day",
        ]
        rules.extend(rule.text for rule in inputs.rules)
        rules.extend(text for text in extra_rules if text.strip())
        return rules

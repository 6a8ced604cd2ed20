from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from timetabler.schemas.oracle import Recommendation
from timetabler.schemas.schedule import GroupPayload, PlacementGap, SectionPayload, group_label
from timetabler.schemas.settings import DEFAULT_SCHEDULE_POLICY, SchedulePolicy
from timetabler.services.catalog import CourseSpec, LevelInputs, RoomSpec
from timetabler.services.occupancy import RoomOccupancyTracker

logger = logging.getLogger(__name__)

GROUP_OFFSET_STEP = 2


@dataclass
class GroupPlacement:
    group: str
    student_count: int
    sections: list[SectionPayload] = field(default_factory=list)
    gaps: list[PlacementGap] = field(default_factory=list)
    accepted_from_oracle: int = 0
    placed_by_fallback: int = 0
    rejected_proposals: int = 0

    def to_payload(self) -> GroupPayload:
        return GroupPayload(name=self.group, student_count=self.student_count, sections=list(self.sections))


class SectionPlacer:
    """Turns oracle proposals into sections for one group and back-fills the rest.

    Every accepted section holds a reservation in the shared tracker, so a later
    proposal or fallback choice in the same pass cannot reuse the room slot.
    """

    def __init__(
        self,
        tracker: RoomOccupancyTracker,
        policy: SchedulePolicy = DEFAULT_SCHEDULE_POLICY,
        *,
        section_capacity: int = 30,
    ) -> None:
        self.tracker = tracker
        self.policy = policy
        self.section_capacity = section_capacity

    def place_group(
        self,
        inputs: LevelInputs,
        *,
        group_name: str,
        group_index: int,
        student_count: int,
        courses: Sequence[CourseSpec],
        recommendations: Sequence[Recommendation] = (),
    ) -> GroupPlacement:
        result = GroupPlacement(group=group_name, student_count=student_count)
        course_map = {course.code: course for course in courses}
        room_map = {room.name: room for room in inputs.rooms}

        for proposal in recommendations:
            reason = self._rejection_reason(proposal, result, course_map, room_map)
            if reason:
                result.rejected_proposals += 1
                logger.debug(
                    "Proposal rejected | level=%s group=%s course=%s reason=%s",
                    inputs.level,
                    group_name,
                    proposal.course_code,
                    reason,
                )
                continue
            start = proposal.timeslot.start
            if not self.tracker.try_reserve(proposal.room, proposal.timeslot.day, start):
                result.rejected_proposals += 1
                logger.debug(
                    "Proposal room taken | level=%s group=%s room=%s day=%s start=%s",
                    inputs.level,
                    group_name,
                    proposal.room,
                    proposal.timeslot.day,
                    start,
                )
                continue
            course = course_map[proposal.course_code]
            room = room_map[proposal.room]
            count = self._student_count(course, inputs, student_count, proposal.allocated_student_ids)
            result.sections.append(
                self._section(
                    course,
                    group_name=group_name,
                    day=proposal.timeslot.day,
                    start_time=start,
                    room=room,
                    student_count=count,
                    section_label=proposal.section_label,
                )
            )
            result.accepted_from_oracle += 1

        self._drop_break_violations(result)

        compulsory = [course for course in courses if course.is_compulsory]
        placed = {section.course_code for section in result.sections}
        for course_index, course in enumerate(compulsory):
            if course.code in placed:
                continue
            section = self._fallback(
                inputs,
                course,
                course_index=course_index,
                group_name=group_name,
                group_index=group_index,
                student_count=student_count,
                taken={section.slot_key for section in result.sections},
            )
            if section is None:
                reason = self._gap_reason(course, inputs.rooms)
                logger.warning(
                    "Course could not be placed | level=%s group=%s course=%s reason=%s",
                    inputs.level,
                    group_name,
                    course.code,
                    reason,
                )
                result.gaps.append(
                    PlacementGap(level=inputs.level, group=group_name, course_code=course.code, reason=reason)
                )
                continue
            result.sections.append(section)
            result.placed_by_fallback += 1

        result.sections.sort(key=self._section_order)
        logger.info(
            "Group placed | level=%s group=%s sections=%s oracle=%s fallback=%s gaps=%s",
            inputs.level,
            group_name,
            len(result.sections),
            result.accepted_from_oracle,
            result.placed_by_fallback,
            len(result.gaps),
        )
        return result

    def candidate_slots(self, base: int) -> list[tuple[str, str]]:
        """Round-robin ``(day, start)`` order starting at ``base``.

        Consecutive steps move across days first, so neighbouring courses land on
        different days before a day takes a second slot.
        """
        days = self.policy.candidate_days()
        starts = self.policy.candidate_starts()
        if not days or not starts:
            return []
        nd, ns = len(days), len(starts)
        return [(days[(base + step) % nd], starts[(base + step // nd) % ns]) for step in range(nd * ns)]

    def _rejection_reason(
        self,
        proposal: Recommendation,
        result: GroupPlacement,
        course_map: dict[str, CourseSpec],
        room_map: dict[str, RoomSpec],
    ) -> str | None:
        course = course_map.get(proposal.course_code)
        if course is None:
            return "unknown or unschedulable course"
        if any(section.course_code == course.code for section in result.sections):
            return "course already placed for group"
        slot = proposal.timeslot
        if any(section.slot_key == (slot.day, slot.start) for section in result.sections):
            return "group already busy at slot"
        if not self.policy.is_teaching_day(slot.day):
            return "day is not a teaching day"
        if slot.start not in self.policy.slot_starts:
            return "start is not on the slot grid"
        if not self.policy.within_teaching_hours(slot.start, self.policy.end_time_for(slot.start)):
            return "outside teaching hours"
        room = room_map.get(proposal.room)
        if room is None:
            return "room not in pool"
        if room.is_lab != course.is_lab:
            return "room type does not match course"
        return None

    def _drop_break_violations(self, result: GroupPlacement) -> None:
        kept: list[SectionPayload] = []
        for section in result.sections:
            if self.policy.intersects_break(section.start_time, section.end_time):
                self.tracker.release(section.room, section.day, section.start_time)
                result.accepted_from_oracle -= 1
                logger.info(
                    "Section dropped for break window | group=%s course=%s start=%s",
                    result.group,
                    section.course_code,
                    section.start_time,
                )
                continue
            kept.append(section)
        result.sections = kept

    def _fallback(
        self,
        inputs: LevelInputs,
        course: CourseSpec,
        *,
        course_index: int,
        group_name: str,
        group_index: int,
        student_count: int,
        taken: set[tuple[str, str]],
    ) -> SectionPayload | None:
        rooms = [room for room in inputs.rooms if room.is_lab == course.is_lab]
        if not rooms:
            return None
        count = self._student_count(course, inputs, student_count, ())
        # Rooms large enough for the group first, then by name.
        rooms.sort(key=lambda room: (room.capacity < count, room.name))

        base = course_index + group_index * GROUP_OFFSET_STEP
        for day, start in self.candidate_slots(base):
            if (day, start) in taken:
                continue
            for room in rooms:
                if self.tracker.try_reserve(room.name, day, start):
                    return self._section(
                        course,
                        group_name=group_name,
                        day=day,
                        start_time=start,
                        room=room,
                        student_count=count,
                    )
        return None

    def _gap_reason(self, course: CourseSpec, rooms: Sequence[RoomSpec]) -> str:
        if not any(room.is_lab == course.is_lab for room in rooms):
            return f"no {'lab' if course.is_lab else 'lecture'} room available"
        return "no free slot and room combination"

    def _student_count(
        self,
        course: CourseSpec,
        inputs: LevelInputs,
        group_size: int,
        allocated: Sequence[str],
    ) -> int:
        if allocated:
            return len(allocated)
        if course.is_compulsory:
            return group_size
        return inputs.elective_demand.get(course.code, 0)

    def _section(
        self,
        course: CourseSpec,
        *,
        group_name: str,
        day: str,
        start_time: str,
        room: RoomSpec,
        student_count: int,
        section_label: str = "",
    ) -> SectionPayload:
        capacity = room.capacity or self.section_capacity
        return SectionPayload(
            course_code=course.code,
            course_title=course.title,
            section_label=section_label or f"{course.code}-{group_label(group_name)}",
            group=group_name,
            day=day,
            start_time=start_time,
            end_time=self.policy.end_time_for(start_time),
            room=room.name,
            student_count=min(student_count, capacity),
            capacity=capacity,
        )

    def _section_order(self, section: SectionPayload) -> tuple[int, str, str]:
        days = self.policy.candidate_days()
        day_index = days.index(section.day) if section.day in days else len(days)
        return (day_index, section.start_time, section.course_code)

from __future__ import annotations

import logging
import random
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from timetabler.schemas.conflict import ConflictDetail
from timetabler.schemas.schedule import GroupPayload, SectionPayload
from timetabler.schemas.settings import DEFAULT_SCHEDULE_POLICY, SchedulePolicy
from timetabler.services.catalog import RoomSpec
from timetabler.services.conflict_service import ScheduleView

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 50

SectionKey = tuple[str, str, str, str]


@dataclass
class ResolutionReport:
    moved: list[SectionKey] = field(default_factory=list)
    unresolved: list[SectionKey] = field(default_factory=list)
    attempts: int = 0


def section_key(group: str, section: SectionPayload) -> SectionKey:
    return (group, section.course_code, section.day, section.start_time)


class ConflictResolver:
    """Bounded random repair of conflicting sections of one level.

    ``rng`` and ``max_attempts`` are injectable so tests can seed the search.
    """

    def __init__(
        self,
        rooms: Sequence[RoomSpec],
        policy: SchedulePolicy = DEFAULT_SCHEDULE_POLICY,
        *,
        rng: random.Random | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        days: Sequence[str] | None = None,
        starts: Sequence[str] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.rooms = list(rooms)
        self.policy = policy
        self.rng = rng or random.Random()
        self.max_attempts = max_attempts
        self.days = list(days) if days is not None else policy.candidate_days()
        self.starts = list(starts) if starts is not None else policy.candidate_starts()

    def sections_to_move(self, candidate: ScheduleView, conflicts: Sequence[ConflictDetail]) -> list[SectionKey]:
        """Pick which of the candidate's sections to move.

        Within a level the first occupant of a bucket stays put. Sections that
        collide with another level always move, since the other level is settled.
        """
        keys: list[SectionKey] = []
        seen: set[SectionKey] = set()
        for conflict in conflicts:
            own = [
                affected
                for affected in conflict.affected_sections
                if affected.level == candidate.level
                and (affected.schedule_version_id is None or affected.schedule_version_id == candidate.version_id)
            ]
            if conflict.conflict_type != "inter_level_conflict":
                own = own[1:]
            for affected in own:
                key = (affected.group, affected.course_code, affected.day, affected.start_time)
                if key not in seen:
                    seen.add(key)
                    keys.append(key)
        return keys

    def resolve(
        self,
        candidate: ScheduleView,
        others: Sequence[ScheduleView],
        conflicts: Sequence[ConflictDetail],
    ) -> tuple[dict[str, GroupPayload], ResolutionReport]:
        groups = {name: group.model_copy(deep=True) for name, group in candidate.groups.items()}
        report = ResolutionReport()
        targets = self.sections_to_move(candidate, conflicts)
        if not targets:
            return groups, report

        external: set[tuple[str, str, str]] = set()
        for view in others:
            if view.level == candidate.level:
                continue
            for _, section in view.located_sections():
                external.add(section.room_key)

        room_usage: Counter[tuple[str, str, str]] = Counter()
        group_usage: dict[str, Counter[tuple[str, str]]] = {}
        for name, group in groups.items():
            group_usage[name] = Counter(section.slot_key for section in group.sections)
            room_usage.update(section.room_key for section in group.sections)

        room_map = {room.name: room for room in self.rooms}
        for key in targets:
            group_name = key[0]
            group = groups.get(group_name)
            index = self._find(group, key)
            if group is None or index is None:
                continue
            section = group.sections[index]
            room_usage[section.room_key] -= 1
            group_usage[group_name][section.slot_key] -= 1

            moved = self._search(section, room_map, external, room_usage, group_usage[group_name], report)
            if moved is None:
                room_usage[section.room_key] += 1
                group_usage[group_name][section.slot_key] += 1
                report.unresolved.append(key)
                logger.warning(
                    "Section left in conflict | level=%s group=%s course=%s attempts=%s",
                    candidate.level,
                    group_name,
                    section.course_code,
                    self.max_attempts,
                )
                continue

            group.sections[index] = moved
            room_usage[moved.room_key] += 1
            group_usage[group_name][moved.slot_key] += 1
            report.moved.append(key)
            logger.info(
                "Section moved | level=%s group=%s course=%s from=%s/%s/%s to=%s/%s/%s",
                candidate.level,
                group_name,
                section.course_code,
                section.room,
                section.day,
                section.start_time,
                moved.room,
                moved.day,
                moved.start_time,
            )
        return groups, report

    def _find(self, group: GroupPayload | None, key: SectionKey) -> int | None:
        if group is None:
            return None
        for index, section in enumerate(group.sections):
            if section_key(key[0], section) == key:
                return index
        return None

    def _room_pool(self, section: SectionPayload, room_map: dict[str, RoomSpec]) -> list[RoomSpec]:
        current = room_map.get(section.room)
        pool = self.rooms
        if current is not None:
            pool = [room for room in self.rooms if room.is_lab == current.is_lab]
        roomy = [room for room in pool if room.capacity >= section.student_count]
        return roomy or pool

    def _search(
        self,
        section: SectionPayload,
        room_map: dict[str, RoomSpec],
        external: set[tuple[str, str, str]],
        room_usage: Counter[tuple[str, str, str]],
        slot_usage: Counter[tuple[str, str]],
        report: ResolutionReport,
    ) -> SectionPayload | None:
        pool = self._room_pool(section, room_map)
        if not pool or not self.days or not self.starts:
            return None
        for _ in range(self.max_attempts):
            report.attempts += 1
            day = self.rng.choice(self.days)
            start = self.rng.choice(self.starts)
            room = self.rng.choice(pool)
            room_slot = (room.name, day, start)
            if room_slot in external or room_usage[room_slot] > 0 or slot_usage[(day, start)] > 0:
                continue
            return section.model_copy(
                update={
                    "day": day,
                    "start_time": start,
                    "end_time": self.policy.end_time_for(start),
                    "room": room.name,
                    "capacity": room.capacity or section.capacity,
                }
            )
        return None

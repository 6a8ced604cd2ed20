from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from timetabler.schemas.conflict import AffectedSection, ConflictDetail, ConflictSummary
from timetabler.schemas.schedule import GroupPayload, ScheduleVersionOut, SectionPayload

RoomKey = Tuple[str, str, str]


@dataclass
class ScheduleView:
    """The parts of a schedule version the detectors look at.

    Unsaved candidates have no ``version_id`` yet.
    """

    level: int
    groups: Dict[str, GroupPayload]
    version_id: Optional[str] = None

    @classmethod
    def from_version(cls, version: ScheduleVersionOut) -> "ScheduleView":
        return cls(level=version.level, groups=version.groups, version_id=version.id)

    def located_sections(self) -> List[Tuple[str, SectionPayload]]:
        rows = []
        for group_name, group in self.groups.items():
            for section in group.sections:
                rows.append((group_name, section))
        return rows


@dataclass(frozen=True)
class _Located:
    level: int
    group: str
    section: SectionPayload
    version_id: Optional[str]

    def affected(self) -> AffectedSection:
        return AffectedSection(
            level=self.level,
            group=self.group,
            course_code=self.section.course_code,
            room=self.section.room,
            day=self.section.day,
            start_time=self.section.start_time,
            schedule_version_id=self.version_id,
        )

    @property
    def identity(self) -> Tuple[int, str, str]:
        return (self.level, self.group, self.section.course_code)


def _locate(views: Iterable[ScheduleView]) -> List[_Located]:
    rows = []
    for view in views:
        for group_name, section in view.located_sections():
            rows.append(_Located(level=view.level, group=group_name, section=section, version_id=view.version_id))
    rows.sort(key=lambda row: (row.level, row.group, row.section.day, row.section.start_time, row.section.course_code))
    return rows


def _by_room_slot(rows: Iterable[_Located]) -> Dict[RoomKey, List[_Located]]:
    buckets: Dict[RoomKey, List[_Located]] = defaultdict(list)
    for row in rows:
        buckets[row.section.room_key].append(row)
    return buckets


class ConflictDetector:
    """Stateless detectors; the same inputs always give the same conflict list."""

    def detect_room_conflicts(self, views: Sequence[ScheduleView]) -> List[ConflictDetail]:
        conflicts: List[ConflictDetail] = []
        buckets = _by_room_slot(_locate(views))
        for (room, day, start), rows in sorted(buckets.items()):
            # One course taught once in a slot is fine; anything else double-books the room.
            if len({row.identity for row in rows}) < 2:
                continue
            courses = sorted({row.section.course_code for row in rows})
            conflicts.append(
                ConflictDetail(
                    id=f"room:{rows[0].level}:{room}:{day}:{start}",
                    conflict_type="room_conflict",
                    severity="high",
                    description=f"Room {room} is double-booked on {day} at {start}: {', '.join(courses)}",
                    level=rows[0].level,
                    group=rows[0].group,
                    affected_sections=[row.affected() for row in rows],
                    suggested_resolution="Move one section to a free room or slot",
                )
            )
        return conflicts

    def detect_time_overlaps(self, views: Sequence[ScheduleView]) -> List[ConflictDetail]:
        conflicts: List[ConflictDetail] = []
        buckets: Dict[Tuple[int, str, str, str], List[_Located]] = defaultdict(list)
        for row in _locate(views):
            buckets[(row.level, row.group, row.section.day, row.section.start_time)].append(row)

        for (level, group, day, start), rows in sorted(buckets.items()):
            courses = sorted({row.section.course_code for row in rows})
            # Parallel sections of the same course may share a slot.
            if len(courses) < 2:
                continue
            shares_room = len({row.section.room for row in rows}) < len(rows)
            conflicts.append(
                ConflictDetail(
                    id=f"time:{level}:{group}:{day}:{start}",
                    conflict_type="time_overlap",
                    severity="high" if shares_room else "medium",
                    description=f"{group} (Level {level}) has {', '.join(courses)} at the same time on {day} {start}",
                    level=level,
                    group=group,
                    affected_sections=[row.affected() for row in rows],
                    suggested_resolution="Move one course to another time slot",
                )
            )
        return conflicts

    def detect_inter_level_conflicts(
        self,
        candidate: ScheduleView,
        others: Sequence[ScheduleView],
    ) -> List[ConflictDetail]:
        external = _by_room_slot(_locate(view for view in others if view.level != candidate.level))
        own = _by_room_slot(_locate([candidate]))
        conflicts: List[ConflictDetail] = []
        for key in sorted(own):
            if key not in external:
                continue
            room, day, start = key
            rows = own[key] + external[key]
            other_levels = sorted({row.level for row in external[key]})
            conflicts.append(
                ConflictDetail(
                    id=f"inter:{room}:{day}:{start}",
                    conflict_type="inter_level_conflict",
                    severity="critical",
                    description=(
                        f"Room {room} on {day} at {start} is also used by Level "
                        f"{', '.join(str(level) for level in other_levels)}"
                    ),
                    level=candidate.level,
                    group=own[key][0].group,
                    affected_sections=[row.affected() for row in rows],
                    suggested_resolution=f"Move the Level {candidate.level} section to a free room or slot",
                )
            )
        return conflicts

    def detect_for_level(self, candidate: ScheduleView, others: Sequence[ScheduleView]) -> List[ConflictDetail]:
        return (
            self.detect_room_conflicts([candidate])
            + self.detect_time_overlaps([candidate])
            + self.detect_inter_level_conflicts(candidate, others)
        )

    def detect_all(self, latest_versions: Sequence[ScheduleView]) -> List[ConflictDetail]:
        """Conflicts across the latest version of every level.

        Room double-bookings inside one level are room conflicts; those spanning
        levels are reported once as inter-level conflicts.
        """
        conflicts: List[ConflictDetail] = []
        ordered = sorted(latest_versions, key=lambda view: view.level)
        for view in ordered:
            conflicts.extend(self.detect_room_conflicts([view]))
            conflicts.extend(self.detect_time_overlaps([view]))

        buckets = _by_room_slot(_locate(ordered))
        for (room, day, start), rows in sorted(buckets.items()):
            levels = sorted({row.level for row in rows})
            if len(levels) < 2:
                continue
            conflicts.append(
                ConflictDetail(
                    id=f"inter:{room}:{day}:{start}",
                    conflict_type="inter_level_conflict",
                    severity="critical",
                    description=(
                        f"Room {room} on {day} at {start} is booked by Levels "
                        f"{', '.join(str(level) for level in levels)}"
                    ),
                    level=levels[-1],
                    group=rows[-1].group,
                    affected_sections=[row.affected() for row in rows],
                    suggested_resolution=f"Regenerate or resolve Level {levels[-1]}",
                )
            )
        return conflicts

    def summarize(self, conflicts: Sequence[ConflictDetail]) -> ConflictSummary:
        by_type: Dict[str, int] = defaultdict(int)
        by_severity: Dict[str, int] = defaultdict(int)
        by_level: Dict[str, int] = defaultdict(int)
        for conflict in conflicts:
            by_type[conflict.conflict_type] += 1
            by_severity[conflict.severity] += 1
            by_level[str(conflict.level)] += 1
        return ConflictSummary(
            total=len(conflicts),
            by_type=dict(by_type),
            by_severity=dict(by_severity),
            by_level=dict(by_level),
            critical=by_severity.get("critical", 0),
        )

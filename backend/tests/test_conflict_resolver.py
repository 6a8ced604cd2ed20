import random

import pytest

from timetabler.models.room import RoomType
from timetabler.schemas.schedule import GroupPayload, SectionPayload
from timetabler.services.catalog import RoomSpec
from timetabler.services.conflict_resolver import ConflictResolver
from timetabler.services.conflict_service import ConflictDetector, ScheduleView

ROOMS = [RoomSpec(name="A101"), RoomSpec(name="A102"), RoomSpec(name="LAB1", type=RoomType.lab)]


def section(course_code, day, start, room, student_count=20):
    hour = int(start[:2]) + 1
    return SectionPayload(
        course_code=course_code,
        group="Group A",
        day=day,
        start_time=start,
        end_time=f"{hour:02d}:00",
        room=room,
        student_count=student_count,
        capacity=30,
    )


def view(level, sections, version_id=None):
    return ScheduleView(
        level=level,
        groups={"Group A": GroupPayload(name="Group A", student_count=20, sections=sections)},
        version_id=version_id,
    )


def test_time_overlap_is_resolved_with_seeded_search():
    detector = ConflictDetector()
    candidate = view(1, [section("CS101", "Monday", "09:00", "A101"), section("MATH101", "Monday", "09:00", "A102")])
    conflicts = detector.detect_for_level(candidate, [])
    resolver = ConflictResolver(ROOMS, rng=random.Random(42))

    groups, report = resolver.resolve(candidate, [], conflicts)

    assert report.moved == [("Group A", "MATH101", "Monday", "09:00")]
    assert report.unresolved == []
    assert 1 <= report.attempts <= 50
    after = ScheduleView(level=1, groups=groups)
    assert detector.detect_for_level(after, []) == []
    cs101 = groups["Group A"].sections[0]
    assert (cs101.course_code, cs101.day, cs101.start_time, cs101.room) == ("CS101", "Monday", "09:00", "A101")


def test_resolution_does_not_mutate_candidate():
    candidate = view(1, [section("CS101", "Monday", "09:00", "A101"), section("MATH101", "Monday", "09:00", "A101")])
    conflicts = ConflictDetector().detect_for_level(candidate, [])
    ConflictResolver(ROOMS, rng=random.Random(1)).resolve(candidate, [], conflicts)

    assert candidate.groups["Group A"].sections[1].room == "A101"
    assert candidate.groups["Group A"].sections[1].start_time == "09:00"


def test_unresolvable_section_is_reported():
    candidate = view(1, [section("CS101", "Monday", "09:00", "A101"), section("MATH101", "Monday", "09:00", "A101")])
    conflicts = ConflictDetector().detect_for_level(candidate, [])
    resolver = ConflictResolver(
        [RoomSpec(name="A101")],
        rng=random.Random(3),
        max_attempts=5,
        days=["Monday"],
        starts=["09:00"],
    )

    groups, report = resolver.resolve(candidate, [], conflicts)

    assert report.moved == []
    assert report.unresolved == [("Group A", "MATH101", "Monday", "09:00")]
    assert report.attempts == 5
    assert groups["Group A"].sections[1].room == "A101"


def test_inter_level_conflict_moves_only_own_sections():
    detector = ConflictDetector()
    settled = view(1, [section("CS101", "Monday", "09:00", "A101")], version_id="v1")
    candidate = view(2, [section("CS201", "Monday", "09:00", "A101")])
    conflicts = detector.detect_for_level(candidate, [settled])
    resolver = ConflictResolver(ROOMS, rng=random.Random(5))

    assert resolver.sections_to_move(candidate, conflicts) == [("Group A", "CS201", "Monday", "09:00")]

    groups, report = resolver.resolve(candidate, [settled], conflicts)

    moved = groups["Group A"].sections[0]
    assert report.moved == [("Group A", "CS201", "Monday", "09:00")]
    assert moved.room_key != ("A101", "Monday", "09:00")
    assert settled.groups["Group A"].sections[0].room_key == ("A101", "Monday", "09:00")
    assert detector.detect_for_level(ScheduleView(level=2, groups=groups), [settled]) == []


def test_moves_keep_room_type_and_prefer_capacity():
    rooms = [
        RoomSpec(name="A101", capacity=30),
        RoomSpec(name="HALL", capacity=120),
        RoomSpec(name="LAB1", type=RoomType.lab),
        RoomSpec(name="LAB2", type=RoomType.lab),
    ]
    candidate = view(
        1,
        [
            section("BIO101", "Monday", "09:00", "LAB1"),
            section("BIO150", "Monday", "09:00", "LAB1"),
            section("CS101", "Tuesday", "10:00", "A101", student_count=80),
            section("MATH101", "Tuesday", "10:00", "A101", student_count=80),
        ],
    )
    conflicts = ConflictDetector().detect_for_level(candidate, [])
    groups, report = ConflictResolver(rooms, rng=random.Random(11)).resolve(candidate, [], conflicts)

    by_code = {item.course_code: item for item in groups["Group A"].sections}
    assert by_code["BIO150"].room in {"LAB1", "LAB2"}
    assert by_code["MATH101"].room == "HALL"
    assert by_code["MATH101"].capacity == 120
    assert by_code["MATH101"].end_time == f"{int(by_code['MATH101'].start_time[:2]) + 1:02d}:00"
    assert report.unresolved == []


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        ConflictResolver(ROOMS, max_attempts=0)

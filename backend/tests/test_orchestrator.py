import logging
import random

import httpx
import pytest

from conftest import FakeOracle, seed_level, seed_rooms
from timetabler.core.exceptions import InputError, PersistenceError
from timetabler.models.schedule_version import ScheduleVersion
from timetabler.schemas.oracle import Recommendation
from timetabler.schemas.schedule import GroupPayload, SectionPayload
from timetabler.schemas.settings import SchedulePolicy
from timetabler.services.audit import list_audit_entries
from timetabler.services.conflict_service import ConflictDetector, ScheduleView
from timetabler.services.oracle import HttpRecommendationOracle, NullOracle
from timetabler.services.orchestrator import SchedulingOrchestrator, compute_efficiency
from timetabler.services.schedule_store import ScheduleVersionStore


def make_orchestrator(db, tracker, settings, oracle=None):
    return SchedulingOrchestrator(
        db,
        tracker=tracker,
        oracle=oracle or NullOracle(),
        settings=settings,
        rng=random.Random(settings.random_seed),
    )


def section(course_code, day, start, room, group="Group A"):
    hour = int(start[:2]) + 1
    return SectionPayload(
        course_code=course_code,
        group=group,
        day=day,
        start_time=start,
        end_time=f"{hour:02d}:00",
        room=room,
        student_count=20,
        capacity=30,
    )


def test_compute_efficiency():
    assert compute_efficiency(6, 6, 0) == 100
    assert compute_efficiency(1, 2, 0) == 50
    assert compute_efficiency(6, 6, 3) == 85
    assert compute_efficiency(0, 0, 0) == 100
    assert compute_efficiency(1, 2, 20) == 0


def test_sixty_students_make_three_groups_and_six_sections(db_session, tracker, test_settings):
    seed_rooms(db_session)
    seed_level(db_session, 1, students=60)

    result = make_orchestrator(db_session, tracker, test_settings).generate_level(1, students_per_group=25)

    schedule = result.schedule
    assert result.persisted
    assert sorted(schedule.groups) == ["Group A", "Group B", "Group C"]
    assert [schedule.groups[name].student_count for name in ("Group A", "Group B", "Group C")] == [25, 25, 10]
    assert schedule.total_sections == 6
    for group in schedule.groups.values():
        assert sorted(item.course_code for item in group.sections) == ["CS101", "MATH101"]
    assert schedule.conflicts == 0
    assert schedule.efficiency == 100
    assert not result.needs_manual_review
    assert ConflictDetector().detect_room_conflicts([ScheduleView.from_version(schedule)]) == []
    assert result.draft.states[0].value == "idle"
    assert result.draft.states[-1].value == "done"
    assert db_session.query(ScheduleVersion).count() == 1


def test_second_level_avoids_slots_held_by_first(db_session, tracker, test_settings):
    seed_rooms(db_session)
    store = ScheduleVersionStore(db_session)
    store.create(
        version_id="level-1",
        level=1,
        groups={"Group A": GroupPayload(name="Group A", sections=[section("CS101", "Monday", "09:00", "A101")])},
        conflicts=0,
        efficiency=100,
    )
    seed_level(db_session, 2, courses=(("CS201", "lecture"), ("CS202", "lecture")), group_sizes={"A": 20})
    oracle = FakeOracle(
        [
            Recommendation(
                course_code="CS201",
                timeslot={"day": "Monday", "start": "09:00", "end": "10:00"},
                room="A101",
            )
        ]
    )

    result = make_orchestrator(db_session, tracker, test_settings, oracle).generate_level(2)

    sections = result.schedule.all_sections()
    assert all(item.room_key != ("A101", "Monday", "09:00") for item in sections)
    assert {item.course_code for item in sections} == {"CS201", "CS202"}
    level_one = ScheduleView.from_version(store.get("level-1"))
    assert ConflictDetector().detect_inter_level_conflicts(ScheduleView.from_version(result.schedule), [level_one]) == []
    assert oracle.calls[0][1] == 2
    assert any("A101 on Monday at 09:00" in rule for rule in oracle.calls[0][0].rules)


def test_oracle_timeout_falls_back_to_deterministic_placement(db_session, tracker, test_settings):
    seed_rooms(db_session)
    seed_level(db_session, 1, group_sizes={"A": 20})

    def handler(request):
        raise httpx.ReadTimeout("oracle too slow", request=request)

    oracle = HttpRecommendationOracle(
        "http://oracle.test/recommend",
        timeout=0.1,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    result = make_orchestrator(db_session, tracker, test_settings, oracle).generate_level(1)

    assert result.persisted
    assert result.schedule.conflicts == 0
    assert result.schedule.total_sections == 2
    response = result.to_response()
    assert response.oracle_status == "unavailable"
    assert any("unavailable" in warning for warning in response.warnings)
    assert response.state_history[-1] == "done"


def test_oracle_exception_is_treated_as_unavailable(db_session, tracker, test_settings):
    seed_rooms(db_session)
    seed_level(db_session, 1, group_sizes={"A": 20})

    class BrokenOracle:
        def recommend(self, constraints, level):
            raise RuntimeError("boom")

    result = make_orchestrator(db_session, tracker, test_settings, BrokenOracle()).generate_level(1)

    assert result.draft.oracle_status == "unavailable"
    assert result.schedule.total_sections == 2


def test_resolve_version_converges(db_session, tracker, test_settings):
    seed_rooms(db_session)
    seed_level(db_session, 1, group_sizes={"A": 20, "B": 20})
    store = ScheduleVersionStore(db_session)
    store.create(
        version_id="v1",
        level=1,
        groups={
            "Group A": GroupPayload(name="Group A", sections=[section("CS101", "Monday", "09:00", "A101")]),
            "Group B": GroupPayload(
                name="Group B", sections=[section("MATH101", "Monday", "09:00", "A101", group="Group B")]
            ),
        },
        conflicts=1,
        efficiency=45,
    )

    outcome = make_orchestrator(db_session, tracker, test_settings).resolve_version("v1", actor_id="admin-1")

    assert outcome.conflicts_before == 1
    assert outcome.conflicts_after == 0
    assert outcome.moved_sections == 1
    assert not outcome.needs_manual_review
    stored = store.get("v1")
    assert stored.conflicts == 0
    assert stored.groups["Group A"].sections[0].room_key == ("A101", "Monday", "09:00")
    assert [entry.action_type for entry in list_audit_entries(db_session, "v1")] == ["resolve"]


def test_generation_without_courses_fails_and_releases_tracker(db_session, tracker, test_settings, caplog):
    seed_rooms(db_session)
    orchestrator = make_orchestrator(db_session, tracker, test_settings)

    with caplog.at_level(logging.WARNING, logger="timetabler.services.orchestrator"):
        with pytest.raises(InputError) as exc_info:
            orchestrator.generate_level(5)

    assert exc_info.value.status_code == 400
    assert exc_info.value.details["level"] == 5
    assert "states=idle,building_constraints,failed" in caplog.text
    assert tracker.reserved_count() == 0


def test_persistence_failure_rolls_back_reservations(db_session, tracker, test_settings, monkeypatch):
    seed_rooms(db_session)
    seed_level(db_session, 1, group_sizes={"A": 20})
    orchestrator = make_orchestrator(db_session, tracker, test_settings)

    def failing_create(**kwargs):
        raise PersistenceError("Failed to create schedule version", storage_error="disk full")

    monkeypatch.setattr(orchestrator.store, "create", failing_create)

    with pytest.raises(PersistenceError) as exc_info:
        orchestrator.generate_level(1)

    assert exc_info.value.details["storage_error"] == "disk full"
    assert tracker.reserved_count() == 0
    assert db_session.query(ScheduleVersion).count() == 0


def test_preview_is_not_persisted(db_session, tracker, test_settings):
    seed_rooms(db_session)
    seed_level(db_session, 1, group_sizes={"A": 20})

    result = make_orchestrator(db_session, tracker, test_settings).generate_level(1, persist=False)

    assert not result.persisted
    assert result.schedule.total_sections == 2
    assert db_session.query(ScheduleVersion).count() == 0


def test_regenerate_updates_in_place_with_prompt(db_session, tracker, test_settings):
    seed_rooms(db_session)
    seed_level(db_session, 1, group_sizes={"A": 20})
    first = make_orchestrator(db_session, tracker, test_settings).generate_level(1, actor_id="admin-1")
    oracle = FakeOracle()

    again = make_orchestrator(db_session, tracker, test_settings, oracle).regenerate_version(
        first.schedule.id, "Keep Monday free"
    )

    assert again.schedule.id == first.schedule.id
    assert again.schedule.generated_at == first.schedule.generated_at
    assert oracle.calls[0][0].rules[-1] == "Keep Monday free"
    actions = sorted(entry.action_type for entry in list_audit_entries(db_session, first.schedule.id))
    assert actions == ["generate", "regenerate"]
    assert db_session.query(ScheduleVersion).count() == 1


def test_generate_all_levels_skips_levels_without_students(db_session, tracker, test_settings):
    seed_rooms(db_session)
    seed_level(db_session, 1, group_sizes={"A": 20, "B": 20})
    seed_level(db_session, 2, courses=(("CS201", "lecture"), ("CS250", "lab")), group_sizes={"A": 20})
    seed_level(db_session, 3, courses=(("CS301", "lecture"),))

    response = make_orchestrator(db_session, tracker, test_settings).generate_all_levels()

    assert [item.schedule.level for item in response.results] == [1, 2]
    assert list(response.skipped) == [3]
    store = ScheduleVersionStore(db_session)
    latest = [ScheduleView.from_version(version) for version in store.latest_per_level()]
    assert ConflictDetector().detect_all(latest) == []


def test_generate_all_levels_twice_reuses_superseded_slots(db_session, tracker, test_settings):
    seed_rooms(db_session, rooms=(("A101", "lecture", 30),))
    seed_level(db_session, 1, courses=(("CS101", "lecture"),), group_sizes={"A": 20})
    seed_level(db_session, 2, courses=(("CS201", "lecture"),), group_sizes={"A": 20})
    orchestrator = SchedulingOrchestrator(
        db_session,
        tracker=tracker,
        oracle=NullOracle(),
        settings=test_settings,
        policy=SchedulePolicy(teaching_days=["Monday"], slot_starts=["08:00", "09:00"]),
        rng=random.Random(test_settings.random_seed),
    )

    first = orchestrator.generate_all_levels()
    second = orchestrator.generate_all_levels()

    for response in (first, second):
        assert [(item.schedule.level, item.schedule.total_sections) for item in response.results] == [(1, 1), (2, 1)]
        assert all(item.warnings == [] for item in response.results)
    latest = [ScheduleView.from_version(version) for version in ScheduleVersionStore(db_session).latest_per_level()]
    assert ConflictDetector().detect_all(latest) == []
    assert tracker.reserved_count() == 2


def test_edit_version_recounts_conflicts(db_session, tracker, test_settings):
    seed_rooms(db_session)
    seed_level(db_session, 1, group_sizes={"A": 20})
    orchestrator = make_orchestrator(db_session, tracker, test_settings)
    created = orchestrator.generate_level(1)

    edited = orchestrator.edit_version(
        created.schedule.id,
        {
            "Group A": GroupPayload(
                name="Group A",
                sections=[section("CS101", "Monday", "09:00", "A101"), section("MATH101", "Monday", "09:00", "A101")],
            )
        },
    )

    assert edited.schedule.conflicts == 2
    assert edited.schedule.efficiency == 90
    assert {item.conflict_type for item in edited.schedule.conflict_snapshot} == {"room_conflict", "time_overlap"}
    assert edited.needs_manual_review
    assert edited.rule_violations == []


def test_edit_version_reports_rule_violations(db_session, tracker, test_settings):
    seed_rooms(db_session)
    seed_level(db_session, 1, group_sizes={"A": 20})
    orchestrator = make_orchestrator(db_session, tracker, test_settings)
    created = orchestrator.generate_level(1)

    edited = orchestrator.edit_version(
        created.schedule.id,
        {
            "Group A": GroupPayload(
                name="Group A",
                sections=[section("CS101", "Monday", "11:00", "A101"), section("MATH101", "Friday", "09:00", "A102")],
            )
        },
    )

    assert edited.schedule.conflicts == 0
    assert not edited.needs_manual_review
    assert sorted((item.category, item.course_code) for item in edited.rule_violations) == [
        ("break_time", "CS101"),
        ("no_friday", "MATH101"),
    ]
    assert len(edited.warnings) == 2
    assert ScheduleVersionStore(db_session).get(created.schedule.id).groups["Group A"].sections[1].day == "Friday"

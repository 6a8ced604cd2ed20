from timetabler.models.rule import RuleCategory
from timetabler.schemas.schedule import GroupPayload, SectionPayload
from timetabler.schemas.settings import SchedulePolicy
from timetabler.services.rule_validators import validate_rules


def section(course_code, day, start, end, room="A101"):
    return SectionPayload(course_code=course_code, day=day, start_time=start, end_time=end, room=room)


def groups_with(*sections):
    return {"Group A": GroupPayload(name="Group A", student_count=20, sections=list(sections))}


def test_clean_schedule_has_no_violations():
    groups = groups_with(
        section("CS101", "Monday", "09:00", "10:00"),
        section("CS150", "Tuesday", "13:00", "14:00", room="LAB1"),
    )
    violations = validate_rules(
        1,
        groups,
        lab_courses={"CS101": False, "CS150": True},
        lab_rooms={"A101": False, "LAB1": True},
    )
    assert violations == []


def test_break_overlap_is_flagged():
    violations = validate_rules(
        1,
        groups_with(section("CS101", "Monday", "10:30", "11:30")),
        categories=[RuleCategory.break_time],
    )
    assert [(v.category, v.course_code, v.severity) for v in violations] == [("break_time", "CS101", "high")]
    assert "Daily Break" in violations[0].description


def test_section_ending_at_break_start_is_fine():
    violations = validate_rules(
        1,
        groups_with(section("CS101", "Monday", "10:00", "11:00")),
        categories=[RuleCategory.break_time],
    )
    assert violations == []


def test_blocked_day_is_flagged():
    violations = validate_rules(
        1,
        groups_with(section("CS101", "Friday", "09:00", "10:00")),
        categories=["no_friday"],
    )
    assert len(violations) == 1
    assert violations[0].category == "no_friday"
    assert "Friday" in violations[0].description


def test_lab_course_in_lecture_room_is_flagged():
    violations = validate_rules(
        1,
        groups_with(section("CS150", "Monday", "09:00", "10:00", room="A101")),
        lab_courses={"CS150": True},
        lab_rooms={"A101": False},
        categories=[RuleCategory.lab_continuity],
    )
    assert [v.id for v in violations] == ["lab_continuity:1:Group A:CS150"]
    assert "a lab" in violations[0].description


def test_unknown_rooms_are_not_judged():
    violations = validate_rules(
        1,
        groups_with(section("CS150", "Monday", "09:00", "10:00", room="ANNEX")),
        lab_courses={"CS150": True},
        lab_rooms={},
        categories=[RuleCategory.lab_continuity],
    )
    assert violations == []


def test_day_off_balance():
    busy_week = groups_with(
        section("CS101", "Monday", "09:00", "10:00"),
        section("CS102", "Tuesday", "09:00", "10:00"),
        section("CS103", "Wednesday", "09:00", "10:00"),
        section("CS104", "Thursday", "09:00", "10:00"),
    )
    violations = validate_rules(1, busy_week, categories=[RuleCategory.day_off_balance])
    assert [(v.category, v.severity) for v in violations] == [("day_off_balance", "low")]

    one_day = SchedulePolicy(teaching_days=["Monday"], blocked_days=["Friday", "Saturday", "Sunday"])
    assert validate_rules(1, groups_with(section("CS101", "Monday", "09:00", "10:00")), policy=one_day) == []


def test_categories_run_in_stable_order():
    groups = groups_with(
        section("CS101", "Friday", "10:30", "11:30"),
        section("CS150", "Monday", "09:00", "10:00", room="A101"),
    )
    violations = validate_rules(1, groups, lab_courses={"CS150": True}, lab_rooms={"A101": False})
    assert [v.category for v in violations] == ["break_time", "lab_continuity", "no_friday"]


def test_general_category_is_not_machine_checked():
    violations = validate_rules(
        1,
        groups_with(section("CS101", "Friday", "09:00", "10:00")),
        categories=[RuleCategory.general],
    )
    assert violations == []

import os

# Must be set before timetabler.db.session builds its engine.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import timetabler.models  # noqa: F401
from timetabler.api.deps import get_db, get_oracle, get_tracker
from timetabler.core.config import Settings, get_settings
from timetabler.db.base import Base
from timetabler.main import app
from timetabler.models.course import Course, CourseType, RoomAffinity
from timetabler.models.elective_choice import ElectiveChoice
from timetabler.models.irregular import IrregularRequirement
from timetabler.models.room import Room, RoomType
from timetabler.models.rule import RuleCategory, SchedulingRule
from timetabler.models.student import Student
from timetabler.services.occupancy import RoomOccupancyTracker
from timetabler.services.oracle import NullOracle, OracleResult


class FakeOracle:
    """Hands back canned recommendations per group name found in the rules."""

    def __init__(self, recommendations=None, status="ok", by_group=None):
        self.recommendations = recommendations or []
        self.status = status
        self.by_group = by_group or {}
        self.calls = []

    def recommend(self, constraints, level):
        self.calls.append((constraints, level))
        recommendations = self.recommendations
        for group_name, items in self.by_group.items():
            if any(f"for {group_name} in" in rule for rule in constraints.rules):
                recommendations = items
        return OracleResult(recommendations=list(recommendations), status=self.status if recommendations else "empty")


def seed_level(
    db,
    level,
    *,
    courses=(("CS101", "lecture"), ("MATH101", "lecture")),
    students=0,
    group_sizes=None,
    electives=None,
):
    """Insert courses and students for a level.

    ``group_sizes`` maps group labels to head counts; plain ``students`` are
    left unassigned.
    """
    for item in courses:
        code, affinity = item[0], item[1]
        course_type = item[2] if len(item) > 2 else "compulsory"
        db.add(
            Course(
                code=code,
                title=f"{code} title",
                level=level,
                type=CourseType(course_type),
                room_affinity=RoomAffinity(affinity),
            )
        )
    counter = 0
    for label, size in (group_sizes or {}).items():
        for _ in range(size):
            counter += 1
            db.add(
                Student(
                    student_number=f"L{level}-{counter:04d}",
                    full_name=f"Student {level}-{counter}",
                    level=level,
                    group_name=label,
                )
            )
    for _ in range(students):
        counter += 1
        db.add(
            Student(
                student_number=f"L{level}-{counter:04d}",
                full_name=f"Student {level}-{counter}",
                level=level,
            )
        )
    for course_code, student_ids in (electives or {}).items():
        for student_id in student_ids:
            db.add(ElectiveChoice(student_id=student_id, course_code=course_code, level=level))
    db.commit()


def seed_irregular_student(db, level, number, owed=()):
    """Insert an irregular student owing ``owed`` as (course code, original level) pairs."""
    student = Student(student_number=number, full_name=f"Irregular {number}", level=level, is_irregular=True)
    db.add(student)
    db.flush()
    student_id = student.id
    for course_code, original_level in owed:
        db.add(IrregularRequirement(student_id=student_id, course_code=course_code, original_level=original_level))
    db.commit()
    return student_id


def seed_rooms(db, rooms=(("A101", "lecture", 30), ("A102", "lecture", 30), ("LAB1", "lab", 30))):
    for name, room_type, capacity in rooms:
        db.add(Room(name=name, type=RoomType(room_type), capacity=capacity))
    db.commit()


def seed_rule(db, text, category=RuleCategory.general, *, priority=0, levels=None, is_active=True):
    db.add(
        SchedulingRule(
            rule_text=text,
            category=category,
            priority=priority,
            applies_to_levels=levels or [],
            is_active=is_active,
        )
    )
    db.commit()


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def test_settings():
    return Settings(
        _env_file=None,
        database_url="sqlite+pysqlite://",
        oracle_url=None,
        random_seed=7,
        resolver_max_attempts=50,
        resolution_rounds=3,
    )


@pytest.fixture()
def tracker():
    return RoomOccupancyTracker()


@pytest.fixture()
def client(session_factory, test_settings):
    shared_tracker = RoomOccupancyTracker()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_tracker] = lambda: shared_tracker
    app.dependency_overrides[get_oracle] = lambda: NullOracle()

    # Lifespan is skipped; the schema is created on the test engine above.
    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()

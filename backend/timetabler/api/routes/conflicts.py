from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from timetabler.api.deps import get_actor_id, get_db, get_orchestrator
from timetabler.core.exceptions import ResourceNotFoundError
from timetabler.schemas.conflict import ConflictReport, ConflictSummary, ResolutionOutcome, RuleViolation
from timetabler.schemas.schedule import ScheduleVersionOut
from timetabler.services.catalog import load_courses, load_rooms, load_rules_for_level
from timetabler.services.conflict_service import ConflictDetector, ScheduleView
from timetabler.services.orchestrator import ALWAYS_CHECKED_RULES, SchedulingOrchestrator
from timetabler.services.rule_validators import validate_rules
from timetabler.services.schedule_store import ScheduleVersionStore

router = APIRouter()


def _rule_violations(db: Session, versions: list[ScheduleVersionOut]) -> list[RuleViolation]:
    lab_rooms = {room.name: room.is_lab for room in load_rooms(db)}
    violations: list[RuleViolation] = []
    for version in versions:
        categories = set(ALWAYS_CHECKED_RULES)
        categories.update(rule.category for rule in load_rules_for_level(db, version.level))
        violations.extend(
            validate_rules(
                version.level,
                version.groups,
                lab_courses={course.code: course.is_lab for course in load_courses(db, version.level)},
                lab_rooms=lab_rooms,
                categories=categories,
            )
        )
    return violations


@router.get("", response_model=ConflictReport)
def list_conflicts(db: Session = Depends(get_db)) -> ConflictReport:
    latest = ScheduleVersionStore(db).latest_per_level()
    detector = ConflictDetector()
    conflicts = detector.detect_all([ScheduleView.from_version(version) for version in latest])
    return ConflictReport(
        conflicts=conflicts,
        rule_violations=_rule_violations(db, latest),
        summary=detector.summarize(conflicts),
    )


@router.get("/summary", response_model=ConflictSummary)
def conflict_summary(db: Session = Depends(get_db)) -> ConflictSummary:
    latest = ScheduleVersionStore(db).latest_per_level()
    detector = ConflictDetector()
    return detector.summarize(detector.detect_all([ScheduleView.from_version(version) for version in latest]))


@router.get("/level/{level}", response_model=ConflictReport)
def level_conflicts(level: int, db: Session = Depends(get_db)) -> ConflictReport:
    store = ScheduleVersionStore(db)
    version = store.latest_for_level(level)
    if version is None:
        raise ResourceNotFoundError("Schedule for level", str(level))
    others = [ScheduleView.from_version(item) for item in store.latest_per_level(exclude_level=level)]
    detector = ConflictDetector()
    conflicts = detector.detect_for_level(ScheduleView.from_version(version), others)
    return ConflictReport(
        conflicts=conflicts,
        rule_violations=_rule_violations(db, [version]),
        summary=detector.summarize(conflicts),
    )


@router.post("/{version_id}/resolve", response_model=ResolutionOutcome)
def resolve_conflicts(
    version_id: str,
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
    actor_id: str | None = Depends(get_actor_id),
) -> ResolutionOutcome:
    return orchestrator.resolve_version(version_id, actor_id=actor_id)

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from time import perf_counter

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timetabler.core.config import Settings, get_settings
from timetabler.core.exceptions import InputError, PersistenceError
from timetabler.models.rule import RuleCategory
from timetabler.schemas.conflict import ConflictDetail, ResolutionOutcome, RuleViolation
from timetabler.schemas.schedule import (
    GenerateAllResponse,
    GenerationResponse,
    GroupPayload,
    PlacementGap,
    ScheduleEditResponse,
    ScheduleVersionOut,
)
from timetabler.schemas.settings import DEFAULT_SCHEDULE_POLICY, SchedulePolicy
from timetabler.services.audit import generate_changes_summary, log_schedule_action
from timetabler.services.catalog import (
    LevelInputs,
    list_levels,
    load_courses,
    load_level_inputs,
    load_rooms,
    load_rules_for_level,
)
from timetabler.services.conflict_resolver import ConflictResolver
from timetabler.services.conflict_service import ConflictDetector, ScheduleView
from timetabler.services.constraints import ConstraintBuilder
from timetabler.services.groups import apply_group_settings
from timetabler.services.occupancy import RoomOccupancyTracker
from timetabler.services.oracle import OracleResult, RecommendationOracle
from timetabler.services.placement import GroupPlacement, SectionPlacer
from timetabler.services.rule_validators import validate_rules
from timetabler.services.schedule_store import ScheduleVersionStore, count_sections

logger = logging.getLogger(__name__)

CONFLICT_PENALTY = 5
ALWAYS_CHECKED_RULES = (RuleCategory.break_time, RuleCategory.no_friday, RuleCategory.lab_continuity)


class GenerationState(str, Enum):
    idle = "idle"
    building_constraints = "building_constraints"
    awaiting_oracle = "awaiting_oracle"
    placing = "placing"
    detecting_conflicts = "detecting_conflicts"
    resolving = "resolving"
    persisting = "persisting"
    done = "done"
    failed = "failed"


def compute_efficiency(placed: int, expected: int, residual_conflicts: int) -> int:
    score = 100 if expected <= 0 else round(100 * placed / expected)
    score -= CONFLICT_PENALTY * residual_conflicts
    return max(0, min(100, score))


def count_compulsory_placed(groups: dict[str, GroupPayload], compulsory: set[str]) -> int:
    return sum(len({section.course_code for section in group.sections} & compulsory) for group in groups.values())


@dataclass
class GenerationDraft:
    level: int
    groups: dict[str, GroupPayload]
    conflicts: list[ConflictDetail]
    efficiency: int
    gaps: list[PlacementGap] = field(default_factory=list)
    rule_violations: list[RuleViolation] = field(default_factory=list)
    oracle_status: str = "empty"
    warnings: list[str] = field(default_factory=list)
    states: list[GenerationState] = field(default_factory=list)
    resolution_rounds: int = 0
    initial_conflicts: int = 0


@dataclass
class GenerationResult:
    schedule: ScheduleVersionOut
    persisted: bool
    draft: GenerationDraft

    @property
    def needs_manual_review(self) -> bool:
        return self.schedule.conflicts > 0

    def to_response(self) -> GenerationResponse:
        return GenerationResponse(
            schedule=self.schedule,
            persisted=self.persisted,
            oracle_status=self.draft.oracle_status,
            needs_manual_review=self.needs_manual_review,
            warnings=list(self.draft.warnings),
            state_history=[state.value for state in self.draft.states],
        )


class SchedulingOrchestrator:
    """Drives one level (or every level) from inputs to a stored schedule version.

    The tracker is shared across requests and handed in explicitly; each
    generation holds it for the whole run through ``generation_pass()``.
    """

    def __init__(
        self,
        db: Session,
        *,
        tracker: RoomOccupancyTracker,
        oracle: RecommendationOracle,
        settings: Settings | None = None,
        policy: SchedulePolicy = DEFAULT_SCHEDULE_POLICY,
        rng: random.Random | None = None,
    ) -> None:
        self.db = db
        self.tracker = tracker
        self.oracle = oracle
        self.settings = settings or get_settings()
        self.policy = policy
        self.rng = rng or random.Random(self.settings.random_seed)
        self.store = ScheduleVersionStore(db)
        self.detector = ConflictDetector()
        self.builder = ConstraintBuilder(policy, section_capacity=self.settings.section_capacity)
        self.placer = SectionPlacer(tracker, policy, section_capacity=self.settings.section_capacity)

    # Generation

    def generate_level(
        self,
        level: int,
        *,
        groups: Sequence[str] | None = None,
        students_per_group: int | None = None,
        persist: bool = True,
        actor_id: str | None = None,
    ) -> GenerationResult:
        if students_per_group is not None:
            apply_group_settings(self.db, level, students_per_group)
        with self.tracker.generation_pass():
            return self._generate(level, groups=groups, persist=persist, actor_id=actor_id)

    def generate_all_levels(self, *, actor_id: str | None = None) -> GenerateAllResponse:
        levels = list_levels(self.db)
        results: list[GenerationResponse] = []
        skipped: dict[int, str] = {}
        with self.tracker.generation_pass():
            for level in levels:
                try:
                    result = self._generate(level, persist=True, actor_id=actor_id)
                except InputError as exc:
                    logger.warning("Level skipped | level=%s | reason=%s", level, exc.message)
                    skipped[level] = exc.message
                    continue
                results.append(result.to_response())
        logger.info("ALL LEVELS GENERATED | levels=%s | skipped=%s", len(results), len(skipped))
        return GenerateAllResponse(results=results, skipped=skipped)

    def regenerate_version(
        self,
        version_id: str,
        prompt: str,
        *,
        students_per_group: int | None = None,
        actor_id: str | None = None,
    ) -> GenerationResult:
        existing = self.store.get(version_id)
        if students_per_group is not None:
            apply_group_settings(self.db, existing.level, students_per_group)
        with self.tracker.generation_pass():
            return self._generate(
                existing.level,
                persist=True,
                actor_id=actor_id,
                extra_rules=[prompt],
                replace=existing,
            )

    def _generate(
        self,
        level: int,
        *,
        groups: Sequence[str] | None = None,
        persist: bool,
        actor_id: str | None,
        extra_rules: Sequence[str] = (),
        replace: ScheduleVersionOut | None = None,
    ) -> GenerationResult:
        started = perf_counter()
        states = [GenerationState.idle]
        try:
            draft = self._build_draft(level, groups=groups, extra_rules=extra_rules, states=states)
            states.append(GenerationState.persisting)
            if not persist:
                schedule = self._unsaved(draft)
            elif replace is None:
                schedule = self.store.create(
                    version_id=str(uuid.uuid4()),
                    level=level,
                    groups=draft.groups,
                    conflicts=len(draft.conflicts),
                    efficiency=draft.efficiency,
                    conflict_snapshot=draft.conflicts,
                    placement_gaps=draft.gaps,
                    created_by_id=actor_id,
                )
            else:
                schedule = self.store.update(
                    replace.id,
                    groups=draft.groups,
                    conflicts=len(draft.conflicts),
                    efficiency=draft.efficiency,
                    conflict_snapshot=draft.conflicts,
                    placement_gaps=draft.gaps,
                )
        except (InputError, PersistenceError) as exc:
            states.append(GenerationState.failed)
            logger.warning(
                "SCHEDULE GENERATION FAILED | level=%s | error=%s | states=%s",
                level,
                exc.message,
                ",".join(state.value for state in states),
            )
            raise

        states.append(GenerationState.done)
        if persist:
            self._audit(
                action_type="regenerate" if replace is not None else "generate",
                level=level,
                schedule_version_id=schedule.id,
                user_id=actor_id,
                prompt_used="\n".join(extra_rules) or None,
                changes_summary=generate_changes_summary(replace.groups if replace else None, draft.groups),
                conflicts_before=replace.conflicts if replace is not None else draft.initial_conflicts,
                conflicts_after=schedule.conflicts,
                started=started,
            )
        logger.info(
            "SCHEDULE GENERATED | level=%s | version_id=%s | sections=%s | conflicts=%s | efficiency=%s | oracle=%s",
            level,
            schedule.id,
            schedule.total_sections,
            schedule.conflicts,
            schedule.efficiency,
            draft.oracle_status,
        )
        return GenerationResult(schedule=schedule, persisted=persist, draft=draft)

    def _build_draft(
        self,
        level: int,
        *,
        groups: Sequence[str] | None,
        extra_rules: Sequence[str],
        states: list[GenerationState],
    ) -> GenerationDraft:
        states.append(GenerationState.building_constraints)
        inputs = load_level_inputs(self.db, level, groups=list(groups) if groups else None)
        occupied = self.store.occupied_slots(exclude_level=level)
        self._rebuild_tracker(occupied)
        courses = self.builder.schedulable_courses(inputs)
        constraints = {
            name: self.builder.build(
                inputs,
                group_name=name,
                student_count=size,
                occupied=occupied,
                extra_rules=extra_rules,
            )
            for name, size in inputs.groups.items()
        }

        states.append(GenerationState.awaiting_oracle)
        answers = {name: self._ask_oracle(constraint, level) for name, constraint in constraints.items()}
        oracle_status = self._combined_status(answers.values())
        warnings: list[str] = []
        if oracle_status == "unavailable":
            warnings.append("Recommendation oracle unavailable; deterministic placement used")

        states.append(GenerationState.placing)
        placements: list[GroupPlacement] = []
        for index, (name, size) in enumerate(inputs.groups.items()):
            placements.append(
                self.placer.place_group(
                    inputs,
                    group_name=name,
                    group_index=index,
                    student_count=size,
                    courses=courses,
                    recommendations=answers[name].recommendations,
                )
            )
        placed_groups = {placement.group: placement.to_payload() for placement in placements}
        gaps = [gap for placement in placements for gap in placement.gaps]
        warnings.extend(f"{gap.group}: {gap.course_code} not placed ({gap.reason})" for gap in gaps)

        candidate, conflicts, rounds, initial = self._detect_and_resolve(
            ScheduleView(level=level, groups=placed_groups),
            inputs,
            states,
        )
        if conflicts:
            warnings.append(f"{len(conflicts)} conflict(s) remain after resolution; manual review needed")

        compulsory = {course.code for course in inputs.courses if course.is_compulsory}
        expected = len(compulsory) * len(candidate.groups)
        efficiency = compute_efficiency(count_compulsory_placed(candidate.groups, compulsory), expected, len(conflicts))
        violations = self._rule_violations(
            level, candidate.groups, courses=inputs.courses, rooms=inputs.rooms, rules=inputs.rules
        )
        warnings.extend(violation.description for violation in violations)

        return GenerationDraft(
            level=level,
            groups=candidate.groups,
            conflicts=conflicts,
            efficiency=efficiency,
            gaps=gaps,
            rule_violations=violations,
            oracle_status=oracle_status,
            warnings=warnings,
            states=states,
            resolution_rounds=rounds,
            initial_conflicts=initial,
        )

    def _ask_oracle(self, constraints, level: int) -> OracleResult:
        try:
            return self.oracle.recommend(constraints, level)
        except Exception as exc:
            # Oracle trouble of any kind falls back to deterministic placement.
            logger.exception("Oracle call raised | level=%s", level)
            return OracleResult(status="unavailable", error=str(exc))

    def _combined_status(self, results) -> str:
        statuses = {result.status for result in results}
        if "ok" in statuses:
            return "ok"
        if "unavailable" in statuses:
            return "unavailable"
        return "empty"

    def _detect_and_resolve(
        self,
        candidate: ScheduleView,
        inputs: LevelInputs,
        states: list[GenerationState],
    ) -> tuple[ScheduleView, list[ConflictDetail], int, int]:
        others = [ScheduleView.from_version(item) for item in self.store.latest_per_level(exclude_level=candidate.level)]
        states.append(GenerationState.detecting_conflicts)
        conflicts = self.detector.detect_for_level(candidate, others)
        initial = len(conflicts)
        resolver = self._resolver(inputs.rooms)
        rounds = 0
        while conflicts and rounds < self.settings.resolution_rounds:
            rounds += 1
            states.append(GenerationState.resolving)
            groups, report = resolver.resolve(candidate, others, conflicts)
            self._sync_tracker(candidate.groups, groups)
            candidate = ScheduleView(level=candidate.level, groups=groups, version_id=candidate.version_id)
            states.append(GenerationState.detecting_conflicts)
            conflicts = self.detector.detect_for_level(candidate, others)
            if not report.moved:
                break
        return candidate, conflicts, rounds, initial

    def _resolver(self, rooms) -> ConflictResolver:
        return ConflictResolver(
            rooms,
            self.policy,
            rng=self.rng,
            max_attempts=self.settings.resolver_max_attempts,
        )

    def _rebuild_tracker(self, occupied) -> None:
        # Only the other levels' latest versions hold rooms while a level is placed.
        self.tracker.reset()
        for slot in occupied:
            self.tracker.reserve(slot.room, slot.day, slot.start_time)

    def _sync_tracker(self, before: dict[str, GroupPayload], after: dict[str, GroupPayload]) -> None:
        old = {section.room_key for group in before.values() for section in group.sections}
        new = {section.room_key for group in after.values() for section in group.sections}
        for room, day, start in old - new:
            self.tracker.release(room, day, start)
        for room, day, start in new - old:
            self.tracker.reserve(room, day, start)

    def _rule_violations(
        self,
        level: int,
        groups: dict[str, GroupPayload],
        *,
        courses,
        rooms,
        rules,
    ) -> list[RuleViolation]:
        categories = set(ALWAYS_CHECKED_RULES)
        categories.update(rule.category for rule in rules)
        return validate_rules(
            level,
            groups,
            policy=self.policy,
            lab_courses={course.code: course.is_lab for course in courses},
            lab_rooms={room.name: room.is_lab for room in rooms},
            categories=categories,
        )

    def _unsaved(self, draft: GenerationDraft) -> ScheduleVersionOut:
        return ScheduleVersionOut(
            id=str(uuid.uuid4()),
            level=draft.level,
            groups=draft.groups,
            total_sections=count_sections(draft.groups),
            conflicts=len(draft.conflicts),
            efficiency=draft.efficiency,
            conflict_snapshot=draft.conflicts,
            placement_gaps=draft.gaps,
            generated_at=datetime.now(timezone.utc),
        )

    # Existing versions

    def edit_version(
        self,
        version_id: str,
        groups: dict[str, GroupPayload],
        *,
        actor_id: str | None = None,
    ) -> ScheduleEditResponse:
        started = perf_counter()
        existing = self.store.get(version_id)
        candidate = ScheduleView(level=existing.level, groups=groups, version_id=existing.id)
        others = self._others(existing.level)
        conflicts = self.detector.detect_for_level(candidate, others)
        courses = load_courses(self.db, existing.level)
        compulsory = {course.code for course in courses if course.is_compulsory}
        efficiency = compute_efficiency(
            count_compulsory_placed(groups, compulsory),
            len(compulsory) * len(groups),
            len(conflicts),
        )
        violations = self._rule_violations(
            existing.level,
            groups,
            courses=courses,
            rooms=load_rooms(self.db),
            rules=load_rules_for_level(self.db, existing.level),
        )
        updated = self.store.update(
            version_id,
            groups=groups,
            conflicts=len(conflicts),
            efficiency=efficiency,
            conflict_snapshot=conflicts,
        )
        self._audit(
            action_type="edit",
            level=existing.level,
            schedule_version_id=version_id,
            user_id=actor_id,
            changes_summary=generate_changes_summary(existing.groups, groups),
            conflicts_before=existing.conflicts,
            conflicts_after=updated.conflicts,
            started=started,
        )
        if violations:
            logger.info("Edited schedule breaks rules | version_id=%s | violations=%s", version_id, len(violations))
        warnings = [violation.description for violation in violations]
        if conflicts:
            warnings.append(f"{len(conflicts)} conflict(s) in edited schedule; manual review needed")
        return ScheduleEditResponse(
            schedule=updated,
            needs_manual_review=bool(conflicts),
            rule_violations=violations,
            warnings=warnings,
        )

    def resolve_version(self, version_id: str, *, actor_id: str | None = None) -> ResolutionOutcome:
        started = perf_counter()
        existing = self.store.get(version_id)
        candidate = ScheduleView.from_version(existing)
        others = self._others(existing.level)
        conflicts = self.detector.detect_for_level(candidate, others)
        before = len(conflicts)
        resolver = self._resolver(load_rooms(self.db))
        moved: set[tuple[str, str, str, str]] = set()
        unresolved = 0
        rounds = 0
        while conflicts and rounds < self.settings.resolution_rounds:
            rounds += 1
            groups, report = resolver.resolve(candidate, others, conflicts)
            moved.update(report.moved)
            unresolved = len(report.unresolved)
            candidate = ScheduleView(level=candidate.level, groups=groups, version_id=candidate.version_id)
            conflicts = self.detector.detect_for_level(candidate, others)
            if not report.moved:
                break

        if candidate.groups != existing.groups or before != existing.conflicts:
            compulsory = {course.code for course in load_courses(self.db, existing.level) if course.is_compulsory}
            self.store.update(
                version_id,
                groups=candidate.groups,
                conflicts=len(conflicts),
                efficiency=compute_efficiency(
                    count_compulsory_placed(candidate.groups, compulsory),
                    len(compulsory) * len(candidate.groups),
                    len(conflicts),
                ),
                conflict_snapshot=conflicts,
            )
        self._audit(
            action_type="resolve",
            level=existing.level,
            schedule_version_id=version_id,
            user_id=actor_id,
            changes_summary=generate_changes_summary(existing.groups, candidate.groups),
            conflicts_before=before,
            conflicts_after=len(conflicts),
            started=started,
        )
        logger.info(
            "CONFLICTS RESOLVED | version_id=%s | level=%s | before=%s | after=%s | moved=%s",
            version_id,
            existing.level,
            before,
            len(conflicts),
            len(moved),
        )
        return ResolutionOutcome(
            schedule_version_id=version_id,
            level=existing.level,
            conflicts_before=before,
            conflicts_after=len(conflicts),
            moved_sections=len(moved),
            unresolved_sections=unresolved if conflicts else 0,
            needs_manual_review=bool(conflicts),
        )

    def delete_version(self, version_id: str, *, actor_id: str | None = None) -> None:
        started = perf_counter()
        existing = self.store.get(version_id)
        self.store.delete(version_id)
        self._audit(
            action_type="delete",
            level=existing.level,
            schedule_version_id=version_id,
            user_id=actor_id,
            changes_summary=generate_changes_summary(existing.groups, {}),
            conflicts_before=existing.conflicts,
            conflicts_after=0,
            started=started,
        )

    def _others(self, level: int) -> list[ScheduleView]:
        return [ScheduleView.from_version(item) for item in self.store.latest_per_level(exclude_level=level)]

    def _audit(self, *, started: float, **fields) -> None:
        log_schedule_action(self.db, execution_time_ms=int((perf_counter() - started) * 1000), **fields)
        try:
            self.db.commit()
        except SQLAlchemyError:
            # The schedule itself is already stored; a lost audit row is logged, not raised.
            self.db.rollback()
            logger.exception(
                "SCHEDULE AUDIT WRITE FAILED | action=%s | version_id=%s",
                fields.get("action_type"),
                fields.get("schedule_version_id"),
            )

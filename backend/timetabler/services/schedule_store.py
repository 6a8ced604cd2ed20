from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timetabler.core.exceptions import PersistenceError, ResourceNotFoundError
from timetabler.models.schedule_version import ScheduleVersion
from timetabler.schemas.conflict import ConflictDetail
from timetabler.schemas.schedule import GroupPayload, PlacementGap, ScheduleVersionOut
from timetabler.services.occupancy import OccupiedSlot

logger = logging.getLogger(__name__)


def _groups_json(groups: dict[str, GroupPayload]) -> dict:
    return {name: group.model_dump(mode="json") for name, group in groups.items()}


def count_sections(groups: dict[str, GroupPayload]) -> int:
    return sum(len(group.sections) for group in groups.values())


class ScheduleVersionStore:
    """Single place that reads and writes ``schedule_versions``.

    "Latest for a level" always means the greatest ``generated_at``; every
    consumer goes through :meth:`latest_for_level` or :meth:`latest_per_level`.
    Write failures are rolled back and raised once, never retried.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(
        self,
        *,
        version_id: str,
        level: int,
        groups: dict[str, GroupPayload],
        conflicts: int,
        efficiency: int,
        conflict_snapshot: Sequence[ConflictDetail] = (),
        placement_gaps: Sequence[PlacementGap] = (),
        created_by_id: str | None = None,
    ) -> ScheduleVersionOut:
        existing = self.db.get(ScheduleVersion, version_id)
        if existing is not None:
            # Same id means the same run asking twice.
            logger.info("Schedule version already stored | version_id=%s | level=%s", version_id, level)
            return ScheduleVersionOut.model_validate(existing)

        record = ScheduleVersion(
            id=version_id,
            level=level,
            groups=_groups_json(groups),
            total_sections=count_sections(groups),
            conflicts=conflicts,
            efficiency=efficiency,
            conflict_snapshot=[item.model_dump(mode="json") for item in conflict_snapshot],
            placement_gaps=[item.model_dump(mode="json") for item in placement_gaps],
            created_by_id=created_by_id,
        )
        self.db.add(record)
        self._commit("create", version_id=version_id, level=level)
        self.db.refresh(record)
        logger.info(
            "SCHEDULE VERSION STORED | version_id=%s | level=%s | sections=%s | conflicts=%s",
            record.id,
            record.level,
            record.total_sections,
            record.conflicts,
        )
        return ScheduleVersionOut.model_validate(record)

    def update(
        self,
        version_id: str,
        *,
        groups: dict[str, GroupPayload],
        conflicts: int,
        efficiency: int | None = None,
        conflict_snapshot: Sequence[ConflictDetail] | None = None,
        placement_gaps: Sequence[PlacementGap] | None = None,
    ) -> ScheduleVersionOut:
        record = self._get_record(version_id)
        record.groups = _groups_json(groups)
        record.total_sections = count_sections(groups)
        record.conflicts = conflicts
        if efficiency is not None:
            record.efficiency = efficiency
        if conflict_snapshot is not None:
            record.conflict_snapshot = [item.model_dump(mode="json") for item in conflict_snapshot]
        if placement_gaps is not None:
            record.placement_gaps = [item.model_dump(mode="json") for item in placement_gaps]
        self._commit("update", version_id=version_id, level=record.level)
        self.db.refresh(record)
        return ScheduleVersionOut.model_validate(record)

    def get(self, version_id: str) -> ScheduleVersionOut:
        return ScheduleVersionOut.model_validate(self._get_record(version_id))

    def list_versions(self, level: int | None = None) -> list[ScheduleVersionOut]:
        query = select(ScheduleVersion).order_by(ScheduleVersion.generated_at.desc())
        if level is not None:
            query = query.where(ScheduleVersion.level == level)
        return [ScheduleVersionOut.model_validate(row) for row in self.db.execute(query).scalars().all()]

    def latest_for_level(self, level: int) -> ScheduleVersionOut | None:
        row = (
            self.db.execute(
                select(ScheduleVersion)
                .where(ScheduleVersion.level == level)
                .order_by(ScheduleVersion.generated_at.desc(), ScheduleVersion.id.desc())
                .limit(1)
            )
            .scalars()
            .first()
        )
        return ScheduleVersionOut.model_validate(row) if row is not None else None

    def latest_per_level(self, exclude_level: int | None = None) -> list[ScheduleVersionOut]:
        levels = self.db.execute(select(ScheduleVersion.level).distinct().order_by(ScheduleVersion.level)).scalars().all()
        latest: list[ScheduleVersionOut] = []
        for level in levels:
            if exclude_level is not None and level == exclude_level:
                continue
            version = self.latest_for_level(level)
            if version is not None:
                latest.append(version)
        return latest

    def occupied_slots(self, exclude_level: int | None = None) -> list[OccupiedSlot]:
        slots: list[OccupiedSlot] = []
        for version in self.latest_per_level(exclude_level=exclude_level):
            for section in version.all_sections():
                slots.append(
                    OccupiedSlot(
                        room=section.room,
                        day=section.day,
                        start_time=section.start_time,
                        end_time=section.end_time,
                        level=version.level,
                        course_code=section.course_code,
                    )
                )
        return slots

    def delete(self, version_id: str) -> None:
        record = self._get_record(version_id)
        level = record.level
        self.db.delete(record)
        self._commit("delete", version_id=version_id, level=level)
        logger.info("SCHEDULE VERSION DELETED | version_id=%s | level=%s", version_id, level)

    def _get_record(self, version_id: str) -> ScheduleVersion:
        record = self.db.get(ScheduleVersion, version_id)
        if record is None:
            raise ResourceNotFoundError("Schedule version", version_id)
        return record

    def _commit(self, action: str, *, version_id: str, level: int) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            storage_error = str(getattr(exc, "orig", None) or exc)
            logger.exception(
                "SCHEDULE VERSION WRITE FAILED | action=%s | version_id=%s | level=%s",
                action,
                version_id,
                level,
            )
            raise PersistenceError(
                f"Failed to {action} schedule version",
                storage_error=storage_error,
                details={"version_id": version_id, "level": level},
            ) from exc

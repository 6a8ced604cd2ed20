from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from timetabler.api.deps import get_db
from timetabler.core.config import Settings, get_settings
from timetabler.schemas.groups import GroupRebalanceRequest, GroupStatistics
from timetabler.services.groups import apply_group_settings, group_statistics

router = APIRouter()


@router.get("/{level}", response_model=GroupStatistics)
def get_group_statistics(
    level: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> GroupStatistics:
    return group_statistics(db, level, default_students_per_group=settings.default_students_per_group)


@router.post("/{level}/rebalance", response_model=GroupStatistics)
def rebalance_level_groups(
    level: int,
    payload: GroupRebalanceRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> GroupStatistics:
    apply_group_settings(db, level, payload.students_per_group)
    return group_statistics(db, level, default_students_per_group=settings.default_students_per_group)

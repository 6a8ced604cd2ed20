from collections.abc import Generator
from functools import lru_cache

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from timetabler.core.config import Settings, get_settings
from timetabler.db.session import SessionLocal
from timetabler.services.occupancy import RoomOccupancyTracker
from timetabler.services.oracle import RecommendationOracle, build_oracle
from timetabler.services.orchestrator import SchedulingOrchestrator


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_tracker() -> RoomOccupancyTracker:
    # One tracker per process; generation passes on it are serialised.
    return RoomOccupancyTracker()


def get_oracle(settings: Settings = Depends(get_settings)) -> RecommendationOracle:
    return build_oracle(
        settings.oracle_url,
        api_key=settings.oracle_api_key,
        timeout=settings.oracle_timeout_seconds,
    )


def get_actor_id(x_actor_id: str | None = Header(default=None)) -> str | None:
    if x_actor_id is None:
        return None
    return x_actor_id.strip()[:36] or None


def get_orchestrator(
    db: Session = Depends(get_db),
    tracker: RoomOccupancyTracker = Depends(get_tracker),
    oracle: RecommendationOracle = Depends(get_oracle),
    settings: Settings = Depends(get_settings),
) -> SchedulingOrchestrator:
    return SchedulingOrchestrator(db, tracker=tracker, oracle=oracle, settings=settings)

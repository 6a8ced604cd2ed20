from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from timetabler.api.deps import get_actor_id, get_db, get_orchestrator
from timetabler.core.exceptions import ResourceNotFoundError
from timetabler.schemas.audit import ScheduleAuditLogOut
from timetabler.schemas.schedule import (
    GenerateAllResponse,
    GenerateScheduleRequest,
    GenerationResponse,
    RegenerateScheduleRequest,
    ScheduleDeleteOut,
    ScheduleEditResponse,
    ScheduleVersionOut,
    UpdateScheduleRequest,
)
from timetabler.services.audit import list_audit_entries
from timetabler.services.orchestrator import SchedulingOrchestrator
from timetabler.services.schedule_store import ScheduleVersionStore

router = APIRouter()


@router.post("/generate", response_model=GenerationResponse, status_code=status.HTTP_201_CREATED)
def generate_schedule(
    payload: GenerateScheduleRequest,
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
    actor_id: str | None = Depends(get_actor_id),
) -> GenerationResponse:
    result = orchestrator.generate_level(
        payload.level,
        groups=payload.groups,
        students_per_group=payload.students_per_group,
        persist=payload.persist,
        actor_id=actor_id,
    )
    return result.to_response()


@router.post("/generate-all", response_model=GenerateAllResponse, status_code=status.HTTP_201_CREATED)
def generate_all_schedules(
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
    actor_id: str | None = Depends(get_actor_id),
) -> GenerateAllResponse:
    return orchestrator.generate_all_levels(actor_id=actor_id)


@router.get("", response_model=list[ScheduleVersionOut])
def list_schedules(
    level: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
) -> list[ScheduleVersionOut]:
    return ScheduleVersionStore(db).list_versions(level=level)


@router.get("/latest/{level}", response_model=ScheduleVersionOut)
def latest_schedule(level: int, db: Session = Depends(get_db)) -> ScheduleVersionOut:
    version = ScheduleVersionStore(db).latest_for_level(level)
    if version is None:
        raise ResourceNotFoundError("Schedule for level", str(level))
    return version


@router.get("/{version_id}", response_model=ScheduleVersionOut)
def get_schedule(version_id: str, db: Session = Depends(get_db)) -> ScheduleVersionOut:
    return ScheduleVersionStore(db).get(version_id)


@router.put("/{version_id}", response_model=ScheduleEditResponse)
def update_schedule(
    version_id: str,
    payload: UpdateScheduleRequest,
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
    actor_id: str | None = Depends(get_actor_id),
) -> ScheduleEditResponse:
    return orchestrator.edit_version(version_id, payload.groups, actor_id=actor_id)


@router.post("/{version_id}/regenerate", response_model=GenerationResponse)
def regenerate_schedule(
    version_id: str,
    payload: RegenerateScheduleRequest,
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
    actor_id: str | None = Depends(get_actor_id),
) -> GenerationResponse:
    result = orchestrator.regenerate_version(
        version_id,
        payload.prompt,
        students_per_group=payload.students_per_group,
        actor_id=actor_id,
    )
    return result.to_response()


@router.delete("/{version_id}", response_model=ScheduleDeleteOut)
def delete_schedule(
    version_id: str,
    orchestrator: SchedulingOrchestrator = Depends(get_orchestrator),
    actor_id: str | None = Depends(get_actor_id),
) -> ScheduleDeleteOut:
    orchestrator.delete_version(version_id, actor_id=actor_id)
    return ScheduleDeleteOut(success=True, id=version_id)


@router.get("/{version_id}/audit", response_model=list[ScheduleAuditLogOut])
def schedule_audit(version_id: str, db: Session = Depends(get_db)) -> list[ScheduleAuditLogOut]:
    return list_audit_entries(db, version_id)

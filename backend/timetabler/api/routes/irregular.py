from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from timetabler.api.deps import get_db
from timetabler.schemas.irregular import (
    IrregularBatchResult,
    PersonalizedSchedule,
    RequirementOut,
    RequirementsUpdate,
)
from timetabler.services.irregular import (
    generate_for_all_irregular_students,
    generate_personalized_schedule,
    get_personalized_schedule,
    load_requirements,
    replace_requirements,
)

router = APIRouter()


@router.get("/students/{student_id}/requirements", response_model=list[RequirementOut])
def list_requirements(student_id: str, db: Session = Depends(get_db)) -> list[RequirementOut]:
    return load_requirements(db, student_id)


@router.put("/students/{student_id}/requirements", response_model=list[RequirementOut])
def update_requirements(
    student_id: str,
    payload: RequirementsUpdate,
    db: Session = Depends(get_db),
) -> list[RequirementOut]:
    return replace_requirements(db, student_id, payload.requirements)


@router.post(
    "/students/{student_id}/schedule",
    response_model=PersonalizedSchedule,
    status_code=status.HTTP_201_CREATED,
)
def generate_student_schedule(student_id: str, db: Session = Depends(get_db)) -> PersonalizedSchedule:
    return generate_personalized_schedule(db, student_id)


@router.get("/students/{student_id}/schedule", response_model=PersonalizedSchedule)
def get_student_schedule(student_id: str, db: Session = Depends(get_db)) -> PersonalizedSchedule:
    return get_personalized_schedule(db, student_id)


@router.post("/levels/{level}/schedules", response_model=IrregularBatchResult)
def generate_level_schedules(level: int, db: Session = Depends(get_db)) -> IrregularBatchResult:
    return generate_for_all_irregular_students(db, level)

from typing import Optional, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user
from ..models.models import User
from ..schemas.jobs import (
    JobCreate, JobUpdateFields, JobStatusChange, JobResponse, JobDetailResponse,
    JobNoteCreate, JobNoteResponse, ServiceRecordCreate, ServiceRecordResponse,
)
from ..services import job_service
from ..services.clock import Clock, get_clock


router = APIRouter(prefix="/jobs", tags=["jobs"])


def _detail(job, now) -> JobDetailResponse:
    entered, days = job_service.time_in_status_days(job, now)
    out = JobDetailResponse.model_validate(job)
    out.status_entry_time = entered
    out.time_in_status_days = days
    return out


@router.get("", response_model=List[JobResponse])
def list_jobs(
    customer_id: Optional[int] = None,
    assigned_to: Optional[int] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    parsed = job_service.parse_job_status(status) if status else None
    return job_service.list_jobs(db, customer_id=customer_id, assigned_to=assigned_to, status=parsed)


@router.post("", response_model=JobResponse, status_code=201)
def create_job(
    payload: JobCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    return job_service.create_job(db, payload.model_dump(), user.id, clock=clock)


@router.get("/{job_id}", response_model=JobDetailResponse)
def get_job(job_id: int, db: Session = Depends(get_db), clock: Clock = Depends(get_clock), _: User = Depends(get_current_user)):
    return _detail(job_service.get_job(db, job_id), clock())


@router.patch("/{job_id}", response_model=JobResponse)
def update_job(
    job_id: int,
    payload: JobUpdateFields,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    return job_service.update_job(db, job_id, payload.model_dump(exclude_unset=True), user.id, clock=clock)


@router.post("/{job_id}/status", response_model=JobResponse)
def change_job_status(
    job_id: int,
    payload: JobStatusChange,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    return job_service.transition_job(
        db, job_id, payload.status, user.id,
        clock=clock, note=payload.note, is_public=payload.is_public,
    )


@router.get("/{job_id}/updates", response_model=List[JobNoteResponse])
def list_job_updates(job_id: int, public_only: bool = False, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return job_service.list_job_updates(db, job_id, public_only=public_only)


@router.post("/{job_id}/updates", response_model=JobNoteResponse, status_code=201)
def add_job_update(
    job_id: int,
    payload: JobNoteCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    return job_service.add_job_update(db, job_id, payload.note, user.id, clock=clock, is_public=payload.is_public)


@router.get("/{job_id}/services", response_model=List[ServiceRecordResponse])
def list_services(job_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return job_service.list_service_records(db, job_id)


@router.post("/{job_id}/services", response_model=ServiceRecordResponse, status_code=201)
def add_service(
    job_id: int,
    payload: ServiceRecordCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    return job_service.add_service_record(db, job_id, payload.model_dump(exclude_unset=True), user.id, clock=clock)

"""
Job lifecycle: intake, status transitions, updates and service records.
"""
import re
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFoundError, ValidationError
from ..models.enums import JobStatus
from ..models.models import Customer, Equipment, Job, JobUpdate, Service, User
from .activity import record_activity
from .clock import Clock, utc_now
from .codes import commit_with_code
from .side_effects import best_effort


log = structlog.get_logger(__name__)

# Only these target statuses are written to the activity feed
STATUS_ACTIVITY = {
    JobStatus.COMPLETED: "job_completed",
    JobStatus.IN_PROGRESS: "job_started",
    JobStatus.PARTS_ORDERED: "job_received",
}

UPDATABLE_FIELDS = (
    "customer_id",
    "equipment_id",
    "assigned_to",
    "description",
    "estimated_hours",
    "actual_hours",
    "customer_notified",
)

_STATUS_NOTE_RE = re.compile(r'Status changed from "[^"]+" to "([^"]+)"')


def parse_job_status(raw) -> JobStatus:
    try:
        return JobStatus(raw)
    except ValueError:
        raise ValidationError(
            f"Invalid job status: {raw}",
            fields={"status": f"must be one of {', '.join(s.value for s in JobStatus)}"},
        )


def status_change_note(previous: JobStatus, new: JobStatus) -> str:
    return f'Status changed from "{previous.label}" to "{new.label}"'


def get_job(db: Session, job_id: int) -> Job:
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise NotFoundError("Job", job_id)
    return job


def get_job_by_code(db: Session, job_code: str) -> Optional[Job]:
    return db.query(Job).filter(Job.job_code == job_code.strip().upper()).first()


def list_jobs(
    db: Session,
    customer_id: Optional[int] = None,
    assigned_to: Optional[int] = None,
    status: Optional[JobStatus] = None,
) -> List[Job]:
    query = db.query(Job)
    if customer_id is not None:
        query = query.filter(Job.customer_id == customer_id)
    if assigned_to is not None:
        query = query.filter(Job.assigned_to == assigned_to)
    if status is not None:
        query = query.filter(Job.status == status)
    return query.order_by(Job.created_at.desc(), Job.id.desc()).all()


def _require(db: Session, model, entity_id: int, field: str, label: str):
    row = db.query(model).filter(model.id == entity_id).first()
    if not row:
        raise ValidationError(f"{label} {entity_id} does not exist", fields={field: "not found"})
    return row


def _job_meta(job: Job) -> Dict[str, Any]:
    return {
        "job_code": job.job_code,
        "customer_name": job.customer.name if job.customer else None,
        "status": job.status.value,
    }


def create_job(db: Session, data: Dict[str, Any], actor_id: Optional[int] = None, *, clock: Clock = utc_now) -> Job:
    customer_id = data.get("customer_id")
    if customer_id is None:
        raise ValidationError("customer_id is required", fields={"customer_id": "required"})
    if not (data.get("description") or "").strip():
        raise ValidationError("description is required", fields={"description": "required"})
    _require(db, Customer, customer_id, "customer_id", "Customer")
    if data.get("equipment_id") is not None:
        _require(db, Equipment, data["equipment_id"], "equipment_id", "Equipment")
    if data.get("assigned_to") is not None:
        _require(db, User, data["assigned_to"], "assigned_to", "User")

    status = parse_job_status(data["status"]) if data.get("status") else JobStatus.WAITING_ASSESSMENT
    # Assigned intake goes straight onto the bench
    if data.get("assigned_to") and status == JobStatus.WAITING_ASSESSMENT:
        status = JobStatus.IN_PROGRESS

    now = clock()
    job = Job(
        customer_id=customer_id,
        equipment_id=data.get("equipment_id"),
        assigned_to=data.get("assigned_to"),
        description=data["description"].strip(),
        status=status,
        created_at=now,
        completed_at=now if status == JobStatus.COMPLETED else None,
        estimated_hours=data.get("estimated_hours"),
        actual_hours=data.get("actual_hours"),
        customer_notified=bool(data.get("customer_notified", False)),
    )
    commit_with_code(db, job, "job_code", Job.job_code, settings.job_code_prefix, settings.job_code_start)
    db.refresh(job)
    log.info("job_created", job_id=job.id, job_code=job.job_code, status=job.status.value)

    best_effort(
        db, "job_created_activity", record_activity,
        actor_id, "job_created",
        entity_type="job", entity_id=job.id, metadata=_job_meta(job), timestamp=now,
    )
    return job


def transition_job(
    db: Session,
    job_id: int,
    new_status,
    actor_id: Optional[int] = None,
    *,
    clock: Clock = utc_now,
    note: Optional[str] = None,
    is_public: bool = True,
) -> Job:
    """
    Move a job to any status. completed_at follows the status; status
    changes append a public note and, for some targets, an activity entry.
    """
    status = parse_job_status(new_status)
    job = get_job(db, job_id)
    actor = actor_id or job.assigned_to or settings.system_user_id
    previous = job.status
    now = clock()
    changed = previous != status

    if changed:
        job.status = status
        job.completed_at = now if status == JobStatus.COMPLETED else None
        job.updated_at = now
        db.add(JobUpdate(
            job_id=job.id,
            note=status_change_note(previous, status),
            created_by=actor,
            created_at=now,
            is_public=True,
        ))
    if note and note.strip():
        db.add(JobUpdate(job_id=job.id, note=note.strip(), created_by=actor, created_at=now, is_public=is_public))
    db.commit()
    db.refresh(job)

    if changed:
        log.info("job_status_changed", job_id=job.id, old_status=previous.value, new_status=status.value, actor_id=actor)
        activity_type = STATUS_ACTIVITY.get(status)
        if activity_type:
            meta = _job_meta(job)
            meta["old_status"] = previous.value
            best_effort(
                db, f"{activity_type}_activity", record_activity,
                actor, activity_type,
                entity_type="job", entity_id=job.id, metadata=meta, timestamp=now,
            )
    return job


def update_job(db: Session, job_id: int, changes: Dict[str, Any], actor_id: Optional[int] = None, *, clock: Clock = utc_now) -> Job:
    job = get_job(db, job_id)
    changes = dict(changes)
    new_status = changes.pop("status", None)

    if changes.get("customer_id") is not None and changes["customer_id"] != job.customer_id:
        _require(db, Customer, changes["customer_id"], "customer_id", "Customer")
    if changes.get("equipment_id") is not None and changes["equipment_id"] != job.equipment_id:
        _require(db, Equipment, changes["equipment_id"], "equipment_id", "Equipment")
    assignee = changes.get("assigned_to")
    if assignee is not None and assignee != job.assigned_to:
        _require(db, User, assignee, "assigned_to", "User")
        if new_status is None and job.status == JobStatus.WAITING_ASSESSMENT:
            new_status = JobStatus.IN_PROGRESS

    changed_fields = []
    for field in UPDATABLE_FIELDS:
        if field in changes and getattr(job, field) != changes[field]:
            setattr(job, field, changes[field])
            changed_fields.append(field)

    now = clock()
    if changed_fields:
        job.updated_at = now
        db.commit()
        db.refresh(job)

    if new_status is not None:
        job = transition_job(db, job.id, new_status, actor_id, clock=clock)

    if changed_fields:
        meta = _job_meta(job)
        meta["changes"] = ", ".join(changed_fields)
        best_effort(
            db, "job_updated_activity", record_activity,
            actor_id, "job_updated",
            entity_type="job", entity_id=job.id, metadata=meta, timestamp=now,
        )
    return job


def add_job_update(
    db: Session,
    job_id: int,
    note: str,
    actor_id: Optional[int] = None,
    *,
    clock: Clock = utc_now,
    is_public: bool = True,
) -> JobUpdate:
    if not note or not note.strip():
        raise ValidationError("note is required", fields={"note": "required"})
    job = get_job(db, job_id)
    now = clock()
    update = JobUpdate(job_id=job.id, note=note.strip(), created_by=actor_id, created_at=now, is_public=is_public)
    db.add(update)
    job.updated_at = now
    db.commit()
    db.refresh(update)
    return update


def list_job_updates(db: Session, job_id: int, public_only: bool = False) -> List[JobUpdate]:
    get_job(db, job_id)
    query = db.query(JobUpdate).filter(JobUpdate.job_id == job_id)
    if public_only:
        query = query.filter(JobUpdate.is_public.is_(True))
    return query.order_by(JobUpdate.created_at.desc(), JobUpdate.id.desc()).all()


def add_service_record(db: Session, job_id: int, data: Dict[str, Any], actor_id: Optional[int] = None, *, clock: Clock = utc_now) -> Service:
    job = get_job(db, job_id)
    now = clock()
    service = Service(
        job_id=job.id,
        service_type=data.get("service_type") or "general",
        details=data.get("details"),
        performed_by=data.get("performed_by") or actor_id,
        performed_at=data.get("performed_at") or now,
        parts_used=data.get("parts_used"),
        cost=data.get("cost"),
        labor_hours=data.get("labor_hours"),
        notes=data.get("notes"),
    )
    db.add(service)
    job.updated_at = now
    db.commit()
    db.refresh(service)

    meta = _job_meta(job)
    meta["service_type"] = service.service_type
    best_effort(
        db, "service_added_activity", record_activity,
        actor_id, "service_added",
        entity_type="job", entity_id=job.id, metadata=meta, timestamp=now,
    )
    return service


def list_service_records(db: Session, job_id: int) -> List[Service]:
    get_job(db, job_id)
    return (
        db.query(Service)
        .filter(Service.job_id == job_id)
        .order_by(Service.performed_at.desc(), Service.id.desc())
        .all()
    )


def status_entry_time(job: Job) -> datetime:
    """When the job entered its current status, read back from the status notes."""
    label = job.status.label
    for update in job.updates:
        match = _STATUS_NOTE_RE.match(update.note or "")
        if match and match.group(1).strip() == label:
            return update.created_at
    return job.created_at


def time_in_status_days(job: Job, now: datetime) -> Tuple[datetime, float]:
    entered = status_entry_time(job)
    days = (now - entered).total_seconds() / 86400
    return entered, max(0.0, round(days, 2))


def get_public_job_tracker(db: Session, job_code: str, email: str) -> Dict[str, Any]:
    """
    Customer facing lookup. Unknown code and wrong email look the same.
    """
    job = get_job_by_code(db, job_code or "")
    customer = job.customer if job else None
    if (
        not job
        or not customer
        or not customer.email
        or not email
        or customer.email.strip().lower() != email.strip().lower()
    ):
        raise NotFoundError("Job", job_code)

    updates = [u for u in job.updates if u.is_public]
    return {
        "job": {
            "job_code": job.job_code,
            "status": job.status.value,
            "status_label": job.status.label,
            "description": job.description,
            "created_at": job.created_at,
            "completed_at": job.completed_at,
            "estimated_hours": job.estimated_hours,
            "actual_hours": job.actual_hours,
            "customer_notified": job.customer_notified,
        },
        "customer": {
            "name": customer.name,
            "email": customer.email,
            "phone": customer.phone,
        },
        "updates": [
            {"note": u.note, "created_at": u.created_at} for u in updates
        ],
    }

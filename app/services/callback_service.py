"""
Customer callback requests.

pending -> completed (completes the companion task in the same commit)
pending -> deleted (soft delete, restorable until delete_expires_at)
deleted -> pending (restore) | purged (hard delete once expired)
"""
import re
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models.enums import CallbackStatus, TaskStatus
from ..models.models import CallbackRequest, Customer, Task, User
from .activity import record_activity
from .clock import Clock, utc_now
from .notifications import AssignmentNotifier
from .side_effects import best_effort
from .task_service import apply_task_status, build_task, notify_task_assignment, parse_priority


log = structlog.get_logger(__name__)

REQUIRED_FIELDS = ("customer_name", "phone_number", "subject")
UPDATABLE_FIELDS = (
    "customer_id",
    "customer_name",
    "phone_number",
    "subject",
    "details",
    "priority",
    "assigned_to",
    "notes",
)


def normalize_phone(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")


def delete_grace() -> timedelta:
    return timedelta(hours=settings.callback_delete_grace_hours)


def get_callback(db: Session, callback_id: int) -> CallbackRequest:
    callback = db.query(CallbackRequest).filter(CallbackRequest.id == callback_id).first()
    if not callback:
        raise NotFoundError("Callback", callback_id)
    return callback


def list_callbacks(
    db: Session,
    assigned_to: Optional[int] = None,
    customer_id: Optional[int] = None,
    status: Optional[CallbackStatus] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
) -> List[CallbackRequest]:
    """Live callbacks; soft-deleted ones are listed by list_deleted_callbacks."""
    query = db.query(CallbackRequest).filter(CallbackRequest.status != CallbackStatus.DELETED)
    if assigned_to is not None:
        query = query.filter(CallbackRequest.assigned_to == assigned_to)
    if customer_id is not None:
        query = query.filter(CallbackRequest.customer_id == customer_id)
    if status is not None:
        query = query.filter(CallbackRequest.status == status)
    if from_date is not None:
        query = query.filter(CallbackRequest.requested_at >= from_date)
    if to_date is not None:
        query = query.filter(CallbackRequest.requested_at <= to_date)
    return query.order_by(CallbackRequest.requested_at.desc(), CallbackRequest.id.desc()).all()


def list_deleted_callbacks(db: Session) -> List[CallbackRequest]:
    return (
        db.query(CallbackRequest)
        .filter(CallbackRequest.status == CallbackStatus.DELETED)
        .order_by(CallbackRequest.deleted_at.desc(), CallbackRequest.id.desc())
        .all()
    )


def match_customer(db: Session, customer_name: str, phone_number: str) -> Optional[int]:
    """Best-effort link to an existing customer: exact name, then phone digits."""
    customer = db.query(Customer).filter(Customer.name == customer_name).first()
    if customer:
        return customer.id
    digits = normalize_phone(phone_number)
    if not digits:
        return None
    for customer in db.query(Customer).filter(Customer.phone.isnot(None)).order_by(Customer.id).all():
        if normalize_phone(customer.phone) == digits:
            return customer.id
    return None


def _validate_required(data: Dict[str, Any]) -> Dict[str, str]:
    cleaned = {}
    missing = {}
    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            missing[field] = "required"
        else:
            cleaned[field] = value.strip()
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)
    return cleaned


def _callback_meta(callback: CallbackRequest) -> Dict[str, Any]:
    return {
        "customer_name": callback.customer_name,
        "phone": callback.phone_number,
        "subject": callback.subject,
        "priority": callback.priority.value,
    }


def companion_task_fields(callback: CallbackRequest, now: datetime) -> Dict[str, Any]:
    description = f"Call back {callback.customer_name} at {callback.phone_number}."
    if callback.details:
        description = f"{description} {callback.details}"
    return {
        "title": f"Customer Callback Request: {callback.subject}",
        "description": description,
        "priority": callback.priority,
        "status": TaskStatus.PENDING,
        "assigned_to": callback.assigned_to,
        "due_date": now + timedelta(hours=24),
        "related_entity_type": "callback",
        "related_entity_id": callback.id,
    }


def create_callback(
    db: Session,
    data: Dict[str, Any],
    actor_id: Optional[int] = None,
    *,
    clock: Clock = utc_now,
    notifier: Optional[AssignmentNotifier] = None,
) -> CallbackRequest:
    required = _validate_required(data)
    priority = parse_priority(data.get("priority"))
    assigned_to = data.get("assigned_to")
    if assigned_to is not None and not db.query(User).filter(User.id == assigned_to).first():
        raise ValidationError(f"User {assigned_to} does not exist", fields={"assigned_to": "not found"})

    customer_id = data.get("customer_id")
    if customer_id is not None:
        if not db.query(Customer).filter(Customer.id == customer_id).first():
            raise ValidationError(f"Customer {customer_id} does not exist", fields={"customer_id": "not found"})
    else:
        customer_id = match_customer(db, required["customer_name"], required["phone_number"])

    now = clock()
    callback = CallbackRequest(
        customer_id=customer_id,
        customer_name=required["customer_name"],
        phone_number=required["phone_number"],
        subject=required["subject"],
        details=data.get("details"),
        priority=priority,
        assigned_to=assigned_to,
        status=CallbackStatus.PENDING,
        requested_at=now,
        notes=data.get("notes"),
    )
    db.add(callback)
    db.flush()

    task = build_task(db, companion_task_fields(callback, now), now=now)
    callback.related_task_id = task.id
    db.commit()
    db.refresh(callback)
    log.info("callback_created", callback_id=callback.id, task_id=task.id, customer_id=customer_id)

    best_effort(
        db, "callback_created_activity", record_activity,
        actor_id, "callback_created",
        entity_type="callback", entity_id=callback.id, metadata=_callback_meta(callback), timestamp=now,
    )
    notify_task_assignment(db, notifier, task)
    return callback


def update_callback(
    db: Session,
    callback_id: int,
    changes: Dict[str, Any],
    actor_id: Optional[int] = None,
    *,
    clock: Clock = utc_now,
    notifier: Optional[AssignmentNotifier] = None,
) -> CallbackRequest:
    callback = get_callback(db, callback_id)
    if callback.status == CallbackStatus.DELETED:
        raise InvalidStateError("Deleted callbacks must be restored before editing", current_state=callback.status.value)

    changes = dict(changes)
    for field in REQUIRED_FIELDS:
        if field in changes:
            if not isinstance(changes[field], str) or not changes[field].strip():
                raise ValidationError(f"{field} cannot be empty", fields={field: "required"})
            changes[field] = changes[field].strip()
    if "priority" in changes:
        changes["priority"] = parse_priority(changes["priority"])
    previous_assignee = callback.assigned_to
    if changes.get("assigned_to") is not None and changes["assigned_to"] != previous_assignee:
        if not db.query(User).filter(User.id == changes["assigned_to"]).first():
            raise ValidationError(f"User {changes['assigned_to']} does not exist", fields={"assigned_to": "not found"})

    changed = False
    for field in UPDATABLE_FIELDS:
        if field in changes and getattr(callback, field) != changes[field]:
            setattr(callback, field, changes[field])
            changed = True
    if not changed:
        return callback

    # An open companion task follows the callback's assignee and priority
    task = callback.related_task
    reassigned = callback.assigned_to is not None and callback.assigned_to != previous_assignee
    if task is not None and task.status != TaskStatus.COMPLETED:
        if task.assigned_to != callback.assigned_to or task.priority != callback.priority:
            task.assigned_to = callback.assigned_to
            task.priority = callback.priority
            task.updated_at = clock()
    db.commit()
    db.refresh(callback)

    if reassigned and task is not None and task.status != TaskStatus.COMPLETED:
        notify_task_assignment(db, notifier, task)
    return callback


def complete_callback(
    db: Session,
    callback_id: int,
    notes: Optional[str] = None,
    actor_id: Optional[int] = None,
    *,
    clock: Clock = utc_now,
) -> CallbackRequest:
    callback = get_callback(db, callback_id)
    if callback.status == CallbackStatus.DELETED:
        raise InvalidStateError("Cannot complete a deleted callback", current_state=callback.status.value)
    if callback.status == CallbackStatus.COMPLETED:
        return callback

    now = clock()
    callback.status = CallbackStatus.COMPLETED
    callback.completed_at = now
    if notes is not None and notes.strip():
        callback.notes = notes.strip()

    task = None
    if callback.related_task_id:
        task = db.query(Task).filter(Task.id == callback.related_task_id).first()
        if task is not None:
            apply_task_status(task, TaskStatus.COMPLETED, now)
    db.commit()
    db.refresh(callback)
    log.info("callback_completed", callback_id=callback.id, task_id=task.id if task else None)

    meta = _callback_meta(callback)
    meta["completion_notes"] = callback.notes
    best_effort(
        db, "callback_completed_activity", record_activity,
        actor_id, "callback_completed",
        entity_type="callback", entity_id=callback.id, metadata=meta, timestamp=now,
    )
    return callback


def soft_delete_callback(db: Session, callback_id: int, *, clock: Clock = utc_now) -> CallbackRequest:
    callback = get_callback(db, callback_id)
    if callback.status != CallbackStatus.PENDING:
        raise InvalidStateError(
            f"Only pending callbacks can be deleted (callback is {callback.status.value})",
            current_state=callback.status.value,
        )
    now = clock()
    callback.status = CallbackStatus.DELETED
    callback.deleted_at = now
    callback.delete_expires_at = now + delete_grace()
    db.commit()
    db.refresh(callback)
    log.info("callback_soft_deleted", callback_id=callback.id, expires_at=callback.delete_expires_at.isoformat())
    return callback


def restore_callback(db: Session, callback_id: int) -> CallbackRequest:
    callback = get_callback(db, callback_id)
    if callback.status != CallbackStatus.DELETED:
        raise InvalidStateError(
            f"Only deleted callbacks can be restored (callback is {callback.status.value})",
            current_state=callback.status.value,
        )
    callback.status = CallbackStatus.PENDING
    callback.deleted_at = None
    callback.delete_expires_at = None
    # Versioned UPDATE: raises StaleDataError if a purge removed the row first
    db.commit()
    db.refresh(callback)
    log.info("callback_restored", callback_id=callback.id)
    return callback


def permanently_delete_callback(db: Session, callback_id: int) -> None:
    callback = get_callback(db, callback_id)
    if callback.status != CallbackStatus.DELETED:
        raise InvalidStateError(
            "Callback must be deleted before it can be removed permanently",
            current_state=callback.status.value,
        )
    db.delete(callback)
    db.commit()
    log.info("callback_permanently_deleted", callback_id=callback_id)


def purge_expired_callbacks(db: Session, *, clock: Clock = utc_now) -> int:
    """Hard delete soft-deleted callbacks whose grace period has passed."""
    now = clock()
    count = (
        db.query(CallbackRequest)
        .filter(
            CallbackRequest.status == CallbackStatus.DELETED,
            CallbackRequest.delete_expires_at < now,
        )
        .delete(synchronize_session=False)
    )
    db.commit()
    log.info("callback_purged", count=count, cutoff=now.isoformat())
    return count

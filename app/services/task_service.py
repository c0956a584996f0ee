from datetime import datetime
from typing import Optional, Dict, Any, List

import structlog
from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError
from ..models.enums import OPEN_TASK_STATUSES, Priority, TaskStatus
from ..models.models import Task, User
from .activity import record_activity
from .clock import Clock, to_naive_utc, utc_now
from .notifications import AssignmentNotifier, wants_task_notifications
from .side_effects import best_effort


log = structlog.get_logger(__name__)

UPDATABLE_FIELDS = (
    "title",
    "description",
    "priority",
    "assigned_to",
    "due_date",
    "related_entity_type",
    "related_entity_id",
)


def parse_task_status(raw) -> TaskStatus:
    try:
        return TaskStatus.parse(raw)
    except ValueError as e:
        raise ValidationError(str(e), fields={"status": "unsupported task status"})


def parse_priority(raw) -> Priority:
    if raw is None:
        return Priority.MEDIUM
    try:
        return Priority(raw)
    except ValueError:
        raise ValidationError(
            f"Invalid priority: {raw}",
            fields={"priority": f"must be one of {', '.join(p.value for p in Priority)}"},
        )


def _resolve_user_display(db: Session, user_id: Optional[int]) -> Optional[str]:
    if not user_id:
        return None
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        return None
    return user.full_name or user.username


def _require_user(db: Session, user_id: int, field: str = "assigned_to") -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise ValidationError(f"User {user_id} does not exist", fields={field: "not found"})
    return user


def get_task(db: Session, task_id: int) -> Task:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise NotFoundError("Task", task_id)
    return task


def list_tasks(
    db: Session,
    assigned_to: Optional[int] = None,
    pending_only: bool = False,
    status: Optional[TaskStatus] = None,
) -> List[Task]:
    query = db.query(Task)
    if assigned_to is not None:
        query = query.filter(Task.assigned_to == assigned_to)
    if pending_only:
        query = query.filter(Task.status.in_(list(OPEN_TASK_STATUSES)))
    if status is not None:
        query = query.filter(Task.status == status)
    return query.order_by(Task.created_at.desc(), Task.id.desc()).all()


def apply_task_status(task: Task, status: TaskStatus, now: datetime) -> bool:
    """
    Set status and keep completed_at consistent with it. Returns False when
    nothing changed (redundant completion keeps the first completed_at).
    """
    if status == task.status:
        return False
    task.status = status
    task.completed_at = now if status == TaskStatus.COMPLETED else None
    task.updated_at = now
    return True


def notify_task_assignment(db: Session, notifier: AssignmentNotifier, task: Task) -> None:
    """Best-effort assignment notification honouring the assignee's preference."""
    if not task.assigned_to or notifier is None:
        return
    user = db.query(User).filter(User.id == task.assigned_to).first()
    if not wants_task_notifications(user):
        log.info("task_notification_skipped", task_id=task.id, user_id=task.assigned_to)
        return
    best_effort(
        db, "task_assignment_notification", lambda session: notifier.notify_assignment(
            session,
            user_id=user.id,
            email=user.email,
            full_name=user.full_name or user.username,
            task_id=task.id,
            title=task.title,
            description=task.description,
            due_date=task.due_date,
        ),
    )


def build_task(
    db: Session,
    data: Dict[str, Any],
    *,
    now: datetime,
) -> Task:
    """Validate and stage a new task without committing."""
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", fields={"title": "required"})
    if data.get("assigned_to") is not None:
        _require_user(db, data["assigned_to"])
    status = parse_task_status(data["status"]) if data.get("status") else TaskStatus.PENDING
    task = Task(
        title=title,
        description=data.get("description"),
        priority=parse_priority(data.get("priority")),
        status=status,
        assigned_to=data.get("assigned_to"),
        due_date=to_naive_utc(data.get("due_date")),
        related_entity_type=data.get("related_entity_type"),
        related_entity_id=data.get("related_entity_id"),
        created_at=now,
        completed_at=now if status == TaskStatus.COMPLETED else None,
    )
    db.add(task)
    db.flush()
    return task


def _task_meta(db: Session, task: Task) -> Dict[str, Any]:
    return {
        "task_title": task.title,
        "assigned_to": task.assigned_to,
        "assigned_to_name": _resolve_user_display(db, task.assigned_to),
        "priority": task.priority.value,
        "due_date": task.due_date.isoformat() if task.due_date else None,
    }


def create_task(
    db: Session,
    data: Dict[str, Any],
    actor_id: Optional[int] = None,
    *,
    notifier: Optional[AssignmentNotifier] = None,
    clock: Clock = utc_now,
) -> Task:
    now = clock()
    task = build_task(db, data, now=now)
    db.commit()
    db.refresh(task)
    log.info("task_created", task_id=task.id, assigned_to=task.assigned_to)

    best_effort(
        db, "task_created_activity", record_activity,
        actor_id, "task_created",
        entity_type="task", entity_id=task.id, metadata=_task_meta(db, task), timestamp=now,
    )
    notify_task_assignment(db, notifier, task)
    return task


def set_task_status(db: Session, task_id: int, new_status, actor_id: Optional[int] = None, *, clock: Clock = utc_now) -> Task:
    status = parse_task_status(new_status)
    task = get_task(db, task_id)
    previous = task.status
    now = clock()
    if not apply_task_status(task, status, now):
        return task
    db.commit()
    db.refresh(task)
    log.info("task_status_changed", task_id=task.id, old_status=previous.value, new_status=status.value)
    _record_status_activity(db, task, previous, actor_id, now)
    return task


def _record_status_activity(db: Session, task: Task, previous: TaskStatus, actor_id: Optional[int], now: datetime, changed_fields=None) -> None:
    meta = {"task_title": task.title, "old_status": previous.value, "new_status": task.status.value}
    if task.status == TaskStatus.COMPLETED and previous != TaskStatus.COMPLETED:
        activity_type = "task_completed"
    else:
        activity_type = "task_updated"
        if changed_fields:
            meta["changes"] = ", ".join(changed_fields)
    best_effort(
        db, f"{activity_type}_activity", record_activity,
        actor_id, activity_type,
        entity_type="task", entity_id=task.id, metadata=meta, timestamp=now,
    )


def update_task(
    db: Session,
    task_id: int,
    changes: Dict[str, Any],
    actor_id: Optional[int] = None,
    *,
    notifier: Optional[AssignmentNotifier] = None,
    clock: Clock = utc_now,
) -> Task:
    task = get_task(db, task_id)
    changes = dict(changes)
    previous_status = task.status
    previous_assignee = task.assigned_to
    previous_title = task.title
    now = clock()

    if "title" in changes and not (changes["title"] or "").strip():
        raise ValidationError("title cannot be empty", fields={"title": "required"})
    if "title" in changes:
        changes["title"] = changes["title"].strip()
    if "priority" in changes:
        changes["priority"] = parse_priority(changes["priority"])
    if "due_date" in changes:
        changes["due_date"] = to_naive_utc(changes["due_date"])
    if changes.get("assigned_to") is not None and changes["assigned_to"] != previous_assignee:
        _require_user(db, changes["assigned_to"])
    new_status = None
    if "status" in changes:
        if changes["status"] is None:
            raise ValidationError("status cannot be null", fields={"status": "required"})
        new_status = parse_task_status(changes["status"])

    changed_fields = []
    for field in UPDATABLE_FIELDS:
        if field in changes and getattr(task, field) != changes[field]:
            setattr(task, field, changes[field])
            changed_fields.append(field)
    if new_status is not None and apply_task_status(task, new_status, now):
        changed_fields.append("status")

    if not changed_fields:
        return task
    task.updated_at = now
    db.commit()
    db.refresh(task)

    if task.status != previous_status or task.title != previous_title:
        _record_status_activity(db, task, previous_status, actor_id, now, changed_fields)
    if task.assigned_to is not None and task.assigned_to != previous_assignee:
        notify_task_assignment(db, notifier, task)
    return task


def delete_task(db: Session, task_id: int) -> None:
    task = get_task(db, task_id)
    db.delete(task)
    db.commit()

"""
Activity log service.
Append-only feed of what happened in the workshop, shown on the dashboard.
"""
from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from ..models.models import Activity
from .clock import utc_now


def describe_activity(
    activity_type: str,
    entity_type: Optional[str],
    entity_id: Optional[int],
    meta: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Human readable description for an activity.

    Args:
        activity_type: Activity type (job_created|job_completed|task_created|callback_created|...)
        entity_type: Type of entity (job|task|callback|customer|equipment|order)
        entity_id: Entity ID, used when the metadata carries no better label
        meta: Activity metadata (job_code, customer_name, task_title, phone, ...)

    Returns:
        Description string
    """
    meta = meta or {}
    job_ref = meta.get("job_code") or entity_id
    customer = meta.get("customer_name")
    for_customer = f" for {customer}" if customer else ""

    if activity_type == "job_created":
        return f"Created new job {job_ref}{for_customer}"
    if activity_type == "job_updated":
        changes = meta.get("changes")
        return f"Updated job {job_ref}" + (f" - {changes}" if changes else "")
    if activity_type == "job_completed":
        return f"Completed job {job_ref}{for_customer}"
    if activity_type == "job_started":
        return f"Job {job_ref} work has started"
    if activity_type == "job_received":
        return f"Parts ordered for job {job_ref}"
    if activity_type == "customer_created":
        return f"Added new customer: {customer or 'Unknown'}"
    if activity_type == "customer_updated":
        return f"Updated customer: {customer or entity_id}"
    if activity_type == "task_created":
        title = meta.get("task_title") or entity_id
        assignee = meta.get("assigned_to_name")
        return f"Created task: {title}" + (f" (assigned to {assignee})" if assignee else "")
    if activity_type == "task_updated":
        return f"Updated task: {meta.get('task_title') or entity_id}"
    if activity_type == "task_completed":
        return f"Completed task: {meta.get('task_title') or entity_id}"
    if activity_type == "callback_created":
        phone = meta.get("phone")
        return f"New callback request from {customer or 'customer'}" + (f" ({phone})" if phone else "")
    if activity_type == "callback_completed":
        return f"Completed callback for {customer or 'customer'}"
    if activity_type == "service_added":
        return f"Added service to job {job_ref}: {meta.get('service_type') or 'Service'}"
    if activity_type == "equipment_created":
        return f"Added equipment: {meta.get('equipment_name') or entity_id}"
    if activity_type == "equipment_deleted":
        return f"Deleted equipment: {meta.get('equipment_name') or entity_id}"
    if activity_type == "order_created":
        return f"Created order {meta.get('order_number') or entity_id}{for_customer}"
    if activity_type == "order_status_changed":
        return f"Order {meta.get('order_number') or entity_id} is now {meta.get('new_status')}"
    return f"{activity_type.replace('_', ' ')} - {entity_type or ''} {entity_id or ''}".strip()


def record_activity(
    db: Session,
    user_id: Optional[int],
    activity_type: str,
    description: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> Activity:
    """
    Append an activity entry. Caller commits (normally through best_effort).
    """
    activity = Activity(
        user_id=user_id,
        activity_type=activity_type,
        description=description or describe_activity(activity_type, entity_type, entity_id, metadata),
        entity_type=entity_type,
        entity_id=entity_id,
        timestamp=timestamp or utc_now(),
        metadata_json=metadata,
    )
    db.add(activity)
    db.flush()
    return activity


def get_recent_activities(db: Session, limit: int = 50, offset: int = 0) -> List[Activity]:
    return (
        db.query(Activity)
        .order_by(Activity.timestamp.desc(), Activity.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def get_activities_for_entity(db: Session, entity_type: str, entity_id: int) -> List[Activity]:
    return (
        db.query(Activity)
        .filter(Activity.entity_type == entity_type, Activity.entity_id == entity_id)
        .order_by(Activity.timestamp.desc(), Activity.id.desc())
        .all()
    )


def get_activities_for_user(db: Session, user_id: int, limit: int = 50) -> List[Activity]:
    return (
        db.query(Activity)
        .filter(Activity.user_id == user_id)
        .order_by(Activity.timestamp.desc(), Activity.id.desc())
        .limit(limit)
        .all()
    )

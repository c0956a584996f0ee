"""
Dashboard and callback analytics.

Everything here is a pure function over already loaded rows; callers pass
``now`` and the business timezone so results are reproducible.
"""
from collections import Counter
from datetime import datetime, time, timedelta, timezone
from typing import Iterable, Optional, Tuple, Dict, Any, List

import pytz

from ..models.enums import CallbackStatus, JobStatus, OPEN_TASK_STATUSES, Priority, TaskStatus
from .clock import as_utc, to_local

INACTIVE_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED})
TREND_DAYS = 30

DateRange = Tuple[Optional[datetime], Optional[datetime]]


def _round(value: Optional[float], digits: int = 1) -> Optional[float]:
    if value is None:
        return None
    return round(value, digits)


def _hours(start: datetime, end: datetime) -> float:
    return (as_utc(end) - as_utc(start)).total_seconds() / 3600


def week_start(now: datetime, tz: str) -> datetime:
    """Most recent Sunday 00:00 in ``tz``, as an aware UTC datetime."""
    local = to_local(now, tz)
    days_since_sunday = (local.weekday() + 1) % 7
    sunday = local.date() - timedelta(days=days_since_sunday)
    start = pytz.timezone(tz).localize(datetime.combine(sunday, time.min))
    return start.astimezone(timezone.utc)


def _equipment_type_name(job) -> Optional[str]:
    equipment = getattr(job, "equipment", None)
    if equipment is None:
        return None
    equipment_type = getattr(equipment, "equipment_type", None)
    if equipment_type is None:
        return None
    return equipment_type.name


def summarize(jobs: Iterable, tasks: Iterable, customers: Iterable, *, now: datetime, tz: str, user_id: Optional[int] = None) -> Dict[str, Any]:
    jobs = list(jobs)
    tasks = list(tasks)
    customers = list(customers)

    active_jobs = sum(1 for j in jobs if JobStatus(j.status) not in INACTIVE_JOB_STATUSES)

    pending_tasks = 0
    for task in tasks:
        if TaskStatus(task.status) not in OPEN_TASK_STATUSES:
            continue
        if user_id is None and task.assigned_to is not None:
            pending_tasks += 1
        elif user_id is not None and task.assigned_to == user_id:
            pending_tasks += 1

    since = week_start(now, tz)
    completed_this_week = sum(
        1 for j in jobs
        if j.status == JobStatus.COMPLETED and j.completed_at and as_utc(j.completed_at) >= since
    )

    repair_days = [
        (as_utc(j.completed_at) - as_utc(j.created_at)).total_seconds() / 86400
        for j in jobs
        if j.completed_at and j.created_at
    ]
    avg_repair_time_days = round(sum(repair_days) / len(repair_days), 1) if repair_days else 0

    by_type = Counter(name for name in (_equipment_type_name(j) for j in jobs) if name)
    jobs_by_equipment_type = [{"name": name, "count": by_type[name]} for name in sorted(by_type)]

    status_counts = Counter(JobStatus(j.status) for j in jobs)
    jobs_by_status = [
        {"status": status.value, "name": status.label, "count": status_counts.get(status, 0)}
        for status in JobStatus
    ]

    return {
        "active_jobs": active_jobs,
        "total_customers": len(customers),
        "pending_tasks": pending_tasks,
        "completed_this_week": completed_this_week,
        "avg_repair_time_days": avg_repair_time_days,
        "jobs_by_status": jobs_by_status,
        "jobs_by_equipment_type": jobs_by_equipment_type,
    }


def _in_range(callback, date_range: Optional[DateRange]) -> bool:
    if not date_range:
        return True
    start, end = date_range
    requested = as_utc(callback.requested_at)
    if start is not None and requested < as_utc(start):
        return False
    if end is not None and requested > as_utc(end):
        return False
    return True


def _priority_counts(callbacks: List) -> Dict[str, int]:
    counts = Counter(Priority(cb.priority) for cb in callbacks)
    return {p.value: counts.get(p, 0) for p in Priority}


def _completion_hours(callbacks: List) -> List[float]:
    return [
        _hours(cb.requested_at, cb.completed_at)
        for cb in callbacks
        if cb.status == CallbackStatus.COMPLETED and cb.completed_at and cb.requested_at
    ]


def _completion_rate(completed: int, total: int) -> float:
    if not total:
        return 0.0
    return round(completed / total * 100, 1)


def _daily_trends(callbacks: List, now: datetime, tz: str) -> List[Dict[str, Any]]:
    today = to_local(now, tz).date()
    days = [today - timedelta(days=offset) for offset in range(TREND_DAYS - 1, -1, -1)]
    created = Counter(to_local(cb.requested_at, tz).date() for cb in callbacks if cb.requested_at)
    completed = Counter(
        to_local(cb.completed_at, tz).date()
        for cb in callbacks
        if cb.status == CallbackStatus.COMPLETED and cb.completed_at
    )
    return [
        {"date": day.isoformat(), "created": created.get(day, 0), "completed": completed.get(day, 0)}
        for day in days
    ]


def summarize_callbacks(
    callbacks: Iterable,
    staff_list: Iterable,
    date_range: Optional[DateRange] = None,
    *,
    now: datetime,
    tz: str,
) -> Dict[str, Any]:
    rows = [cb for cb in callbacks if _in_range(cb, date_range)]
    names = {s.id: (getattr(s, "full_name", None) or getattr(s, "username", None)) for s in staff_list}

    completed = sum(1 for cb in rows if cb.status == CallbackStatus.COMPLETED)
    pending = sum(1 for cb in rows if cb.status == CallbackStatus.PENDING)
    archived = sum(1 for cb in rows if cb.status == CallbackStatus.DELETED)
    hours = _completion_hours(rows)

    by_staff: Dict[int, List] = {}
    for cb in rows:
        if cb.assigned_to is not None:
            by_staff.setdefault(cb.assigned_to, []).append(cb)

    staff_performance = []
    for staff_id in sorted(by_staff):
        assigned = by_staff[staff_id]
        staff_completed = sum(1 for cb in assigned if cb.status == CallbackStatus.COMPLETED)
        staff_hours = _completion_hours(assigned)
        staff_performance.append({
            "staff_id": staff_id,
            "staff_name": names.get(staff_id) or f"User {staff_id}",
            "total": len(assigned),
            "completed": staff_completed,
            "pending": sum(1 for cb in assigned if cb.status == CallbackStatus.PENDING),
            "completion_rate": _completion_rate(staff_completed, len(assigned)),
            "avg_completion_time_hours": _round(sum(staff_hours) / len(staff_hours)) if staff_hours else None,
            "longest_completion_time_hours": _round(max(staff_hours)) if staff_hours else None,
            "priority_breakdown": _priority_counts(assigned),
        })

    start, end = date_range if date_range else (None, None)
    return {
        "summary": {
            "total": len(rows),
            "completed": completed,
            "pending": pending,
            "completion_rate": _completion_rate(completed, len(rows)),
            "avg_completion_time_hours": _round(sum(hours) / len(hours)) if hours else None,
            "longest_completion_time_hours": _round(max(hours)) if hours else None,
        },
        "staff_performance": staff_performance,
        "status_breakdown": {"pending": pending, "completed": completed, "archived": archived},
        "priority_breakdown": _priority_counts(rows),
        "daily_trends": _daily_trends(rows, now, tz),
        "date_range": {
            "from": as_utc(start).isoformat() if start else None,
            "to": as_utc(end).isoformat() if end else None,
        },
    }

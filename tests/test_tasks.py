from datetime import datetime, timedelta, timezone

import pytest

from app.errors import ValidationError
from app.models.enums import Priority, TaskStatus
from app.models.models import Activity
from app.services import task_service


def test_create_task_defaults(db, admin, clock):
    task = task_service.create_task(db, {"title": "  Order blades  "}, 1, clock=clock)

    assert task.title == "Order blades"
    assert task.status == TaskStatus.PENDING
    assert task.priority == Priority.MEDIUM
    assert task.completed_at is None
    assert task.created_at == clock.now


def test_create_task_requires_title(db, admin, clock):
    with pytest.raises(ValidationError) as exc:
        task_service.create_task(db, {"title": "   "}, 1, clock=clock)
    assert exc.value.fields == {"title": "required"}


def test_create_task_rejects_unknown_assignee(db, admin, clock):
    with pytest.raises(ValidationError):
        task_service.create_task(db, {"title": "Sweep", "assigned_to": 55}, 1, clock=clock)


@pytest.mark.parametrize("raw,expected", [
    ("todo", TaskStatus.PENDING),
    ("In Progress", TaskStatus.IN_PROGRESS),
    ("inprogress", TaskStatus.IN_PROGRESS),
    ("in review", TaskStatus.REVIEW),
    ("done", TaskStatus.COMPLETED),
])
def test_legacy_status_spellings_are_normalised(db, admin, clock, raw, expected):
    task = task_service.create_task(db, {"title": "Legacy", "status": raw}, 1, clock=clock)
    assert task.status == expected


def test_unknown_status_is_rejected(db, admin, clock):
    task = task_service.create_task(db, {"title": "Sweep"}, 1, clock=clock)
    with pytest.raises(ValidationError):
        task_service.set_task_status(db, task.id, "someday", 1, clock=clock)


def test_complete_twice_keeps_first_completed_at(db, admin, clock):
    task = task_service.create_task(db, {"title": "Sweep"}, 1, clock=clock)
    first = clock.advance(hours=1)
    task_service.set_task_status(db, task.id, "completed", 1, clock=clock)
    clock.advance(hours=5)
    task = task_service.set_task_status(db, task.id, "completed", 1, clock=clock)

    assert task.completed_at == first
    completions = db.query(Activity).filter(Activity.activity_type == "task_completed").count()
    assert completions == 1


def test_reopen_clears_completed_at(db, admin, clock):
    task = task_service.create_task(db, {"title": "Sweep", "status": "completed"}, 1, clock=clock)
    assert task.completed_at == clock.now

    task = task_service.set_task_status(db, task.id, "in_progress", 1, clock=clock)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.completed_at is None


def test_update_task_validates_status_before_changing_fields(db, admin, clock):
    task = task_service.create_task(db, {"title": "Sweep"}, 1, clock=clock)
    with pytest.raises(ValidationError):
        task_service.update_task(db, task.id, {"title": "Mop", "status": "later"}, 1, clock=clock)

    db.rollback()
    assert task_service.get_task(db, task.id).title == "Sweep"


def test_update_task_status_and_title(db, admin, clock):
    task = task_service.create_task(db, {"title": "Sweep"}, 1, clock=clock)
    clock.advance(minutes=30)
    task = task_service.update_task(db, task.id, {"title": "Sweep floor", "status": "done"}, 1, clock=clock)

    assert task.title == "Sweep floor"
    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at == clock.now
    assert task.updated_at == clock.now


def test_assignment_notifies_assignee(db, admin, mechanic, clock, notifier):
    due = clock.now + timedelta(days=1)
    task = task_service.create_task(
        db, {"title": "Service mower", "assigned_to": mechanic.id, "due_date": due}, 1,
        notifier=notifier, clock=clock,
    )

    assert len(notifier.sent) == 1
    sent = notifier.sent[0]
    assert sent["user_id"] == mechanic.id
    assert sent["email"] == "mike@example.com"
    assert sent["full_name"] == "Mike Mechanic"
    assert sent["task_id"] == task.id
    assert sent["due_date"] == due


def test_assignment_respects_opt_out(db, admin, mechanic, clock, notifier):
    mechanic.task_notifications = False
    db.commit()

    task_service.create_task(db, {"title": "Service mower", "assigned_to": mechanic.id}, 1, notifier=notifier, clock=clock)
    assert notifier.sent == []


def test_reassignment_notifies_new_assignee_only(db, admin, mechanic, clock, notifier):
    task = task_service.create_task(db, {"title": "Service mower"}, 1, notifier=notifier, clock=clock)
    assert notifier.sent == []

    task_service.update_task(db, task.id, {"assigned_to": mechanic.id}, 1, notifier=notifier, clock=clock)
    task_service.update_task(db, task.id, {"description": "Check the pull cord"}, 1, notifier=notifier, clock=clock)
    assert [n["user_id"] for n in notifier.sent] == [mechanic.id]


def test_notifier_failure_does_not_fail_task(db, admin, mechanic, clock):
    class BrokenNotifier:
        def notify_assignment(self, db, **kwargs):
            raise ConnectionError("smtp down")

    task = task_service.create_task(
        db, {"title": "Service mower", "assigned_to": mechanic.id}, 1,
        notifier=BrokenNotifier(), clock=clock,
    )
    assert task_service.get_task(db, task.id).assigned_to == mechanic.id


def test_pending_filter(db, admin, mechanic, clock):
    task_service.create_task(db, {"title": "A", "assigned_to": mechanic.id}, 1, clock=clock)
    task_service.create_task(db, {"title": "B", "assigned_to": mechanic.id, "status": "review"}, 1, clock=clock)
    task_service.create_task(db, {"title": "C", "assigned_to": mechanic.id, "status": "completed"}, 1, clock=clock)
    task_service.create_task(db, {"title": "D"}, 1, clock=clock)

    pending = task_service.list_tasks(db, assigned_to=mechanic.id, pending_only=True)
    assert sorted(t.title for t in pending) == ["A", "B"]


def test_due_date_with_offset_is_stored_as_utc(db, admin, clock):
    due = datetime(2024, 3, 20, 10, 0, tzinfo=timezone(timedelta(hours=2)))
    task = task_service.create_task(db, {"title": "Collect mower", "due_date": due}, 1, clock=clock)
    assert task.due_date == datetime(2024, 3, 20, 8, 0)

    later = datetime(2024, 3, 21, 9, 30, tzinfo=timezone(timedelta(hours=-5)))
    task = task_service.update_task(db, task.id, {"due_date": later}, 1, clock=clock)
    assert task.due_date == datetime(2024, 3, 21, 14, 30)

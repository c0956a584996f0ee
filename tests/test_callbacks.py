from datetime import timedelta

import pytest

from app.errors import InvalidStateError, ValidationError
from app.models.enums import CallbackStatus, Priority, TaskStatus
from app.models.models import Activity, CallbackRequest, Task
from app.services import callback_service


JANE = {
    "customer_name": "Jane Doe",
    "phone_number": "555-1212",
    "subject": "Quote follow-up",
    "priority": "high",
    "assigned_to": 7,
}


def _create(db, clock, notifier=None, **overrides):
    data = dict(JANE)
    data.update(overrides)
    return callback_service.create_callback(db, data, 1, clock=clock, notifier=notifier)


def _find(db, callback_id):
    return db.query(CallbackRequest).filter(CallbackRequest.id == callback_id).first()


def test_create_callback_creates_companion_task(db, admin, mechanic, clock):
    callback = _create(db, clock)

    assert callback.status == CallbackStatus.PENDING
    assert callback.related_task_id is not None
    assert callback.requested_at == clock.now

    task = db.query(Task).filter(Task.id == callback.related_task_id).one()
    assert task.priority == Priority.HIGH
    assert task.status == TaskStatus.PENDING
    assert task.assigned_to == 7
    assert task.due_date == clock.now + timedelta(hours=24)
    assert task.related_entity_type == "callback"
    assert task.related_entity_id == callback.id
    assert task.title == "Customer Callback Request: Quote follow-up"


def test_create_callback_reports_every_missing_field(db, admin, clock):
    with pytest.raises(ValidationError) as exc:
        callback_service.create_callback(db, {"customer_name": "Jane Doe"}, 1, clock=clock)
    assert exc.value.fields == {"phone_number": "required", "subject": "required"}
    assert db.query(Task).count() == 0


def test_create_callback_links_existing_customer(db, admin, mechanic, customer, clock):
    by_name = _create(db, clock)
    by_phone = _create(db, clock, customer_name="J. Doe", phone_number="(555) 1212")
    stranger = _create(db, clock, customer_name="Sam Smith", phone_number="555-9999")

    assert by_name.customer_id == customer.id
    assert by_phone.customer_id == customer.id
    assert stranger.customer_id is None


def test_create_callback_records_activity_and_notifies(db, admin, mechanic, clock, notifier):
    callback = _create(db, clock, notifier=notifier)

    activity = db.query(Activity).filter(Activity.activity_type == "callback_created").one()
    assert activity.entity_id == callback.id
    assert activity.description == "New callback request from Jane Doe (555-1212)"
    assert [n["task_id"] for n in notifier.sent] == [callback.related_task_id]


def test_complete_callback_completes_task(db, admin, mechanic, clock):
    callback = _create(db, clock)
    completed_at = clock.advance(hours=3)

    callback = callback_service.complete_callback(db, callback.id, "Resolved, quote sent", 1, clock=clock)
    assert callback.status == CallbackStatus.COMPLETED
    assert callback.completed_at == completed_at
    assert callback.notes == "Resolved, quote sent"

    task = db.query(Task).filter(Task.id == callback.related_task_id).one()
    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at == completed_at


def test_complete_callback_twice_is_noop(db, admin, mechanic, clock):
    callback = _create(db, clock)
    first = clock.advance(hours=1)
    callback_service.complete_callback(db, callback.id, "Called back", 1, clock=clock)
    clock.advance(hours=1)
    callback = callback_service.complete_callback(db, callback.id, "Again", 1, clock=clock)

    assert callback.completed_at == first
    assert callback.notes == "Called back"
    assert db.query(Activity).filter(Activity.activity_type == "callback_completed").count() == 1


def test_complete_callback_keeps_notes_when_none_given(db, admin, mechanic, clock):
    callback = _create(db, clock, notes="Prefers mornings")
    callback = callback_service.complete_callback(db, callback.id, None, 1, clock=clock)
    assert callback.notes == "Prefers mornings"


def test_deleted_callback_cannot_be_completed(db, admin, mechanic, clock):
    callback = _create(db, clock)
    callback_service.soft_delete_callback(db, callback.id, clock=clock)
    with pytest.raises(InvalidStateError) as exc:
        callback_service.complete_callback(db, callback.id, None, 1, clock=clock)
    assert exc.value.current_state == "deleted"


def test_soft_delete_sets_grace_period(db, admin, mechanic, clock):
    callback = _create(db, clock)
    deleted_at = clock.advance(minutes=10)
    callback = callback_service.soft_delete_callback(db, callback.id, clock=clock)

    assert callback.status == CallbackStatus.DELETED
    assert callback.deleted_at == deleted_at
    assert callback.delete_expires_at == deleted_at + timedelta(hours=24)
    assert callback_service.list_callbacks(db) == []
    assert [c.id for c in callback_service.list_deleted_callbacks(db)] == [callback.id]


def test_soft_delete_then_restore_round_trip(db, admin, mechanic, clock):
    callback = _create(db, clock, details="Wants a quote for a new chainsaw")
    before = {
        field: getattr(callback, field)
        for field in ("customer_name", "phone_number", "subject", "details", "priority",
                      "assigned_to", "related_task_id", "requested_at", "notes", "completed_at")
    }

    callback_service.soft_delete_callback(db, callback.id, clock=clock)
    callback = callback_service.restore_callback(db, callback.id)

    assert callback.status == CallbackStatus.PENDING
    assert callback.deleted_at is None
    assert callback.delete_expires_at is None
    for field, value in before.items():
        assert getattr(callback, field) == value


def test_only_pending_callbacks_can_be_deleted(db, admin, mechanic, clock):
    callback = _create(db, clock)
    callback_service.complete_callback(db, callback.id, None, 1, clock=clock)
    with pytest.raises(InvalidStateError):
        callback_service.soft_delete_callback(db, callback.id, clock=clock)


def test_restore_requires_deleted(db, admin, mechanic, clock):
    callback = _create(db, clock)
    with pytest.raises(InvalidStateError):
        callback_service.restore_callback(db, callback.id)


def test_permanent_delete_requires_deleted(db, admin, mechanic, clock):
    callback = _create(db, clock)
    with pytest.raises(InvalidStateError):
        callback_service.permanently_delete_callback(db, callback.id)

    callback_id = callback.id
    callback_service.soft_delete_callback(db, callback_id, clock=clock)
    callback_service.permanently_delete_callback(db, callback_id)
    assert _find(db, callback_id) is None


def test_purge_respects_expiry(db, admin, mechanic, clock):
    expired = _create(db, clock, subject="Old")
    fresh = _create(db, clock, subject="New")
    live = _create(db, clock, subject="Live")
    expired_id, fresh_id, live_id = expired.id, fresh.id, live.id

    callback_service.soft_delete_callback(db, expired_id, clock=clock)
    clock.advance(hours=20)
    callback_service.soft_delete_callback(db, fresh_id, clock=clock)
    clock.advance(hours=5)

    purged = callback_service.purge_expired_callbacks(db, clock=clock)
    assert purged == 1
    db.expire_all()
    assert _find(db, expired_id) is None
    assert _find(db, fresh_id).status == CallbackStatus.DELETED
    assert _find(db, live_id).status == CallbackStatus.PENDING


def test_purge_keeps_callback_expiring_right_now(db, admin, mechanic, clock):
    callback = _create(db, clock)
    callback_service.soft_delete_callback(db, callback.id, clock=clock)
    clock.advance(hours=24)

    assert callback_service.purge_expired_callbacks(db, clock=clock) == 0
    clock.advance(seconds=1)
    assert callback_service.purge_expired_callbacks(db, clock=clock) == 1


def test_update_callback_syncs_open_task(db, admin, mechanic, clock, notifier):
    callback = _create(db, clock, assigned_to=None, priority="low")
    callback = callback_service.update_callback(
        db, callback.id, {"assigned_to": mechanic.id, "priority": "urgent"}, 1,
        clock=clock, notifier=notifier,
    )

    task = db.query(Task).filter(Task.id == callback.related_task_id).one()
    assert task.assigned_to == mechanic.id
    assert task.priority == Priority.URGENT
    assert [n["user_id"] for n in notifier.sent] == [mechanic.id]


def test_update_deleted_callback_is_rejected(db, admin, mechanic, clock):
    callback = _create(db, clock)
    callback_service.soft_delete_callback(db, callback.id, clock=clock)
    with pytest.raises(InvalidStateError):
        callback_service.update_callback(db, callback.id, {"subject": "Changed"}, 1, clock=clock)

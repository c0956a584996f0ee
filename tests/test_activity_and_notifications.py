from datetime import datetime

from app.models.enums import NotificationStatus
from app.models.models import Activity, Notification
from app.services import notifications
from app.services.activity import describe_activity, get_recent_activities, record_activity
from app.services.side_effects import best_effort


def test_describe_known_activities():
    assert describe_activity("job_completed", "job", 3, {"job_code": "WS-1003", "customer_name": "Jane Doe"}) == \
        "Completed job WS-1003 for Jane Doe"
    assert describe_activity("task_created", "task", 9, {"task_title": "Sharpen", "assigned_to_name": "Mike"}) == \
        "Created task: Sharpen (assigned to Mike)"
    assert describe_activity("order_status_changed", "order", 2, {"order_number": "ORD-1002", "new_status": "arrived"}) == \
        "Order ORD-1002 is now arrived"
    assert describe_activity("job_started", "job", 5, {"job_code": "WS-1005"}) == "Job WS-1005 work has started"


def test_describe_unknown_activity_falls_back():
    assert describe_activity("stock_counted", "inventory", 4) == "stock counted - inventory 4"


def test_recent_activities_newest_first(db, admin):
    record_activity(db, 1, "customer_created", entity_type="customer", entity_id=1,
                    metadata={"customer_name": "A"}, timestamp=datetime(2024, 1, 1))
    record_activity(db, 1, "customer_created", entity_type="customer", entity_id=2,
                    metadata={"customer_name": "B"}, timestamp=datetime(2024, 1, 2))
    db.commit()

    descriptions = [a.description for a in get_recent_activities(db, limit=10)]
    assert descriptions == ["Added new customer: B", "Added new customer: A"]


def test_best_effort_swallows_and_rolls_back(db, admin):
    def half_written(session):
        record_activity(session, 1, "customer_created", metadata={"customer_name": "Ghost"})
        raise RuntimeError("disk full")

    assert best_effort(db, "ghost", half_written) is None
    assert db.query(Activity).count() == 0


def test_outbox_notifier_marks_skipped_without_smtp(db, admin, mechanic, clock):
    notifier = notifications.OutboxNotifier(clock=clock)
    notification = notifier.notify_assignment(
        db, user_id=mechanic.id, email=mechanic.email, full_name=mechanic.full_name,
        task_id=5, title="Service mower",
    )
    db.commit()

    row = db.query(Notification).one()
    assert row.id == notification.id
    assert row.template_key == "task_assigned"
    assert row.status == NotificationStatus.SKIPPED
    assert row.payload_json["task_id"] == 5


def test_outbox_notifier_records_smtp_failure(db, admin, mechanic, clock, monkeypatch):
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("no smtp")

    monkeypatch.setattr(notifications, "email_enabled", lambda: True)
    monkeypatch.setattr(notifications, "send_email", refuse)
    notifier = notifications.OutboxNotifier(clock=clock)
    notification = notifier.notify_assignment(
        db, user_id=mechanic.id, email=mechanic.email, full_name=mechanic.full_name,
        task_id=5, title="Service mower",
    )

    assert notification.status == NotificationStatus.FAILED
    assert notification.error_message == "no smtp"


def test_outbox_notifier_marks_sent(db, admin, mechanic, clock, monkeypatch):
    sent = []
    monkeypatch.setattr(notifications, "email_enabled", lambda: True)
    monkeypatch.setattr(notifications, "send_email", lambda to, subject, body: sent.append((to, subject)))
    notification = notifications.OutboxNotifier(clock=clock).notify_assignment(
        db, user_id=mechanic.id, email=mechanic.email, full_name=mechanic.full_name,
        task_id=5, title="Service mower",
    )

    assert notification.status == NotificationStatus.SENT
    assert notification.sent_at == clock.now
    assert sent == [("mike@example.com", "New task assigned: Service mower")]


def test_preference_defaults_to_opted_in(mechanic):
    mechanic.task_notifications = None
    assert notifications.wants_task_notifications(mechanic) is True
    mechanic.is_active = False
    assert notifications.wants_task_notifications(mechanic) is False

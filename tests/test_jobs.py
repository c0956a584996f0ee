import pytest

from app.errors import NotFoundError, ValidationError
from app.models.enums import JobStatus
from app.models.models import Activity, Job, JobUpdate
from app.services import codes, job_service


def _new_job(db, customer, clock, **extra):
    data = {"customer_id": customer.id, "description": "  Mower will not start  "}
    data.update(extra)
    return job_service.create_job(db, data, 1, clock=clock)


def test_create_job_assigns_sequential_codes(db, admin, customer, clock):
    first = _new_job(db, customer, clock)
    second = _new_job(db, customer, clock)

    assert first.job_code == "WS-1000"
    assert second.job_code == "WS-1001"
    assert first.status == JobStatus.WAITING_ASSESSMENT
    assert first.completed_at is None
    assert first.description == "Mower will not start"
    assert first.created_at == clock.now


def test_create_job_with_assignee_starts_work(db, admin, mechanic, customer, clock):
    job = _new_job(db, customer, clock, assigned_to=mechanic.id)
    assert job.status == JobStatus.IN_PROGRESS


def test_create_job_rejects_unknown_customer(db, admin, clock):
    with pytest.raises(ValidationError) as exc:
        job_service.create_job(db, {"customer_id": 999, "description": "x"}, 1, clock=clock)
    assert exc.value.fields == {"customer_id": "not found"}


def test_create_job_records_activity(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    activity = db.query(Activity).filter(Activity.activity_type == "job_created").one()
    assert activity.entity_id == job.id
    assert activity.description == "Created new job WS-1000 for Jane Doe"


def test_activity_failure_does_not_undo_job(db, admin, customer, clock, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("activity table is locked")

    monkeypatch.setattr(job_service, "record_activity", boom)
    job = _new_job(db, customer, clock)

    assert job_service.get_job(db, job.id).job_code == "WS-1000"
    assert db.query(Activity).count() == 0


def test_completed_at_follows_status(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    clock.advance(hours=3)

    job = job_service.transition_job(db, job.id, "completed", 1, clock=clock)
    assert job.status == JobStatus.COMPLETED
    assert job.completed_at == clock.now

    clock.advance(hours=1)
    job = job_service.transition_job(db, job.id, "in_progress", 1, clock=clock)
    assert job.status == JobStatus.IN_PROGRESS
    assert job.completed_at is None


def test_transition_appends_status_note(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    job_service.transition_job(db, job.id, JobStatus.READY_FOR_PICKUP, 1, clock=clock)

    notes = [u.note for u in job_service.list_job_updates(db, job.id)]
    assert notes == ['Status changed from "Waiting Assessment" to "Ready for Pickup"']


def test_transition_to_same_status_is_noop(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    job_service.transition_job(db, job.id, JobStatus.WAITING_ASSESSMENT, 1, clock=clock)

    assert db.query(JobUpdate).count() == 0
    assert db.query(Activity).filter(Activity.entity_type == "job").count() == 1


def test_transition_rejects_unknown_status(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    with pytest.raises(ValidationError):
        job_service.transition_job(db, job.id, "on_fire", 1, clock=clock)


def test_only_some_statuses_reach_activity_feed(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    for status in ("in_progress", "parts_ordered", "ready_for_pickup", "cancelled", "waiting_assessment", "completed"):
        job_service.transition_job(db, job.id, status, 1, clock=clock)

    types = [a.activity_type for a in db.query(Activity).order_by(Activity.id).all()]
    assert types == ["job_created", "job_started", "job_received", "job_completed"]


def test_transition_without_actor_uses_system_user(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    job_service.transition_job(db, job.id, "in_progress", None, clock=clock)

    update = db.query(JobUpdate).one()
    assert update.created_by == 1


def test_transition_without_actor_prefers_assignee(db, admin, mechanic, customer, clock):
    job = _new_job(db, customer, clock, assigned_to=mechanic.id)
    job_service.transition_job(db, job.id, "completed", None, clock=clock)

    update = db.query(JobUpdate).one()
    assert update.created_by == mechanic.id


def test_transition_unknown_job(db, admin, clock):
    with pytest.raises(NotFoundError):
        job_service.transition_job(db, 42, "completed", 1, clock=clock)


def test_time_in_status(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    entered_at = clock.advance(hours=6)
    job_service.transition_job(db, job.id, "parts_ordered", 1, clock=clock)
    clock.advance(days=2)

    entered, days = job_service.time_in_status_days(job_service.get_job(db, job.id), clock())
    assert entered == entered_at
    assert days == 2.0


def test_time_in_status_defaults_to_creation(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    clock.advance(hours=12)

    entered, days = job_service.time_in_status_days(job, clock())
    assert entered == job.created_at
    assert days == 0.5


def test_update_job_assignment_starts_waiting_job(db, admin, mechanic, customer, clock):
    job = _new_job(db, customer, clock)
    job = job_service.update_job(db, job.id, {"assigned_to": mechanic.id}, 1, clock=clock)

    assert job.assigned_to == mechanic.id
    assert job.status == JobStatus.IN_PROGRESS


def test_update_job_assignment_keeps_other_statuses(db, admin, mechanic, customer, clock):
    job = _new_job(db, customer, clock)
    job_service.transition_job(db, job.id, "parts_ordered", 1, clock=clock)
    job = job_service.update_job(db, job.id, {"assigned_to": mechanic.id}, 1, clock=clock)

    assert job.status == JobStatus.PARTS_ORDERED


def test_service_records(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    job_service.add_service_record(db, job.id, {"service_type": "Blade sharpening", "cost": 2500}, 1, clock=clock)

    records = job_service.list_service_records(db, job.id)
    assert [r.service_type for r in records] == ["Blade sharpening"]
    assert records[0].performed_by == 1
    activity = db.query(Activity).filter(Activity.activity_type == "service_added").one()
    assert activity.description == "Added service to job WS-1000: Blade sharpening"


def test_add_job_update_requires_note(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    with pytest.raises(ValidationError):
        job_service.add_job_update(db, job.id, "   ", 1, clock=clock)


def test_public_tracker_hides_private_notes(db, admin, customer, clock):
    job = _new_job(db, customer, clock)
    job_service.add_job_update(db, job.id, "Customer was rude", 1, clock=clock, is_public=False)
    clock.advance(minutes=5)
    job_service.transition_job(db, job.id, "in_progress", 1, clock=clock)

    tracker = job_service.get_public_job_tracker(db, "ws-1000", "JANE@example.com")
    assert tracker["job"]["status"] == "in_progress"
    assert [u["note"] for u in tracker["updates"]] == ['Status changed from "Waiting Assessment" to "In Progress"']


def test_public_tracker_email_mismatch_looks_missing(db, admin, customer, clock):
    _new_job(db, customer, clock)
    with pytest.raises(NotFoundError):
        job_service.get_public_job_tracker(db, "WS-1000", "someone@example.com")
    with pytest.raises(NotFoundError):
        job_service.get_public_job_tracker(db, "WS-9999", "jane@example.com")


def test_create_job_retries_when_code_is_taken(db, admin, customer, clock, monkeypatch):
    taken = _new_job(db, customer, clock).job_code
    real = codes.next_sequence_code
    calls = []

    def stale_first(*args):
        calls.append(args)
        return taken if len(calls) == 1 else real(*args)

    monkeypatch.setattr(codes, "next_sequence_code", stale_first)
    job = _new_job(db, customer, clock)

    assert job.job_code == "WS-1001"
    assert len(calls) == 2


def test_next_code_orders_numerically(db, admin, customer, clock):
    _new_job(db, customer, clock)
    db.add(Job(job_code="WS-9999", customer_id=customer.id, description="Old", status=JobStatus.COMPLETED, created_at=clock.now))
    db.add(Job(job_code="WS-10000", customer_id=customer.id, description="Old", status=JobStatus.COMPLETED, created_at=clock.now))
    db.commit()
    assert codes.next_sequence_code(db, Job.job_code, "WS-", 1000) == "WS-10001"

from datetime import datetime, timedelta
from types import SimpleNamespace

from app.services.analytics import summarize, summarize_callbacks, week_start


FIXED_NOW = datetime(2024, 3, 13, 12, 0, 0)
TZ = "Europe/London"


def _job(status, created_at=None, completed_at=None, equipment=None):
    return SimpleNamespace(
        status=status,
        created_at=created_at or FIXED_NOW - timedelta(days=10),
        completed_at=completed_at,
        equipment=equipment,
    )


def _task(status, assigned_to=None):
    return SimpleNamespace(status=status, assigned_to=assigned_to)


def _callback(status, requested_at, completed_at=None, assigned_to=7, priority="medium"):
    return SimpleNamespace(
        status=status,
        requested_at=requested_at,
        completed_at=completed_at,
        assigned_to=assigned_to,
        priority=priority,
    )


def test_week_starts_on_local_sunday():
    assert week_start(FIXED_NOW, TZ).replace(tzinfo=None) == datetime(2024, 3, 10, 0, 0)


def test_week_start_in_summer_time():
    # 2024-07-03 is a Wednesday; London is UTC+1
    start = week_start(datetime(2024, 7, 3, 9, 0), TZ)
    assert start.replace(tzinfo=None) == datetime(2024, 6, 29, 23, 0)


def test_summarize_three_jobs_without_equipment():
    jobs = [
        _job("waiting_assessment"),
        _job("in_progress"),
        _job("completed", completed_at=FIXED_NOW - timedelta(days=1)),
    ]
    result = summarize(jobs, [], [], now=FIXED_NOW, tz=TZ)

    assert result["active_jobs"] == 2
    assert result["jobs_by_equipment_type"] == []
    assert result["completed_this_week"] == 1
    assert result["avg_repair_time_days"] == 9.0


def test_summarize_lists_every_status():
    result = summarize([_job("in_progress")], [], [], now=FIXED_NOW, tz=TZ)
    by_status = {row["status"]: row for row in result["jobs_by_status"]}

    assert len(by_status) == 6
    assert by_status["in_progress"]["count"] == 1
    assert by_status["ready_for_pickup"]["name"] == "Ready for Pickup"
    assert by_status["cancelled"]["count"] == 0


def test_summarize_completed_before_week_start_not_counted():
    jobs = [_job("completed", completed_at=datetime(2024, 3, 9, 23, 59))]
    assert summarize(jobs, [], [], now=FIXED_NOW, tz=TZ)["completed_this_week"] == 0


def test_summarize_groups_equipment_types():
    mower = SimpleNamespace(equipment_type=SimpleNamespace(name="Mower"))
    saw = SimpleNamespace(equipment_type=SimpleNamespace(name="Chainsaw"))
    jobs = [_job("in_progress", equipment=mower), _job("in_progress", equipment=mower), _job("cancelled", equipment=saw)]

    result = summarize(jobs, [], [], now=FIXED_NOW, tz=TZ)
    assert result["jobs_by_equipment_type"] == [
        {"name": "Chainsaw", "count": 1},
        {"name": "Mower", "count": 2},
    ]


def test_pending_tasks_counts_open_assigned_tasks():
    tasks = [
        _task("pending", assigned_to=7),
        _task("review", assigned_to=3),
        _task("in_progress"),
        _task("completed", assigned_to=7),
    ]
    assert summarize([], tasks, [], now=FIXED_NOW, tz=TZ)["pending_tasks"] == 2
    assert summarize([], tasks, [], now=FIXED_NOW, tz=TZ, user_id=7)["pending_tasks"] == 1


def test_summarize_empty():
    result = summarize([], [], [], now=FIXED_NOW, tz=TZ)
    assert result["active_jobs"] == 0
    assert result["avg_repair_time_days"] == 0
    assert result["total_customers"] == 0


def test_callback_completion_rate_and_average():
    requested = FIXED_NOW - timedelta(hours=5)
    callbacks = [
        _callback("completed", requested, completed_at=requested + timedelta(hours=3)),
        _callback("pending", requested),
    ]
    staff = [SimpleNamespace(id=7, full_name="Mike Mechanic", username="mike")]
    result = summarize_callbacks(callbacks, staff, now=FIXED_NOW, tz=TZ)

    assert result["summary"]["total"] == 2
    assert result["summary"]["completion_rate"] == 50.0
    assert result["summary"]["avg_completion_time_hours"] == 3.0

    (mike,) = result["staff_performance"]
    assert mike["staff_name"] == "Mike Mechanic"
    assert mike["completion_rate"] == 50.0
    assert mike["avg_completion_time_hours"] == 3.0
    assert mike["longest_completion_time_hours"] == 3.0
    assert mike["pending"] == 1


def test_callback_breakdowns_and_trends():
    callbacks = [
        _callback("completed", FIXED_NOW - timedelta(days=1), completed_at=FIXED_NOW - timedelta(hours=2), priority="high"),
        _callback("deleted", FIXED_NOW - timedelta(days=2), assigned_to=None, priority="low"),
        _callback("pending", FIXED_NOW - timedelta(hours=1), assigned_to=99, priority="urgent"),
    ]
    result = summarize_callbacks(callbacks, [], now=FIXED_NOW, tz=TZ)

    assert result["status_breakdown"] == {"pending": 1, "completed": 1, "archived": 1}
    assert result["priority_breakdown"] == {"low": 1, "medium": 0, "high": 1, "urgent": 1}
    assert [s["staff_name"] for s in result["staff_performance"]] == ["User 7", "User 99"]

    trends = result["daily_trends"]
    assert len(trends) == 30
    assert trends[-1] == {"date": "2024-03-13", "created": 1, "completed": 1}
    assert trends[-2] == {"date": "2024-03-12", "created": 1, "completed": 0}


def test_callback_date_range_filters_requests():
    callbacks = [
        _callback("pending", FIXED_NOW - timedelta(days=10)),
        _callback("pending", FIXED_NOW - timedelta(days=1)),
    ]
    result = summarize_callbacks(
        callbacks, [], (FIXED_NOW - timedelta(days=2), FIXED_NOW), now=FIXED_NOW, tz=TZ,
    )
    assert result["summary"]["total"] == 1
    assert result["summary"]["completion_rate"] == 0.0
    assert result["summary"]["avg_completion_time_hours"] is None
    assert result["date_range"]["from"] == "2024-03-11T12:00:00+00:00"

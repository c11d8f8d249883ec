"""Tests for the periodic trigger routes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from challengers.api.routes import cron as cron_routes
from challengers.core.executor import BatchSummary, ScheduleResult


class StubExecutor:
    def __init__(self, summary=None, error: Exception | None = None):
        self.summary = summary
        self.error = error
        self.calls = 0

    def process_due(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.summary


def test_trigger_returns_summary() -> None:
    summary = BatchSummary(
        started_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
        results=[
            ScheduleResult(schedule_id=1, status="completed", room_id=10, room_name="Room", chat_sent=True),
            ScheduleResult(schedule_id=2, status="failed", error="No stored token"),
            ScheduleResult(schedule_id=3, status="skipped", error="Already processed"),
        ],
        duration_ms=12,
    )
    executor = StubExecutor(summary)

    payload = cron_routes.process_scheduled_challenges_post(executor=executor)

    assert executor.calls == 1
    assert payload["success"] is True
    assert (payload["processed"], payload["successful"], payload["failed"], payload["skipped"]) == (3, 1, 1, 1)
    assert payload["results"][0]["room_id"] == 10
    assert payload["duration_ms"] == 12


def test_trigger_get_and_post_share_behaviour() -> None:
    summary = BatchSummary(started_at=datetime(2025, 6, 1, tzinfo=timezone.utc))

    payload = cron_routes.process_scheduled_challenges_get(executor=StubExecutor(summary))

    assert payload["processed"] == 0
    assert payload["message"] == "No scheduled challenges to process"


def test_trigger_reports_batch_level_failure() -> None:
    with pytest.raises(HTTPException) as exc:
        cron_routes.process_scheduled_challenges_post(executor=StubExecutor(error=RuntimeError("db down")))

    assert exc.value.status_code == 500
    assert "db down" in exc.value.detail


def test_router_is_gated_by_cron_secret() -> None:
    dependency_calls = [dependency.dependency for dependency in cron_routes.router.dependencies]

    assert cron_routes.require_cron_secret in dependency_calls


def test_status_counts(fake_db) -> None:
    now = datetime.now(timezone.utc)
    fake_db.add_schedule(osu_id=7, scheduled_time=now + timedelta(hours=1))
    fake_db.add_schedule(osu_id=7, scheduled_time=now - timedelta(hours=5))
    failed = fake_db.add_schedule(osu_id=7, scheduled_time=now - timedelta(hours=1), status="failed")
    fake_db.schedules[failed["id"]]["updated_at"] = now.isoformat()

    payload = cron_routes.scheduler_status(db=fake_db)

    assert payload["pending"] == 2
    assert payload["overdue_beyond_grace"] == 1
    assert payload["recently_failed"] == 1
    assert payload["grace_period_minutes"] == 100

"""Periodic trigger endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from ...config import CONFIG
from ...core.executor import ScheduledChallengeExecutor
from ...db import DatabaseClient
from ..dependencies import get_database, get_executor, require_cron_secret
from ..schemas import BatchSummaryResponse, SchedulerStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_cron_secret)])

# Failures newer than this are reported by the status endpoint.
RECENT_FAILURE_WINDOW = timedelta(hours=24)


def _run_batch(executor: ScheduledChallengeExecutor) -> Dict[str, Any]:
    try:
        summary = executor.process_due()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Scheduled challenge batch failed before processing")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process scheduled challenges: {exc}",
        ) from exc
    return summary.to_dict()


@router.get("/cron/process-scheduled-challenges", response_model=BatchSummaryResponse)
def process_scheduled_challenges_get(
    executor: ScheduledChallengeExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    """Run one batch of due schedules (GET form used by cron providers)."""

    return _run_batch(executor)


@router.post("/cron/process-scheduled-challenges", response_model=BatchSummaryResponse)
def process_scheduled_challenges_post(
    executor: ScheduledChallengeExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    """Run one batch of due schedules."""

    return _run_batch(executor)


@router.get("/cron/status", response_model=SchedulerStatusResponse)
def scheduler_status(db: DatabaseClient = Depends(get_database)) -> Dict[str, Any]:
    """Counts operators watch: pending work, work too late to run, recent failures."""

    now = datetime.now(timezone.utc)
    grace_minutes = int(CONFIG.grace_period_minutes)
    return {
        "status": "operational",
        "pending": db.count_scheduled_challenges(status="pending"),
        "overdue_beyond_grace": db.count_scheduled_challenges(
            status="pending",
            scheduled_before=now - timedelta(minutes=grace_minutes),
        ),
        "recently_failed": db.count_scheduled_challenges(
            status="failed",
            updated_after=now - RECENT_FAILURE_WINDOW,
        ),
        "grace_period_minutes": grace_minutes,
        "checked_at": now,
    }

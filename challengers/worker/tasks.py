"""Celery task that runs one scheduled challenge batch.

The task calls the executor directly; it does not go through the HTTP trigger.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from celery.utils.log import get_task_logger

from ..core.executor import process_scheduled_challenges as run_batch
from .celery_app import PROCESS_TASK_NAME, celery_app

logger = get_task_logger(__name__)

TRANSIENT_ERROR_MARKERS = (
    "connection reset",
    "connection refused",
    "connection was closed",
    "server disconnected",
    "timed out",
    "temporarily unavailable",
)


def _is_transient_error(exc: Exception) -> bool:
    """Connection hiccups reaching Supabase before any schedule was touched."""
    candidates: List[str] = [str(exc)]
    cause = exc.__cause__ or exc.__context__
    if cause is not None and cause is not exc:
        candidates.append(str(cause))
    combined = " ".join(candidates).lower()
    return any(marker in combined for marker in TRANSIENT_ERROR_MARKERS)


@celery_app.task(bind=True, name=PROCESS_TASK_NAME, max_retries=2)
def process_scheduled_challenges(
    self,
    grace_period_minutes: Optional[int] = None,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """Process every due schedule and return the batch summary."""

    try:
        summary = run_batch(grace_period_minutes=grace_period_minutes, limit=limit)
    except Exception as exc:
        if _is_transient_error(exc):
            retry_count = getattr(self.request, "retries", 0)
            delay = min(60, 5 * (2 ** retry_count))
            logger.warning(
                "Transient error selecting due schedules (attempt %s), retrying in %ss: %s",
                retry_count + 1,
                delay,
                exc,
            )
            raise self.retry(exc=exc, countdown=delay)
        logger.exception("Scheduled challenge batch failed")
        raise

    payload = summary.to_dict()
    logger.info(
        "Scheduled challenge batch: processed=%s successful=%s failed=%s skipped=%s",
        payload["processed"],
        payload["successful"],
        payload["failed"],
        payload["skipped"],
    )
    return payload


__all__ = ["process_scheduled_challenges"]

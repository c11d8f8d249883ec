"""Celery application that runs the scheduled challenge batch on a beat."""

from __future__ import annotations

import os
from pathlib import Path

from celery import Celery
from dotenv import load_dotenv

from ..auth.vault import get_token_vault
from ..config import CONFIG, reload_config


def _should_load_local_env() -> bool:
    env = (os.getenv("ENV") or os.getenv("ENVIRONMENT") or "").lower()
    if env and env != "dev":
        return False
    return Path(".env").is_file()


if _should_load_local_env():  # Only load .env for local development runs
    load_dotenv()
    reload_config()


def validate_worker_configuration() -> None:
    """Build the vault so a missing or malformed key stops the worker before it consumes."""

    get_token_vault()


validate_worker_configuration()

PROCESS_TASK_NAME = "challengers.worker.tasks.process_scheduled_challenges"

celery_app = Celery(
    "challengers-scheduler",
    broker=CONFIG.celery_broker_url,
    backend=CONFIG.celery_result_backend,
    include=["challengers.worker.tasks"],
)

celery_app.conf.update(
    broker_connection_retry_on_startup=True,
    task_track_started=True,
    # One batch at a time per worker; batches are sequential.
    worker_prefetch_multiplier=1,
    worker_concurrency=int(os.getenv("CELERY_WORKER_CONCURRENCY", "1")),
    task_default_queue=os.getenv("CELERY_DEFAULT_QUEUE", "scheduler"),
    timezone=os.getenv("CELERY_TIMEZONE", "UTC"),
    enable_utc=True,
)

if CONFIG.scheduler_beat_enabled:
    celery_app.conf.beat_schedule = {
        "process-scheduled-challenges": {
            "task": PROCESS_TASK_NAME,
            "schedule": float(CONFIG.scheduler_interval_seconds),
            # A batch that misses its slot is superseded by the next one.
            "options": {"expires": float(CONFIG.scheduler_interval_seconds)},
        },
    }


__all__ = ["PROCESS_TASK_NAME", "celery_app", "validate_worker_configuration"]

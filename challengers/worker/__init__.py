"""Background worker components for the challenge scheduler."""

from .celery_app import celery_app
from .tasks import process_scheduled_challenges

__all__ = ["celery_app", "process_scheduled_challenges"]

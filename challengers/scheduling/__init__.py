"""Scheduled challenge entities and their guarded store."""

from .models import OwnerCredential, ScheduledChallenge, SchedulePage, ScheduleStatus
from .store import (
    ScheduleBusyError,
    ScheduleNotFoundError,
    ScheduleNotPendingError,
    ScheduleStore,
    ScheduleStoreError,
    ScheduleValidationError,
)

__all__ = [
    "OwnerCredential",
    "ScheduleBusyError",
    "ScheduleNotFoundError",
    "ScheduleNotPendingError",
    "ScheduleStatus",
    "ScheduleStore",
    "ScheduleStoreError",
    "ScheduleValidationError",
    "ScheduledChallenge",
    "SchedulePage",
]

"""Core scheduled-challenge execution."""

from .executor import (
    BatchSummary,
    ScheduleResult,
    ScheduledChallengeExecutor,
    build_default_executor,
    process_scheduled_challenges,
)

__all__ = [
    "BatchSummary",
    "ScheduleResult",
    "ScheduledChallengeExecutor",
    "build_default_executor",
    "process_scheduled_challenges",
]

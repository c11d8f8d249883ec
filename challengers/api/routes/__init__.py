"""Route modules for the scheduler API."""

from . import cron, permissions, scheduled_challenges, user_tokens

__all__ = [
    "cron",
    "permissions",
    "scheduled_challenges",
    "user_tokens",
]

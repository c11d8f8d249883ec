"""
Database module for the challenge scheduler.

Provides the Supabase client used for scheduled challenges, stored owner
credentials and the owner directory.
"""

from .client import (
    OWNER_TOKENS_TABLE,
    SCHEDULES_TABLE,
    USERS_TABLE,
    DatabaseClient,
    get_database_client,
)

__all__ = [
    "DatabaseClient",
    "get_database_client",
    "OWNER_TOKENS_TABLE",
    "SCHEDULES_TABLE",
    "USERS_TABLE",
]

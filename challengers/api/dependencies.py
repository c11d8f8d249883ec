"""FastAPI dependencies shared across the scheduler API."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, status

from ..auth.gate import get_cron_gate, get_scheduler_gate
from ..auth.vault import TokenVault, get_token_vault
from ..core.executor import ScheduledChallengeExecutor, build_default_executor
from ..db import DatabaseClient, get_database_client
from ..scheduling.store import ScheduleStore
from ..services.osu import OsuClient, get_osu_client as _get_osu_client


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_cron_secret(
    authorization: Optional[str] = Header(None),
    x_cron_secret: Optional[str] = Header(None),
) -> None:
    """Admit the periodic trigger; rejects before any database access."""

    if not get_cron_gate().is_authorized(authorization=authorization, custom_secret=x_cron_secret):
        raise _unauthorized()


def require_scheduler_secret(
    authorization: Optional[str] = Header(None),
    x_scheduler_secret: Optional[str] = Header(None),
) -> None:
    """Admit callers of the scheduling API."""

    if not get_scheduler_gate().is_authorized(authorization=authorization, custom_secret=x_scheduler_secret):
        raise _unauthorized()


def get_database() -> DatabaseClient:
    """Return the shared database client instance."""

    return get_database_client()


def get_schedule_store() -> ScheduleStore:
    return ScheduleStore(get_database_client())


def get_vault() -> TokenVault:
    return get_token_vault()


def get_osu_client() -> OsuClient:
    return _get_osu_client()


def get_executor() -> ScheduledChallengeExecutor:
    return build_default_executor()

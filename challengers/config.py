"""Environment-driven runtime settings for the challenge scheduler."""

from __future__ import annotations

import os
from types import SimpleNamespace
from typing import Optional, Sequence, Tuple


class ConfigurationError(RuntimeError):
    """Raised when a required secret or setting is missing or malformed.

    These are fatal: the process must refuse to start rather than run with a
    weak or absent secret.
    """


def _env_str(
    name: str,
    default: Optional[str] = None,
    *,
    empty_to_none: bool = True,
) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip()
    if not value and empty_to_none:
        return None if default is None else default
    return value if value else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_tuple(name: str, default: Sequence[str]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return tuple(default)
    items = tuple(part.strip() for part in raw.split(",") if part.strip())
    return items or tuple(default)


class Settings(SimpleNamespace):
    """Simple attribute container used throughout the codebase."""


CONFIG = Settings()


def _compute_values() -> dict[str, object]:
    # -----------------------------------------------------------------------
    # RUNTIME ENVIRONMENT
    # -----------------------------------------------------------------------
    environment = _env_str("ENV", "prod", empty_to_none=False).lower()
    if environment not in {"dev", "test", "prod"}:
        environment = "prod"

    # -----------------------------------------------------------------------
    # SUPABASE
    # -----------------------------------------------------------------------
    supabase_url = _env_str("SUPABASE_URL", None)
    supabase_anon_key = _env_str("SUPABASE_ANON_KEY", None)
    supabase_service_role_key = _env_str("SUPABASE_SERVICE_ROLE_KEY", None)

    # -----------------------------------------------------------------------
    # SECRETS (validated lazily by the vault and the trigger gates)
    # -----------------------------------------------------------------------
    token_encryption_key = _env_str("TOKEN_ENCRYPTION_KEY", None)
    cron_secret = _env_str("CRON_SECRET", None)
    scheduler_shared_secret = _env_str("SCHEDULER_SHARED_SECRET", None)

    # -----------------------------------------------------------------------
    # OSU! API
    # -----------------------------------------------------------------------
    osu_client_id = _env_str("OSU_CLIENT_ID", None)
    osu_client_secret = _env_str("OSU_CLIENT_SECRET", None)
    osu_api_base_url = _env_str("OSU_API_BASE_URL", "https://osu.ppy.sh/api/v2", empty_to_none=False)
    osu_oauth_token_url = _env_str("OSU_OAUTH_TOKEN_URL", "https://osu.ppy.sh/oauth/token", empty_to_none=False)
    osu_request_timeout = _env_float("OSU_REQUEST_TIMEOUT", 15.0)

    # -----------------------------------------------------------------------
    # EXECUTION POLICY
    # -----------------------------------------------------------------------
    grace_period_minutes = max(_env_int("SCHEDULE_GRACE_PERIOD_MINUTES", 100), 0)
    batch_limit = max(_env_int("SCHEDULE_BATCH_LIMIT", 25), 1)
    claim_ttl_seconds = max(_env_int("SCHEDULE_CLAIM_TTL_SECONDS", 900), 60)
    token_refresh_buffer_seconds = max(_env_int("TOKEN_REFRESH_BUFFER_SECONDS", 300), 0)
    room_create_max_attempts = max(_env_int("ROOM_CREATE_MAX_ATTEMPTS", 3), 1)
    room_create_backoff_base_seconds = max(_env_float("ROOM_CREATE_BACKOFF_BASE_SECONDS", 2.0), 0.0)

    # -----------------------------------------------------------------------
    # WORKER
    # -----------------------------------------------------------------------
    celery_broker_url = _env_str("CELERY_BROKER_URL", "redis://localhost:6379/0", empty_to_none=False)
    celery_result_backend = _env_str("CELERY_RESULT_BACKEND", celery_broker_url, empty_to_none=False)
    scheduler_interval_seconds = max(_env_int("SCHEDULER_INTERVAL_SECONDS", 300), 30)
    scheduler_beat_enabled = _env_bool("SCHEDULER_BEAT_ENABLED", True)

    # -----------------------------------------------------------------------
    # API & LOGGING
    # -----------------------------------------------------------------------
    api_cors_origins = _env_tuple("API_CORS_ORIGINS", ())
    log_level = _env_str("LOG_LEVEL", "INFO", empty_to_none=False).upper()

    return {
        "environment": environment,
        "is_development": environment == "dev",
        "supabase_url": supabase_url,
        "supabase_anon_key": supabase_anon_key,
        "supabase_service_role_key": supabase_service_role_key,
        "token_encryption_key": token_encryption_key,
        "cron_secret": cron_secret,
        "scheduler_shared_secret": scheduler_shared_secret,
        "osu_client_id": osu_client_id,
        "osu_client_secret": osu_client_secret,
        "osu_api_base_url": osu_api_base_url.rstrip("/"),
        "osu_oauth_token_url": osu_oauth_token_url,
        "osu_request_timeout": osu_request_timeout,
        "grace_period_minutes": grace_period_minutes,
        "batch_limit": batch_limit,
        "claim_ttl_seconds": claim_ttl_seconds,
        "token_refresh_buffer_seconds": token_refresh_buffer_seconds,
        "room_create_max_attempts": room_create_max_attempts,
        "room_create_backoff_base_seconds": room_create_backoff_base_seconds,
        "celery_broker_url": celery_broker_url,
        "celery_result_backend": celery_result_backend,
        "scheduler_interval_seconds": scheduler_interval_seconds,
        "scheduler_beat_enabled": scheduler_beat_enabled,
        "api_cors_origins": api_cors_origins,
        "log_level": log_level,
    }


def reload_config() -> None:
    CONFIG.__dict__.update(_compute_values())


# Load once on import so downstream modules can use CONFIG immediately.
reload_config()

"""Tests for shared FastAPI dependency helpers."""

from __future__ import annotations

import pytest
from fastapi import HTTPException

from challengers.api import dependencies
from challengers.config import CONFIG


def test_require_cron_secret_rejects_missing_headers() -> None:
    with pytest.raises(HTTPException) as exc:
        dependencies.require_cron_secret(authorization=None, x_cron_secret=None)

    assert exc.value.status_code == 401
    assert exc.value.detail == "Unauthorized"


def test_require_cron_secret_accepts_bearer() -> None:
    assert dependencies.require_cron_secret(authorization=f"Bearer {CONFIG.cron_secret}", x_cron_secret=None) is None


def test_require_cron_secret_accepts_custom_header() -> None:
    assert dependencies.require_cron_secret(authorization=None, x_cron_secret=CONFIG.cron_secret) is None


def test_cron_secret_does_not_open_scheduler_api() -> None:
    with pytest.raises(HTTPException) as exc:
        dependencies.require_scheduler_secret(authorization=None, x_scheduler_secret=CONFIG.cron_secret)

    assert exc.value.status_code == 401


def test_require_scheduler_secret_accepts_header() -> None:
    assert (
        dependencies.require_scheduler_secret(
            authorization=None,
            x_scheduler_secret=CONFIG.scheduler_shared_secret,
        )
        is None
    )


def test_get_database_returns_shared_client(monkeypatch: pytest.MonkeyPatch) -> None:
    sentinel = object()
    monkeypatch.setattr(dependencies, "get_database_client", lambda: sentinel)

    assert dependencies.get_database() is sentinel


def test_get_schedule_store_wraps_database(monkeypatch: pytest.MonkeyPatch, fake_db) -> None:
    monkeypatch.setattr(dependencies, "get_database_client", lambda: fake_db)

    store = dependencies.get_schedule_store()

    with pytest.raises(LookupError):
        store.get(1)

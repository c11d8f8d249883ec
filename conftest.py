"""Repository-wide pytest fixtures."""

from __future__ import annotations

import os
from collections.abc import Generator

import pytest

from challengers.auth.gate import reset_gates
from challengers.auth.vault import reset_token_vault
from challengers.config import reload_config

# base64 of the 32 ASCII bytes "0123456789abcdef0123456789abcdef"
TEST_ENCRYPTION_KEY = "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY="
TEST_CRON_SECRET = "cron-secret-for-tests-0123456789abcdef"
TEST_SCHEDULER_SECRET = "scheduler-secret-for-tests-0123456789"

TEST_ENV = {
    "ENV": "test",
    "SUPABASE_URL": "http://localhost:54321",
    "SUPABASE_SERVICE_ROLE_KEY": "service-role-test-key",
    "TOKEN_ENCRYPTION_KEY": TEST_ENCRYPTION_KEY,
    "CRON_SECRET": TEST_CRON_SECRET,
    "SCHEDULER_SHARED_SECRET": TEST_SCHEDULER_SECRET,
    "OSU_CLIENT_ID": "12345",
    "OSU_CLIENT_SECRET": "osu-client-secret",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
}


def pytest_configure(config: pytest.Config) -> None:
    # The worker validates its key on import, which happens during collection.
    os.environ.update(TEST_ENV)
    reload_config()


@pytest.fixture(autouse=True)
def _set_default_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Deterministic secrets and settings; no test reaches Supabase or osu!."""

    for name, value in TEST_ENV.items():
        monkeypatch.setenv(name, value)
    reload_config()
    reset_token_vault()
    reset_gates()
    yield
    reset_token_vault()
    reset_gates()

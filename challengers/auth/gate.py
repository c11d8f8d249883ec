"""Shared-secret gates for the periodic trigger and the scheduling API."""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from ..config import CONFIG, ConfigurationError

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32
CRON_SECRET_HEADER = "x-cron-secret"
SCHEDULER_SECRET_HEADER = "x-scheduler-secret"


class SharedSecretGate:
    """
    Stateless check of a request against a single configured secret.

    The secret may arrive either as ``Authorization: Bearer <secret>`` or in a
    dedicated header. Nothing is cached between calls and no session is
    created.
    """

    def __init__(self, secret: Optional[str], *, name: str, header_name: str) -> None:
        if not secret or len(secret) < MIN_SECRET_LENGTH:
            raise ConfigurationError(
                f"{name} must be set and at least {MIN_SECRET_LENGTH} characters"
            )
        self._secret = secret.encode("utf-8")
        self.name = name
        self.header_name = header_name

    @staticmethod
    def _bearer_value(authorization: Optional[str]) -> Optional[str]:
        if not authorization:
            return None
        scheme, _, value = authorization.strip().partition(" ")
        if scheme.lower() != "bearer":
            return None
        return value.strip() or None

    def _matches(self, candidate: Optional[str]) -> bool:
        if not candidate:
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), self._secret)

    def is_authorized(
        self,
        *,
        authorization: Optional[str] = None,
        custom_secret: Optional[str] = None,
    ) -> bool:
        """Return True when either header carries the configured secret."""

        if self._matches(custom_secret):
            return True
        return self._matches(self._bearer_value(authorization))


_cron_gate: Optional[SharedSecretGate] = None
_scheduler_gate: Optional[SharedSecretGate] = None


def get_cron_gate() -> SharedSecretGate:
    """Gate admitting the periodic batch trigger (``CRON_SECRET``)."""

    global _cron_gate
    if _cron_gate is None:
        _cron_gate = SharedSecretGate(
            getattr(CONFIG, "cron_secret", None),
            name="CRON_SECRET",
            header_name=CRON_SECRET_HEADER,
        )
    return _cron_gate


def get_scheduler_gate() -> SharedSecretGate:
    """Gate admitting the scheduling API (``SCHEDULER_SHARED_SECRET``)."""

    global _scheduler_gate
    if _scheduler_gate is None:
        _scheduler_gate = SharedSecretGate(
            getattr(CONFIG, "scheduler_shared_secret", None),
            name="SCHEDULER_SHARED_SECRET",
            header_name=SCHEDULER_SECRET_HEADER,
        )
    return _scheduler_gate


def reset_gates() -> None:
    global _cron_gate, _scheduler_gate
    _cron_gate = None
    _scheduler_gate = None


__all__ = [
    "CRON_SECRET_HEADER",
    "MIN_SECRET_LENGTH",
    "SCHEDULER_SECRET_HEADER",
    "SharedSecretGate",
    "get_cron_gate",
    "get_scheduler_gate",
    "reset_gates",
]

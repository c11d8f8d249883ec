"""
Guarded persistence for scheduled challenges.

``pending`` is the only mutable state. Administrative callers may edit or
cancel a pending row; only the batch executor moves a row to ``completed`` or
``failed``, and only while it holds the row's claim. Every write is a
conditional update evaluated by the database, so a terminal row can never be
rewritten even if two callers race.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..config import CONFIG
from ..db import DatabaseClient
from .models import ScheduledChallenge, SchedulePage, ScheduleStatus
from .validation import validate_chat_messages, validate_room_config, validate_ruleset_config

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50

# API field name -> column name.
UPDATABLE_FIELDS: Dict[str, str] = {
    "scheduled_time": "scheduled_time",
    "room_config": "room_data",
    "room_data": "room_data",
    "chat_messages": "chat_messages",
    "season_id": "season_id",
    "ruleset_config": "ruleset_config",
}


class ScheduleStoreError(RuntimeError):
    """Base class for schedule store failures."""


class ScheduleNotFoundError(ScheduleStoreError, LookupError):
    """Raised when a schedule id does not exist."""


class ScheduleNotPendingError(ScheduleStoreError):
    """Raised when a mutation targets a schedule that already left ``pending``."""

    def __init__(self, schedule_id: int, status: Optional[str]):
        self.schedule_id = schedule_id
        self.status = status
        super().__init__(f"Cannot modify schedule {schedule_id} with status '{status}'")


class ScheduleBusyError(ScheduleStoreError):
    """Raised when a pending schedule is currently claimed by the executor."""


class ScheduleValidationError(ScheduleStoreError, ValueError):
    """Raised when a create/update payload is invalid."""

    def __init__(self, message: str, details: Optional[List[str]] = None):
        self.details = list(details or [])
        super().__init__(message)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ScheduleStore:
    """State-machine facade over the ``scheduled_challenges`` table."""

    def __init__(
        self,
        db: DatabaseClient,
        *,
        clock: Callable[[], datetime] = _utcnow,
        claim_ttl_seconds: Optional[int] = None,
    ) -> None:
        self._db = db
        self._clock = clock
        ttl = claim_ttl_seconds if claim_ttl_seconds is not None else getattr(CONFIG, "claim_ttl_seconds", 900)
        self._claim_ttl = timedelta(seconds=ttl)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, schedule_id: int) -> ScheduledChallenge:
        record = self._db.get_scheduled_challenge(schedule_id)
        if not record:
            raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")
        return ScheduledChallenge.from_record(record)

    def current_status(self, schedule_id: int) -> Optional[ScheduleStatus]:
        return ScheduleStatus.coerce(self._db.get_scheduled_challenge_status(schedule_id))

    def list(
        self,
        *,
        owner_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> SchedulePage:
        if status is not None and ScheduleStatus.coerce(status) is None:
            raise ScheduleValidationError(f"Unknown status '{status}'")
        limit = min(max(int(limit or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
        offset = max(int(offset or 0), 0)
        rows, total = self._db.list_scheduled_challenges(
            owner_id=owner_id,
            status=status,
            limit=limit,
            offset=offset,
        )
        return SchedulePage(
            schedules=[ScheduledChallenge.from_record(row) for row in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    def list_due(self, now: datetime, grace_period: timedelta, *, limit: int) -> List[ScheduledChallenge]:
        """Pending schedules inside ``[now - grace_period, now]``, oldest first."""

        rows = self._db.list_due_scheduled_challenges(now - grace_period, now, limit=limit)
        schedules = [ScheduledChallenge.from_record(row) for row in rows]
        schedules.sort(key=lambda schedule: schedule.scheduled_time)
        return schedules

    # ------------------------------------------------------------------
    # Administrative mutations
    # ------------------------------------------------------------------
    def _ensure_future(self, scheduled_time: datetime) -> datetime:
        scheduled_time = _require_aware(scheduled_time)
        if scheduled_time <= self._clock():
            raise ScheduleValidationError("Scheduled time must be in the future")
        return scheduled_time

    def create(
        self,
        *,
        owner_id: int,
        scheduled_time: datetime,
        room_config: Dict[str, Any],
        chat_messages: Optional[List[str]] = None,
        season_id: Optional[int] = None,
        ruleset_config: Optional[Dict[str, Any]] = None,
        embedded_credential: Optional[str] = None,
    ) -> ScheduledChallenge:
        """Insert a new ``pending`` schedule. Rejected unless ``scheduled_time`` is in the future."""

        scheduled_time = self._ensure_future(scheduled_time)
        errors = (
            validate_room_config(room_config)
            + validate_chat_messages(chat_messages)
            + validate_ruleset_config(ruleset_config)
        )
        if errors:
            raise ScheduleValidationError("Invalid schedule payload", errors)

        record = {
            "osu_id": owner_id,
            "scheduled_time": _iso(scheduled_time),
            "room_data": room_config,
            "chat_messages": list(chat_messages or []),
            "season_id": season_id,
            "ruleset_config": ruleset_config or None,
            # NULL selects the stored owner credential at execution time.
            "encrypted_token": embedded_credential,
            "status": ScheduleStatus.PENDING.value,
            "retry_count": 0,
        }
        created = ScheduledChallenge.from_record(self._db.insert_scheduled_challenge(record))
        logger.info(
            "Schedule %s created for owner %s at %s (%s credential)",
            created.id,
            owner_id,
            created.scheduled_time.isoformat(),
            "embedded" if embedded_credential else "stored",
        )
        return created

    def _load_pending(self, schedule_id: int) -> ScheduledChallenge:
        schedule = self.get(schedule_id)
        if schedule.status.is_terminal:
            raise ScheduleNotPendingError(schedule_id, schedule.status.value)
        return schedule

    def _conditional_admin_update(self, schedule_id: int, updates: Dict[str, Any]) -> ScheduledChallenge:
        updated = self._db.update_pending_scheduled_challenge(
            schedule_id,
            updates,
            stale_before=self._clock() - self._claim_ttl,
        )
        if updated:
            return ScheduledChallenge.from_record(updated)

        # The guarded write matched nothing; explain why.
        status = self.current_status(schedule_id)
        if status is None:
            raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")
        if status.is_terminal:
            raise ScheduleNotPendingError(schedule_id, status.value)
        raise ScheduleBusyError(f"Schedule {schedule_id} is currently being processed")

    def update(self, schedule_id: int, fields: Mapping[str, Any]) -> ScheduledChallenge:
        """Edit a pending schedule's configuration or time."""

        self._load_pending(schedule_id)

        unknown = sorted(key for key in fields if key not in UPDATABLE_FIELDS)
        if unknown:
            raise ScheduleValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

        updates: Dict[str, Any] = {}
        errors: List[str] = []
        for key, value in fields.items():
            column = UPDATABLE_FIELDS[key]
            if column == "scheduled_time":
                if not isinstance(value, datetime):
                    raise ScheduleValidationError("scheduled_time must be a datetime")
                updates[column] = _iso(self._ensure_future(value))
            elif column == "room_data":
                errors.extend(validate_room_config(value))
                updates[column] = value
            elif column == "chat_messages":
                errors.extend(validate_chat_messages(value))
                updates[column] = list(value or [])
            elif column == "ruleset_config":
                errors.extend(validate_ruleset_config(value))
                updates[column] = value or None
            else:
                updates[column] = value

        if errors:
            raise ScheduleValidationError("Invalid schedule payload", errors)
        if not updates:
            raise ScheduleValidationError("No fields to update")

        updated = self._conditional_admin_update(schedule_id, updates)
        logger.info("Schedule %s updated (%s)", schedule_id, ", ".join(sorted(updates)))
        return updated

    def cancel(self, schedule_id: int) -> ScheduledChallenge:
        """Move a pending schedule to ``cancelled``. Rows are retained for audit."""

        schedule = self._load_pending(schedule_id)
        cancelled = self._conditional_admin_update(
            schedule_id,
            {"status": ScheduleStatus.CANCELLED.value},
        )
        logger.info("Schedule %s cancelled (room %s)", schedule_id, schedule.room_name)
        return cancelled

    # ------------------------------------------------------------------
    # Executor transitions
    # ------------------------------------------------------------------
    def claim(self, schedule_id: int, claim_token: str) -> bool:
        """Take exclusive ownership of a pending row for one executor pass."""

        now = self._clock()
        claimed = self._db.claim_scheduled_challenge(
            schedule_id,
            claim_token,
            now=now,
            stale_before=now - self._claim_ttl,
        )
        return claimed is not None

    def write_back_credential(self, schedule_id: int, claim_token: str, encrypted_token: str) -> None:
        updated = self._db.update_pending_scheduled_challenge(
            schedule_id,
            {"encrypted_token": encrypted_token},
            claim_token=claim_token,
        )
        if not updated:
            raise ScheduleBusyError(f"Lost claim on schedule {schedule_id} while saving refreshed credential")

    def mark_completed(
        self,
        schedule: ScheduledChallenge,
        claim_token: str,
        *,
        room_id: int,
        error_message: Optional[str] = None,
    ) -> bool:
        updated = self._db.update_pending_scheduled_challenge(
            schedule.id,
            {
                "status": ScheduleStatus.COMPLETED.value,
                "created_room_id": room_id,
                "error_message": error_message,
                "executed_at": _iso(self._clock()),
            },
            claim_token=claim_token,
        )
        return updated is not None

    def mark_failed(
        self,
        schedule: ScheduledChallenge,
        claim_token: str,
        *,
        error_message: str,
    ) -> bool:
        updated = self._db.update_pending_scheduled_challenge(
            schedule.id,
            {
                "status": ScheduleStatus.FAILED.value,
                "error_message": error_message,
                "retry_count": schedule.retry_count + 1,
                "executed_at": _iso(self._clock()),
            },
            claim_token=claim_token,
        )
        return updated is not None


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "ScheduleBusyError",
    "ScheduleNotFoundError",
    "ScheduleNotPendingError",
    "ScheduleStore",
    "ScheduleStoreError",
    "ScheduleValidationError",
]

"""
Batch executor for scheduled challenges.

One invocation selects the pending schedules that are due inside the grace
window and processes them one after another. Each schedule is claimed
atomically before any work starts; from then on every path ends in exactly
one persisted terminal state (``completed`` or ``failed``) or, if the claim
could not be taken, a ``skipped`` result for this pass.

The loop is deliberately sequential so a batch never bursts the osu! API.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from ..auth.credentials import CredentialSource, MissingCredentialError, resolve_credential_source
from ..auth.vault import TokenDecryptionError, TokenFormatError, TokenTriple, TokenVault, get_token_vault, mask_token
from ..config import CONFIG
from ..db import DatabaseClient, get_database_client
from ..scheduling.models import ScheduledChallenge
from ..scheduling.store import ScheduleBusyError, ScheduleStore
from ..services.osu import OsuClient, get_osu_client

logger = logging.getLogger(__name__)

CHAT_FAILED_MESSAGE = "Chat messages failed (room created successfully)"
ALREADY_PROCESSED_MESSAGE = "Already processed"
CLAIM_FAILED_MESSAGE = "Claim failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScheduleResult:
    """Outcome of one schedule within a batch."""

    schedule_id: int
    status: str
    room_id: Optional[int] = None
    room_name: Optional[str] = None
    chat_sent: Optional[bool] = None
    attempts: int = 0
    error: Optional[str] = None
    details: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "schedule_id": self.schedule_id,
            "status": self.status,
            "success": self.succeeded,
        }
        if self.room_id is not None:
            payload["room_id"] = self.room_id
            payload["room_name"] = self.room_name
            payload["room_url"] = f"https://osu.ppy.sh/multiplayer/rooms/{self.room_id}"
        if self.chat_sent is not None:
            payload["chat_sent"] = self.chat_sent
        if self.attempts:
            payload["attempts"] = self.attempts
        if self.error:
            payload["error"] = self.error
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass
class BatchSummary:
    """Aggregate result of one executor invocation."""

    started_at: datetime
    results: List[ScheduleResult] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for result in self.results if result.status == "completed")

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if result.status == "failed")

    @property
    def skipped(self) -> int:
        return sum(1 for result in self.results if result.status == "skipped")

    @property
    def message(self) -> str:
        if not self.results:
            return "No scheduled challenges to process"
        return f"Processed {self.processed} scheduled challenge(s)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [result.to_dict() for result in self.results],
            "duration_ms": self.duration_ms,
        }


class _ScheduleFailure(Exception):
    """Internal signal that a step ended the schedule in ``failed``."""

    def __init__(self, error: str, details: Optional[str] = None, *, attempts: int = 0):
        self.error = error
        self.details = details
        self.attempts = attempts
        super().__init__(error if not details else f"{error}: {details}")


class ScheduledChallengeExecutor:
    """Runs due schedules against the osu! API with injected collaborators."""

    def __init__(
        self,
        *,
        db: DatabaseClient,
        vault: TokenVault,
        osu: OsuClient,
        store: Optional[ScheduleStore] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
        grace_period_minutes: Optional[int] = None,
        batch_limit: Optional[int] = None,
        refresh_buffer_seconds: Optional[int] = None,
        max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        claim_token_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self.db = db
        self.vault = vault
        self.osu = osu
        self.clock = clock
        self.sleep = sleep
        self.store = store or ScheduleStore(db, clock=clock)
        self.grace_period_minutes = (
            grace_period_minutes if grace_period_minutes is not None else CONFIG.grace_period_minutes
        )
        self.batch_limit = batch_limit if batch_limit is not None else CONFIG.batch_limit
        self.refresh_buffer_seconds = (
            refresh_buffer_seconds if refresh_buffer_seconds is not None else CONFIG.token_refresh_buffer_seconds
        )
        self.max_attempts = max(max_attempts if max_attempts is not None else CONFIG.room_create_max_attempts, 1)
        self.backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else CONFIG.room_create_backoff_base_seconds
        )
        self._claim_token_factory = claim_token_factory

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------
    def process_due(
        self,
        *,
        grace_period_minutes: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> BatchSummary:
        """Process every pending schedule due inside ``[now - grace, now]``."""

        started = time.monotonic()
        now = self.clock()
        grace = timedelta(
            minutes=grace_period_minutes if grace_period_minutes is not None else self.grace_period_minutes
        )
        summary = BatchSummary(started_at=now)

        due = self.store.list_due(now, grace, limit=limit or self.batch_limit)
        logger.info(
            "Found %s scheduled challenge(s) due between %s and %s",
            len(due),
            (now - grace).isoformat(),
            now.isoformat(),
        )

        for schedule in due:
            try:
                result = self.process_schedule(schedule)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unhandled error processing schedule %s", schedule.id)
                result = ScheduleResult(
                    schedule_id=schedule.id,
                    status="failed",
                    error="Unexpected error",
                    details=str(exc),
                )
            summary.results.append(result)

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Batch finished: processed=%s successful=%s failed=%s skipped=%s in %sms",
            summary.processed,
            summary.successful,
            summary.failed,
            summary.skipped,
            summary.duration_ms,
        )
        return summary

    # ------------------------------------------------------------------
    # Single schedule
    # ------------------------------------------------------------------
    def process_schedule(self, schedule: ScheduledChallenge) -> ScheduleResult:
        """Claim and run one schedule to a terminal outcome."""

        claim_token = self._claim_token_factory()
        try:
            claimed = self.store.claim(schedule.id, claim_token)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Could not claim schedule %s; leaving it pending", schedule.id)
            return ScheduleResult(schedule_id=schedule.id, status="skipped", error=CLAIM_FAILED_MESSAGE, details=str(exc))
        if not claimed:
            logger.info("Schedule %s skipped: no longer pending or claimed elsewhere", schedule.id)
            return ScheduleResult(schedule_id=schedule.id, status="skipped", error=ALREADY_PROCESSED_MESSAGE)

        logger.info(
            "Processing schedule %s for owner %s (room %r, scheduled %s)",
            schedule.id,
            schedule.owner_id,
            schedule.room_name,
            schedule.scheduled_time.isoformat(),
        )

        try:
            return self._run(schedule, claim_token)
        except _ScheduleFailure as failure:
            return self._finalize_failed(schedule, claim_token, failure)
        except ScheduleBusyError as exc:
            logger.warning("Schedule %s lost its claim mid-processing: %s", schedule.id, exc)
            return ScheduleResult(schedule_id=schedule.id, status="skipped", error=ALREADY_PROCESSED_MESSAGE, details=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error processing schedule %s", schedule.id)
            return self._finalize_failed(schedule, claim_token, _ScheduleFailure("Unexpected error", str(exc)))

    def _run(self, schedule: ScheduledChallenge, claim_token: str) -> ScheduleResult:
        source = self._resolve_credential(schedule, claim_token)
        triple = self._load_triple(source)
        triple = self._refresh_if_needed(schedule, source, triple)
        self._ensure_still_authorized(schedule)

        room, attempts = self._create_room(schedule, triple.access_token)
        room_id = int(room["id"])
        room_name = room.get("name") or schedule.room_name

        chat_sent: Optional[bool] = None
        error_message: Optional[str] = None
        if schedule.chat_messages:
            chat_sent = self._send_chat(schedule, room_id, triple.access_token)
            if not chat_sent:
                error_message = CHAT_FAILED_MESSAGE

        details: Optional[str] = None
        if not self.store.mark_completed(schedule, claim_token, room_id=room_id, error_message=error_message):
            logger.error("Schedule %s created room %s but its claim was lost before finalizing", schedule.id, room_id)
            details = f"Room {room_id} created but the schedule could not be marked completed; reconcile manually"

        logger.info("Schedule %s completed: room %s (%s)", schedule.id, room_id, room_name)
        return ScheduleResult(
            schedule_id=schedule.id,
            status="completed",
            room_id=room_id,
            room_name=room_name,
            chat_sent=chat_sent,
            attempts=attempts,
            error=error_message,
            details=details,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _resolve_credential(self, schedule: ScheduledChallenge, claim_token: str) -> CredentialSource:
        try:
            return resolve_credential_source(
                schedule,
                db=self.db,
                store=self.store,
                vault=self.vault,
                claim_token=claim_token,
            )
        except MissingCredentialError as exc:
            raise _ScheduleFailure("No stored token", str(exc)) from exc

    def _load_triple(self, source: CredentialSource) -> TokenTriple:
        try:
            return source.load()
        except (TokenDecryptionError, TokenFormatError) as exc:
            raise _ScheduleFailure("Credential could not be decrypted", str(exc)) from exc

    def _refresh_if_needed(
        self,
        schedule: ScheduledChallenge,
        source: CredentialSource,
        triple: TokenTriple,
    ) -> TokenTriple:
        now = self.clock()
        if not triple.is_expired(self.refresh_buffer_seconds, now=now):
            return triple

        logger.info(
            "Schedule %s: %s credential expires at %s, refreshing",
            schedule.id,
            source.kind,
            triple.expires_at.isoformat(),
        )
        try:
            tokens = self.osu.refresh_user_token(triple.refresh_token)
        except Exception as exc:  # noqa: BLE001
            raise _ScheduleFailure("Token refresh failed", str(exc)) from exc

        refreshed = TokenTriple(
            access_token=tokens["access_token"],
            expires_at=now + timedelta(seconds=int(tokens.get("expires_in") or 0)),
            refresh_token=tokens.get("refresh_token") or triple.refresh_token,
        )
        source.save(refreshed)
        logger.info("Schedule %s: refreshed credential saved (%s)", schedule.id, mask_token(refreshed.to_string()))
        return refreshed

    def _ensure_still_authorized(self, schedule: ScheduledChallenge) -> None:
        owner = self.db.get_owner(schedule.owner_id)
        if not owner:
            raise _ScheduleFailure("Owner not found", f"No user record for osu! id {schedule.owner_id}")
        if not owner.get("admin"):
            raise _ScheduleFailure(
                "User is no longer authorized to create challenges",
                f"User {owner.get('username') or schedule.owner_id} is no longer an admin",
            )

    def _create_room(self, schedule: ScheduledChallenge, access_token: str) -> tuple[Dict[str, Any], int]:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                room = self.osu.create_room(schedule.room_config, access_token)
                return room, attempt
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                logger.warning(
                    "Schedule %s: room creation attempt %s/%s failed: %s",
                    schedule.id,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                if attempt < self.max_attempts:
                    self.sleep(self.backoff_base_seconds * (2 ** (attempt - 1)))

        raise _ScheduleFailure(
            "Room creation failed",
            str(last_error) if last_error else "Unknown error",
            attempts=self.max_attempts,
        )

    def _send_chat(self, schedule: ScheduledChallenge, room_id: int, access_token: str) -> bool:
        try:
            self.osu.send_chat_messages(room_id, schedule.owner_id, schedule.chat_messages, access_token)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Schedule %s: chat delivery to room %s failed: %s", schedule.id, room_id, exc)
            return False
        return True

    def _finalize_failed(
        self,
        schedule: ScheduledChallenge,
        claim_token: str,
        failure: _ScheduleFailure,
    ) -> ScheduleResult:
        message = f"{failure.error}: {failure.details}" if failure.details else failure.error
        logger.warning("Schedule %s failed: %s", schedule.id, message)
        try:
            persisted = self.store.mark_failed(schedule, claim_token, error_message=message)
        except Exception:  # noqa: BLE001
            logger.exception("Could not persist failure of schedule %s", schedule.id)
            persisted = False
        if not persisted:
            logger.error("Failure of schedule %s was not persisted", schedule.id)

        return ScheduleResult(
            schedule_id=schedule.id,
            status="failed",
            attempts=failure.attempts,
            error=failure.error,
            details=failure.details,
        )


def build_default_executor() -> ScheduledChallengeExecutor:
    """Executor wired to the process-wide database, vault and osu! client."""

    return ScheduledChallengeExecutor(
        db=get_database_client(),
        vault=get_token_vault(),
        osu=get_osu_client(),
    )


def process_scheduled_challenges(
    *,
    grace_period_minutes: Optional[int] = None,
    limit: Optional[int] = None,
    executor: Optional[ScheduledChallengeExecutor] = None,
) -> BatchSummary:
    """Entry point shared by the HTTP trigger, the worker task and the CLI."""

    runner = executor or build_default_executor()
    return runner.process_due(grace_period_minutes=grace_period_minutes, limit=limit)


__all__ = [
    "ALREADY_PROCESSED_MESSAGE",
    "BatchSummary",
    "CHAT_FAILED_MESSAGE",
    "ScheduleResult",
    "ScheduledChallengeExecutor",
    "build_default_executor",
    "process_scheduled_challenges",
]

"""Shared fixtures: an in-memory stand-in for the Supabase database client."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from challengers.auth.vault import TokenVault
from challengers.scheduling.models import _parse_timestamp

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

_SCHEDULE_DEFAULTS: Dict[str, Any] = {
    "chat_messages": [],
    "ruleset_config": None,
    "season_id": None,
    "status": "pending",
    "created_room_id": None,
    "error_message": None,
    "retry_count": 0,
    "encrypted_token": None,
    "executed_at": None,
    "claimed_by": None,
    "claimed_at": None,
}


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


class FakeDatabase:
    """Implements the DatabaseClient surface over plain dicts.

    Conditional updates evaluate their filters the same way the PostgREST
    queries in ``challengers.db.client`` do.
    """

    def __init__(self) -> None:
        self.schedules: Dict[int, Dict[str, Any]] = {}
        self.credentials: Dict[int, Dict[str, Any]] = {}
        self.owners: Dict[int, Dict[str, Any]] = {}
        self._next_id = 1
        self.calls: List[Tuple[str, Any]] = []

    # -- seeding ---------------------------------------------------------
    def add_owner(self, osu_id: int, *, admin: bool = True, username: Optional[str] = None) -> Dict[str, Any]:
        owner = {"id": osu_id * 10, "osu_id": osu_id, "username": username or f"user{osu_id}", "admin": admin}
        self.owners[osu_id] = owner
        return owner

    def add_credential(self, osu_id: int, encrypted_token: str) -> None:
        stamp = _iso(datetime(2025, 5, 1, tzinfo=timezone.utc))
        self.credentials[osu_id] = {
            "osu_id": osu_id,
            "encrypted_token": encrypted_token,
            "created_at": stamp,
            "updated_at": stamp,
        }

    def add_schedule(self, *, osu_id: int, scheduled_time: datetime, **fields: Any) -> Dict[str, Any]:
        record = {
            "osu_id": osu_id,
            "scheduled_time": _iso(scheduled_time),
            "room_data": fields.pop("room_data", {"name": "Weekly Challenge", "playlist": [{"beatmap_id": 1}]}),
        }
        record.update(fields)
        return self.insert_scheduled_challenge(record)

    # -- scheduled challenges --------------------------------------------
    def insert_scheduled_challenge(self, record: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("insert", record))
        row = dict(_SCHEDULE_DEFAULTS)
        row.update(copy.deepcopy(record))
        row["id"] = self._next_id
        row.setdefault("created_at", _iso(FIXED_NOW))
        row.setdefault("updated_at", _iso(FIXED_NOW))
        self._next_id += 1
        self.schedules[row["id"]] = row
        return copy.deepcopy(row)

    def get_scheduled_challenge(self, schedule_id: int) -> Optional[Dict[str, Any]]:
        row = self.schedules.get(schedule_id)
        return copy.deepcopy(row) if row else None

    def get_scheduled_challenge_status(self, schedule_id: int) -> Optional[str]:
        row = self.schedules.get(schedule_id)
        return row["status"] if row else None

    def list_scheduled_challenges(
        self,
        *,
        owner_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        rows = [
            row
            for row in self.schedules.values()
            if (owner_id is None or row["osu_id"] == owner_id) and (not status or row["status"] == status)
        ]
        rows.sort(key=lambda row: _parse_timestamp(row["scheduled_time"]), reverse=status != "pending")
        page = rows[offset : offset + limit]
        public = [{key: value for key, value in row.items() if key != "encrypted_token"} for row in page]
        return copy.deepcopy(public), len(rows)

    def list_due_scheduled_challenges(
        self,
        window_start: datetime,
        window_end: datetime,
        *,
        limit: int,
    ) -> List[Dict[str, Any]]:
        rows = [
            row
            for row in self.schedules.values()
            if row["status"] == "pending"
            and window_start <= _parse_timestamp(row["scheduled_time"]) <= window_end
        ]
        rows.sort(key=lambda row: _parse_timestamp(row["scheduled_time"]))
        return copy.deepcopy(rows[:limit])

    def count_scheduled_challenges(
        self,
        *,
        status: str,
        scheduled_before: Optional[datetime] = None,
        updated_after: Optional[datetime] = None,
    ) -> int:
        count = 0
        for row in self.schedules.values():
            if row["status"] != status:
                continue
            if scheduled_before is not None and not _parse_timestamp(row["scheduled_time"]) < scheduled_before:
                continue
            if updated_after is not None and not _parse_timestamp(row["updated_at"]) >= updated_after:
                continue
            count += 1
        return count

    def _claim_is_free(self, row: Dict[str, Any], stale_before: Optional[datetime]) -> bool:
        if not row.get("claimed_by"):
            return True
        if stale_before is None:
            return False
        claimed_at = _parse_timestamp(row.get("claimed_at"))
        return claimed_at is not None and claimed_at < stale_before

    def update_pending_scheduled_challenge(
        self,
        schedule_id: int,
        updates: Dict[str, Any],
        *,
        claim_token: Optional[str] = None,
        stale_before: Optional[datetime] = None,
    ) -> Optional[Dict[str, Any]]:
        self.calls.append(("update", (schedule_id, dict(updates), claim_token)))
        row = self.schedules.get(schedule_id)
        if not row or row["status"] != "pending":
            return None
        if claim_token:
            if row.get("claimed_by") != claim_token:
                return None
        elif not self._claim_is_free(row, stale_before):
            return None
        row.update(copy.deepcopy(updates))
        row["updated_at"] = _iso(datetime.now(timezone.utc))
        return copy.deepcopy(row)

    def claim_scheduled_challenge(
        self,
        schedule_id: int,
        claim_token: str,
        *,
        now: datetime,
        stale_before: datetime,
    ) -> Optional[Dict[str, Any]]:
        self.calls.append(("claim", (schedule_id, claim_token)))
        row = self.schedules.get(schedule_id)
        if not row or row["status"] != "pending" or not self._claim_is_free(row, stale_before):
            return None
        row.update({"claimed_by": claim_token, "claimed_at": _iso(now), "updated_at": _iso(now)})
        return copy.deepcopy(row)

    # -- owner credentials -----------------------------------------------
    def get_owner_credential(self, owner_id: int) -> Optional[Dict[str, Any]]:
        row = self.credentials.get(owner_id)
        return copy.deepcopy(row) if row else None

    def upsert_owner_credential(self, owner_id: int, encrypted_token: str) -> Dict[str, Any]:
        self.calls.append(("upsert_credential", owner_id))
        now = _iso(datetime.now(timezone.utc))
        row = self.credentials.setdefault(owner_id, {"osu_id": owner_id, "created_at": now})
        row.update({"encrypted_token": encrypted_token, "updated_at": now})
        return copy.deepcopy(row)

    def delete_owner_credential(self, owner_id: int) -> bool:
        return self.credentials.pop(owner_id, None) is not None

    # -- owner directory -------------------------------------------------
    def get_owner(self, owner_id: int) -> Optional[Dict[str, Any]]:
        row = self.owners.get(owner_id)
        return copy.deepcopy(row) if row else None


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def vault() -> TokenVault:
    return TokenVault(b"k" * 32)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW

"""
Database client for scheduled challenges, owner credentials and owners.

This is a thin row-level wrapper around Supabase. State rules (what may be
mutated and when) live in :mod:`challengers.scheduling.store`; the methods
here only guarantee that every write to a schedule is conditional on the row
still being ``pending`` so a terminal row can never be overwritten.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client, create_client

from ..config import CONFIG

logger = logging.getLogger(__name__)

SCHEDULES_TABLE = "scheduled_challenges"
OWNER_TOKENS_TABLE = "user_osu_tokens"
USERS_TABLE = "users"

# Columns safe to return through the API; the encrypted token is excluded.
PUBLIC_SCHEDULE_COLUMNS = (
    "id, osu_id, scheduled_time, room_data, chat_messages, ruleset_config, "
    "status, created_room_id, error_message, retry_count, created_at, "
    "updated_at, executed_at, season_id"
)


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _first(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None


class SupabaseDatabaseClient:
    """Database client for Supabase operations."""

    def __init__(self, client: Optional[Client] = None):
        if client is not None:
            self.client = client
            self.using_service_role = True
            return

        self.supabase_url = getattr(CONFIG, "supabase_url", None) or os.getenv("SUPABASE_URL")

        # The executor acts for many owners at once, so it needs to bypass RLS.
        service_key = getattr(CONFIG, "supabase_service_role_key", None)
        anon_key = getattr(CONFIG, "supabase_anon_key", None)
        if service_key:
            self.supabase_key = service_key
            self.using_service_role = True
        else:
            self.supabase_key = anon_key
            self.using_service_role = False
            logger.warning("SUPABASE_SERVICE_ROLE_KEY not set; falling back to anon key")

        if not self.supabase_url or not self.supabase_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_ANON_KEY) environment variables are required"
            )

        self.client = create_client(self.supabase_url, self.supabase_key)

    # ------------------------------------------------------------------
    # Scheduled challenges
    # ------------------------------------------------------------------
    def insert_scheduled_challenge(self, record: Dict[str, Any]) -> Dict[str, Any]:
        result = self.client.table(SCHEDULES_TABLE).insert(record).execute()
        row = _first(result.data)
        if not row:
            raise RuntimeError("Scheduled challenge insert returned no row")
        return row

    def get_scheduled_challenge(self, schedule_id: int) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table(SCHEDULES_TABLE)
            .select("*")
            .eq("id", schedule_id)
            .limit(1)
            .execute()
        )
        return _first(result.data)

    def get_scheduled_challenge_status(self, schedule_id: int) -> Optional[str]:
        result = (
            self.client.table(SCHEDULES_TABLE)
            .select("status")
            .eq("id", schedule_id)
            .limit(1)
            .execute()
        )
        row = _first(result.data)
        return row.get("status") if row else None

    def list_scheduled_challenges(
        self,
        *,
        owner_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return a page of schedules (without encrypted tokens) and the total count."""

        query = self.client.table(SCHEDULES_TABLE).select(PUBLIC_SCHEDULE_COLUMNS, count="exact")
        if owner_id is not None:
            query = query.eq("osu_id", owner_id)
        if status:
            query = query.eq("status", status)

        # Upcoming first for pending, most recent first for everything else.
        query = query.order("scheduled_time", desc=status != "pending")
        result = query.range(offset, offset + limit - 1).execute()
        rows = result.data or []
        total = result.count if result.count is not None else len(rows)
        return rows, total

    def list_due_scheduled_challenges(
        self,
        window_start: datetime,
        window_end: datetime,
        *,
        limit: int,
    ) -> List[Dict[str, Any]]:
        """Pending schedules whose ``scheduled_time`` falls inside the window, oldest first."""

        result = (
            self.client.table(SCHEDULES_TABLE)
            .select("*")
            .eq("status", "pending")
            .gte("scheduled_time", _iso(window_start))
            .lte("scheduled_time", _iso(window_end))
            .order("scheduled_time", desc=False)
            .limit(limit)
            .execute()
        )
        return list(result.data or [])

    def count_scheduled_challenges(
        self,
        *,
        status: str,
        scheduled_before: Optional[datetime] = None,
        updated_after: Optional[datetime] = None,
    ) -> int:
        query = self.client.table(SCHEDULES_TABLE).select("id", count="exact").eq("status", status)
        if scheduled_before is not None:
            query = query.lt("scheduled_time", _iso(scheduled_before))
        if updated_after is not None:
            query = query.gte("updated_at", _iso(updated_after))
        result = query.limit(1).execute()
        return int(result.count or 0)

    def update_pending_scheduled_challenge(
        self,
        schedule_id: int,
        updates: Dict[str, Any],
        *,
        claim_token: Optional[str] = None,
        stale_before: Optional[datetime] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Apply ``updates`` only if the row is still pending.

        With ``claim_token`` the row must also be held by that claim. Without
        it the row must be unclaimed, or (when ``stale_before`` is given) carry
        a claim older than that instant. Returns the updated row, or ``None``
        when the condition did not match.
        """

        payload = dict(updates)
        payload["updated_at"] = _iso(datetime.now(timezone.utc))
        query = (
            self.client.table(SCHEDULES_TABLE)
            .update(payload)
            .eq("id", schedule_id)
            .eq("status", "pending")
        )
        if claim_token:
            query = query.eq("claimed_by", claim_token)
        elif stale_before is not None:
            query = query.or_(f'claimed_by.is.null,claimed_at.lt."{_iso(stale_before)}"')
        else:
            query = query.is_("claimed_by", "null")
        result = query.execute()
        return _first(result.data)

    def claim_scheduled_challenge(
        self,
        schedule_id: int,
        claim_token: str,
        *,
        now: datetime,
        stale_before: datetime,
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically mark a pending row as held by ``claim_token``.

        Succeeds for unclaimed rows and for rows whose previous claim is older
        than ``stale_before``. The database evaluates the condition and the
        write in one statement, so two concurrent invocations cannot both win.
        """

        result = (
            self.client.table(SCHEDULES_TABLE)
            .update({"claimed_by": claim_token, "claimed_at": _iso(now), "updated_at": _iso(now)})
            .eq("id", schedule_id)
            .eq("status", "pending")
            .or_(f'claimed_by.is.null,claimed_at.lt."{_iso(stale_before)}"')
            .execute()
        )
        return _first(result.data)

    # ------------------------------------------------------------------
    # Owner credentials
    # ------------------------------------------------------------------
    def get_owner_credential(self, owner_id: int) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table(OWNER_TOKENS_TABLE)
            .select("*")
            .eq("osu_id", owner_id)
            .limit(1)
            .execute()
        )
        return _first(result.data)

    def upsert_owner_credential(self, owner_id: int, encrypted_token: str) -> Dict[str, Any]:
        record = {
            "osu_id": owner_id,
            "encrypted_token": encrypted_token,
            "updated_at": _iso(datetime.now(timezone.utc)),
        }
        result = (
            self.client.table(OWNER_TOKENS_TABLE)
            .upsert(record, on_conflict="osu_id")
            .execute()
        )
        return _first(result.data) or record

    def delete_owner_credential(self, owner_id: int) -> bool:
        result = self.client.table(OWNER_TOKENS_TABLE).delete().eq("osu_id", owner_id).execute()
        return bool(result.data)

    # ------------------------------------------------------------------
    # Owner directory
    # ------------------------------------------------------------------
    def get_owner(self, owner_id: int) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table(USERS_TABLE)
            .select("id, osu_id, username, admin")
            .eq("osu_id", owner_id)
            .limit(1)
            .execute()
        )
        return _first(result.data)


# Global database client instance
_database_client: Optional[SupabaseDatabaseClient] = None


def get_database_client() -> SupabaseDatabaseClient:
    """Get the global database client instance."""
    global _database_client
    if _database_client is None:
        _database_client = SupabaseDatabaseClient()
    return _database_client


# Simple alias for readability
DatabaseClient = SupabaseDatabaseClient

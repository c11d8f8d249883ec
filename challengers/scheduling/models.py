"""Data structures describing scheduled challenges and stored owner credentials."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ScheduleStatus(str, Enum):
    """Lifecycle states of a scheduled challenge. Only ``pending`` is non-terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ScheduleStatus.PENDING

    @classmethod
    def coerce(cls, value: Any) -> Optional["ScheduleStatus"]:
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _coerce_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _iso_or_none(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class ScheduledChallenge:
    """One unit of deferred work: create a room for ``owner_id`` at ``scheduled_time``."""

    id: int
    owner_id: int
    scheduled_time: datetime
    room_config: Dict[str, Any] = field(default_factory=dict)
    chat_messages: List[str] = field(default_factory=list)
    status: ScheduleStatus = ScheduleStatus.PENDING
    created_room_id: Optional[int] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    embedded_credential: Optional[str] = None
    season_id: Optional[int] = None
    ruleset_config: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None

    @property
    def room_name(self) -> Optional[str]:
        name = self.room_config.get("name") if isinstance(self.room_config, dict) else None
        return str(name) if name else None

    @property
    def has_embedded_credential(self) -> bool:
        return bool(self.embedded_credential)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ScheduledChallenge":
        scheduled_time = _parse_timestamp(record.get("scheduled_time"))
        if scheduled_time is None:
            raise ValueError(f"Scheduled challenge {record.get('id')} has no valid scheduled_time")

        room_config = record.get("room_data")
        chat_messages = record.get("chat_messages") or []
        created_room_id = record.get("created_room_id")
        season_id = record.get("season_id")

        return cls(
            id=_coerce_int(record.get("id")),
            owner_id=_coerce_int(record.get("osu_id")),
            scheduled_time=scheduled_time,
            room_config=dict(room_config) if isinstance(room_config, dict) else {},
            chat_messages=[str(message) for message in chat_messages if message is not None],
            status=ScheduleStatus.coerce(record.get("status")) or ScheduleStatus.PENDING,
            created_room_id=_coerce_int(created_room_id) if created_room_id is not None else None,
            error_message=record.get("error_message"),
            retry_count=_coerce_int(record.get("retry_count")),
            embedded_credential=record.get("encrypted_token") or None,
            season_id=_coerce_int(season_id) if season_id is not None else None,
            ruleset_config=record.get("ruleset_config") or None,
            created_at=_parse_timestamp(record.get("created_at")),
            updated_at=_parse_timestamp(record.get("updated_at")),
            executed_at=_parse_timestamp(record.get("executed_at")),
            claimed_by=record.get("claimed_by") or None,
            claimed_at=_parse_timestamp(record.get("claimed_at")),
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialisable view for API responses. Never includes the credential."""

        return {
            "id": self.id,
            "osu_id": self.owner_id,
            "scheduled_time": self.scheduled_time.isoformat(),
            "room_data": self.room_config,
            "chat_messages": list(self.chat_messages),
            "ruleset_config": self.ruleset_config,
            "season_id": self.season_id,
            "status": self.status.value,
            "created_room_id": self.created_room_id,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "created_at": _iso_or_none(self.created_at),
            "updated_at": _iso_or_none(self.updated_at),
            "executed_at": _iso_or_none(self.executed_at),
        }


@dataclass
class OwnerCredential:
    """Encrypted credential stored for an owner; one row per ``owner_id``."""

    owner_id: int
    encrypted_token: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "OwnerCredential":
        return cls(
            owner_id=_coerce_int(record.get("osu_id")),
            encrypted_token=str(record.get("encrypted_token") or ""),
            created_at=_parse_timestamp(record.get("created_at")),
            updated_at=_parse_timestamp(record.get("updated_at")),
        )


@dataclass
class SchedulePage:
    """A page of schedules plus pagination metadata."""

    schedules: List[ScheduledChallenge]
    total: int
    limit: int
    offset: int

    @property
    def has_next(self) -> bool:
        return self.offset + self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.offset > 0

    def pagination(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
        }


__all__ = [
    "OwnerCredential",
    "ScheduleStatus",
    "SchedulePage",
    "ScheduledChallenge",
]

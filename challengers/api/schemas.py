"""Pydantic schemas for the scheduler API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class RequiredMod(BaseModel):
    acronym: str = Field(..., min_length=1)
    settings: Optional[Dict[str, Any]] = None


class RulesetConfig(BaseModel):
    ruleset_match_type: Literal["exact", "at_least", "any_of"] = "exact"
    required_mods: List[RequiredMod] = Field(..., min_length=1)
    ruleset_name: Optional[str] = None
    ruleset_description: Optional[str] = None


class CreateScheduleRequest(BaseModel):
    osu_id: int = Field(..., gt=0)
    scheduled_time: datetime
    room_data: Dict[str, Any]
    chat_messages: List[str] = Field(default_factory=list)
    season_id: Optional[int] = None
    ruleset_config: Optional[RulesetConfig] = None
    # Legacy: a plaintext triple embedded into the schedule itself.
    osu_token: Optional[str] = None

    @field_validator("osu_token", mode="before")
    @classmethod
    def _blank_token_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class UpdateScheduleRequest(BaseModel):
    scheduled_time: Optional[datetime] = None
    room_data: Optional[Dict[str, Any]] = None
    chat_messages: Optional[List[str]] = None
    season_id: Optional[int] = None
    ruleset_config: Optional[RulesetConfig] = None


class ScheduleResponse(BaseModel):
    id: int
    osu_id: int
    scheduled_time: datetime
    room_data: Dict[str, Any]
    chat_messages: List[str] = Field(default_factory=list)
    ruleset_config: Optional[Dict[str, Any]] = None
    season_id: Optional[int] = None
    status: str
    created_room_id: Optional[int] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_next: bool
    has_prev: bool


class ScheduleListResponse(BaseModel):
    success: bool = True
    schedules: List[ScheduleResponse]
    pagination: Pagination


class ScheduleEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    schedule: ScheduleResponse


class OwnerSummary(BaseModel):
    osu_id: int
    username: Optional[str] = None
    admin: bool = False


class StoreTokenRequest(BaseModel):
    osu_id: int = Field(..., gt=0)
    osu_token: str = Field(..., min_length=1)


class StoreTokenResponse(BaseModel):
    success: bool = True
    message: str
    user: OwnerSummary
    token_expires_at: datetime


class TokenStatusResponse(BaseModel):
    has_token: bool
    user: OwnerSummary
    token_set_at: Optional[datetime] = None
    token_created_at: Optional[datetime] = None


class DeleteTokenRequest(BaseModel):
    osu_id: int = Field(..., gt=0)


class PermissionRequest(BaseModel):
    osu_id: int = Field(..., gt=0)


class PermissionResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    user: Optional[OwnerSummary] = None


class ScheduleResultPayload(BaseModel):
    schedule_id: int
    status: str
    success: bool
    room_id: Optional[int] = None
    room_name: Optional[str] = None
    room_url: Optional[str] = None
    chat_sent: Optional[bool] = None
    attempts: Optional[int] = None
    error: Optional[str] = None
    details: Optional[str] = None


class BatchSummaryResponse(BaseModel):
    success: bool = True
    message: str
    processed: int
    successful: int
    failed: int
    skipped: int
    results: List[ScheduleResultPayload] = Field(default_factory=list)
    duration_ms: int


class SchedulerStatusResponse(BaseModel):
    status: str = "operational"
    pending: int
    overdue_beyond_grace: int
    recently_failed: int
    grace_period_minutes: int
    checked_at: datetime

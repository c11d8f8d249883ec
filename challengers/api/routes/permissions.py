"""Permission check used by operator tooling before scheduling."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...db import DatabaseClient
from ..dependencies import get_database, require_scheduler_secret
from ..owners import owner_summary
from ..schemas import PermissionRequest, PermissionResponse

router = APIRouter(dependencies=[Depends(require_scheduler_secret)])


@router.post("/admin/verify-schedule-permission", response_model=PermissionResponse)
def verify_schedule_permission(
    payload: PermissionRequest,
    db: DatabaseClient = Depends(get_database),
) -> Dict[str, Any]:
    owner = db.get_owner(payload.osu_id)
    if not owner:
        return {"allowed": False, "reason": "User not found in Challengers database", "user": None}

    allowed = owner.get("admin") is True
    return {
        "allowed": allowed,
        "reason": "User is a Challengers admin" if allowed else "User is not a Challengers admin",
        "user": owner_summary(owner),
    }

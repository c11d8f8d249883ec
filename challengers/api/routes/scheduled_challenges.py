"""Administrative endpoints for creating and managing scheduled challenges."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status

from ...auth.vault import TokenFormatError, TokenVault, mask_token, parse_token
from ...db import DatabaseClient
from ...scheduling.models import ScheduledChallenge
from ...scheduling.store import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ScheduleBusyError,
    ScheduleNotFoundError,
    ScheduleNotPendingError,
    ScheduleStore,
    ScheduleValidationError,
)
from ..dependencies import get_database, get_schedule_store, get_vault, require_scheduler_secret
from ..owners import load_admin_owner
from ..schemas import (
    CreateScheduleRequest,
    ScheduleEnvelope,
    ScheduleListResponse,
    UpdateScheduleRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_scheduler_secret)])


def _schedule_payload(schedule: ScheduledChallenge) -> Dict[str, Any]:
    return schedule.to_public_dict()


def _translate_store_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ScheduleNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scheduled challenge not found")
    if isinstance(exc, ScheduleNotPendingError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, ScheduleBusyError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ScheduleValidationError):
        detail: Any = str(exc)
        if exc.details:
            detail = {"error": str(exc), "details": exc.details}
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    raise exc


@router.post(
    "/admin/scheduled-challenges",
    response_model=ScheduleEnvelope,
    status_code=status.HTTP_201_CREATED,
)
def create_scheduled_challenge(
    payload: CreateScheduleRequest,
    db: DatabaseClient = Depends(get_database),
    store: ScheduleStore = Depends(get_schedule_store),
    vault: TokenVault = Depends(get_vault),
) -> Dict[str, Any]:
    """Schedule a room to be created for ``osu_id`` at ``scheduled_time``."""

    owner = load_admin_owner(db, payload.osu_id)

    embedded_credential: Optional[str] = None
    if payload.osu_token:
        try:
            parse_token(payload.osu_token)
        except TokenFormatError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid token format. Expected: access_token|timestamp|refresh_token",
            ) from exc
        embedded_credential = vault.encrypt(payload.osu_token)
        logger.info("Embedding credential %s in new schedule", mask_token(payload.osu_token))
    elif not db.get_owner_credential(payload.osu_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "NO_STORED_TOKEN",
                "message": "No stored osu! token for this user. Store a token before scheduling challenges.",
            },
        )

    try:
        schedule = store.create(
            owner_id=payload.osu_id,
            scheduled_time=payload.scheduled_time,
            room_config=payload.room_data,
            chat_messages=payload.chat_messages,
            season_id=payload.season_id,
            ruleset_config=payload.ruleset_config.model_dump(exclude_none=True) if payload.ruleset_config else None,
            embedded_credential=embedded_credential,
        )
    except ScheduleValidationError as exc:
        raise _translate_store_error(exc) from exc

    return {
        "success": True,
        "message": f"Challenge scheduled for {owner.get('username') or payload.osu_id}",
        "schedule": _schedule_payload(schedule),
    }


@router.get("/admin/scheduled-challenges", response_model=ScheduleListResponse)
def list_scheduled_challenges(
    osu_id: Optional[int] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    store: ScheduleStore = Depends(get_schedule_store),
) -> Dict[str, Any]:
    """List schedules; pending ones soonest first, everything else newest first."""

    try:
        page = store.list(owner_id=osu_id, status=status_filter, limit=limit, offset=offset)
    except ScheduleValidationError as exc:
        raise _translate_store_error(exc) from exc

    return {
        "success": True,
        "schedules": [_schedule_payload(schedule) for schedule in page.schedules],
        "pagination": page.pagination(),
    }


@router.get("/admin/scheduled-challenges/{schedule_id}", response_model=ScheduleEnvelope)
def get_scheduled_challenge(
    schedule_id: int = Path(..., gt=0),
    store: ScheduleStore = Depends(get_schedule_store),
) -> Dict[str, Any]:
    try:
        schedule = store.get(schedule_id)
    except ScheduleNotFoundError as exc:
        raise _translate_store_error(exc) from exc
    return {"success": True, "schedule": _schedule_payload(schedule)}


@router.patch("/admin/scheduled-challenges/{schedule_id}", response_model=ScheduleEnvelope)
def update_scheduled_challenge(
    schedule_id: int = Path(..., gt=0),
    payload: UpdateScheduleRequest = Body(...),
    store: ScheduleStore = Depends(get_schedule_store),
) -> Dict[str, Any]:
    """Edit a pending schedule. Rejected once the schedule has run or been cancelled."""

    fields = payload.model_dump(exclude_unset=True)
    if payload.ruleset_config is not None:
        fields["ruleset_config"] = payload.ruleset_config.model_dump(exclude_none=True)

    try:
        schedule = store.update(schedule_id, fields)
    except (ScheduleNotFoundError, ScheduleNotPendingError, ScheduleBusyError, ScheduleValidationError) as exc:
        raise _translate_store_error(exc) from exc

    return {"success": True, "message": "Scheduled challenge updated", "schedule": _schedule_payload(schedule)}


@router.delete("/admin/scheduled-challenges/{schedule_id}", response_model=ScheduleEnvelope)
def cancel_scheduled_challenge(
    schedule_id: int = Path(..., gt=0),
    store: ScheduleStore = Depends(get_schedule_store),
) -> Dict[str, Any]:
    """Cancel a pending schedule. The row is kept with status ``cancelled``."""

    try:
        schedule = store.cancel(schedule_id)
    except (ScheduleNotFoundError, ScheduleNotPendingError, ScheduleBusyError) as exc:
        raise _translate_store_error(exc) from exc

    return {"success": True, "message": "Scheduled challenge cancelled", "schedule": _schedule_payload(schedule)}

"""Owner credential management: store, inspect and revoke a delegated osu! token."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ...auth.vault import TokenFormatError, TokenVault, mask_token, parse_token
from ...db import DatabaseClient
from ...scheduling.models import OwnerCredential
from ...services.osu import OsuAPIError, OsuClient
from ..dependencies import get_database, get_osu_client, get_vault, require_scheduler_secret
from ..owners import load_admin_owner, load_owner, owner_summary
from ..schemas import DeleteTokenRequest, StoreTokenRequest, StoreTokenResponse, TokenStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_scheduler_secret)])


@router.post("/admin/user-token", response_model=StoreTokenResponse)
def store_user_token(
    payload: StoreTokenRequest,
    db: DatabaseClient = Depends(get_database),
    vault: TokenVault = Depends(get_vault),
    osu: OsuClient = Depends(get_osu_client),
) -> Dict[str, Any]:
    """Verify and store an owner's token triple, replacing any previous one."""

    owner = load_admin_owner(db, payload.osu_id)

    try:
        triple = parse_token(payload.osu_token)
    except TokenFormatError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid token format. Expected: access_token|timestamp|refresh_token",
        ) from exc

    if triple.is_expired(0):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Token is expired. Please provide a valid token.",
                "expires_at": triple.expires_at.isoformat(),
            },
        )

    try:
        me = osu.get_me(triple.access_token)
    except OsuAPIError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Failed to verify token with osu! API", "details": str(exc)},
        ) from exc

    if int(me.get("id")) != payload.osu_id:
        logger.warning("Token for osu! user %s submitted for owner %s", me.get("id"), payload.osu_id)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Token does not belong to this user",
                "token_user_id": me.get("id"),
                "expected_user_id": payload.osu_id,
            },
        )

    db.upsert_owner_credential(payload.osu_id, vault.encrypt(payload.osu_token))
    logger.info("Stored credential for owner %s (%s)", payload.osu_id, mask_token(payload.osu_token))

    return {
        "success": True,
        "message": "Token stored successfully",
        "user": owner_summary(owner),
        "token_expires_at": triple.expires_at,
    }


@router.get("/admin/user-token", response_model=TokenStatusResponse)
def get_user_token_status(
    osu_id: int = Query(..., gt=0),
    db: DatabaseClient = Depends(get_database),
) -> Dict[str, Any]:
    """Report whether an owner has a stored credential. Never returns the token."""

    owner = load_owner(db, osu_id)
    record = db.get_owner_credential(osu_id)
    credential = OwnerCredential.from_record(record) if record else None

    return {
        "has_token": credential is not None,
        "user": owner_summary(owner),
        "token_set_at": credential.updated_at if credential else None,
        "token_created_at": credential.created_at if credential else None,
    }


@router.delete("/admin/user-token")
def revoke_user_token(
    payload: DeleteTokenRequest = Body(...),
    db: DatabaseClient = Depends(get_database),
) -> Dict[str, Any]:
    """Remove an owner's stored credential. Pending schedules that rely on it will fail."""

    load_owner(db, payload.osu_id)
    if not db.delete_owner_credential(payload.osu_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No stored token for this user")

    logger.info("Revoked stored credential for owner %s", payload.osu_id)
    return {"success": True, "message": "Token revoked successfully"}

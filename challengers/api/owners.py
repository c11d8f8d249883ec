"""Owner lookups shared by the administrative routes."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import HTTPException, status

from ..db import DatabaseClient
from .schemas import OwnerSummary


def owner_summary(owner: Dict[str, Any]) -> OwnerSummary:
    return OwnerSummary(
        osu_id=int(owner.get("osu_id")),
        username=owner.get("username"),
        admin=owner.get("admin") is True,
    )


def load_owner(db: DatabaseClient, osu_id: int) -> Dict[str, Any]:
    """Return the owner record or raise 404."""

    owner = db.get_owner(osu_id)
    if not owner:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return owner


def load_admin_owner(db: DatabaseClient, osu_id: int) -> Dict[str, Any]:
    """Return the owner record, raising 404 if unknown and 403 if not an admin."""

    owner = load_owner(db, osu_id)
    if owner.get("admin") is not True:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return owner

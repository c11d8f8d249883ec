"""Tests for the scheduling, owner token and permission routes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from challengers.api.routes import permissions as permission_routes
from challengers.api.routes import scheduled_challenges as schedule_routes
from challengers.api.routes import user_tokens as token_routes
from challengers.api.schemas import (
    CreateScheduleRequest,
    DeleteTokenRequest,
    PermissionRequest,
    StoreTokenRequest,
    UpdateScheduleRequest,
)
from challengers.auth.vault import create_token_string
from challengers.scheduling.store import ScheduleStore
from challengers.services.osu import OsuAPIError

ROOM = {"name": "Weekly Challenge", "playlist": [{"beatmap_id": 42}]}


class StubOsu:
    def __init__(self, user_id: int = 7, error: Exception | None = None):
        self.user_id = user_id
        self.error = error
        self.tokens = []

    def get_me(self, access_token):
        self.tokens.append(access_token)
        if self.error:
            raise self.error
        return {"id": self.user_id, "username": "owner"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _valid_token(hours: int = 24) -> str:
    return create_token_string("access-abcdefgh", int((_now() + timedelta(hours=hours)).timestamp()), "refresh-abcdefgh")


@pytest.fixture
def store(fake_db) -> ScheduleStore:
    return ScheduleStore(fake_db)


def _create(fake_db, store, vault, **overrides):
    body = {"osu_id": 7, "scheduled_time": _now() + timedelta(hours=2), "room_data": ROOM}
    body.update(overrides)
    return schedule_routes.create_scheduled_challenge(
        CreateScheduleRequest(**body),
        db=fake_db,
        store=store,
        vault=vault,
    )


# --- scheduled challenges -------------------------------------------------


def test_create_with_stored_token(fake_db, store, vault) -> None:
    fake_db.add_owner(7, admin=True, username="owner")
    fake_db.add_credential(7, vault.encrypt(_valid_token()))

    payload = _create(fake_db, store, vault, chat_messages=["gl"])

    assert payload["success"] is True
    schedule = payload["schedule"]
    assert schedule["status"] == "pending"
    assert schedule["chat_messages"] == ["gl"]
    assert "encrypted_token" not in schedule
    assert fake_db.schedules[schedule["id"]]["encrypted_token"] is None


def test_create_requires_stored_token_without_legacy_token(fake_db, store, vault) -> None:
    fake_db.add_owner(7, admin=True)

    with pytest.raises(HTTPException) as exc:
        _create(fake_db, store, vault)

    assert exc.value.status_code == 400
    assert exc.value.detail["error"] == "NO_STORED_TOKEN"
    assert fake_db.schedules == {}


def test_create_with_legacy_token_embeds_encrypted_credential(fake_db, store, vault) -> None:
    fake_db.add_owner(7, admin=True)
    token = _valid_token()

    payload = _create(fake_db, store, vault, osu_token=token)

    stored = fake_db.schedules[payload["schedule"]["id"]]["encrypted_token"]
    assert stored and stored != token
    assert vault.decrypt(stored) == token


def test_create_rejects_malformed_legacy_token(fake_db, store, vault) -> None:
    fake_db.add_owner(7, admin=True)

    with pytest.raises(HTTPException) as exc:
        _create(fake_db, store, vault, osu_token="not-a-triple")

    assert exc.value.status_code == 400


def test_create_requires_admin_owner(fake_db, store, vault) -> None:
    with pytest.raises(HTTPException) as missing:
        _create(fake_db, store, vault)
    assert missing.value.status_code == 404

    fake_db.add_owner(7, admin=False)
    with pytest.raises(HTTPException) as forbidden:
        _create(fake_db, store, vault)
    assert forbidden.value.status_code == 403


def test_create_rejects_past_time(fake_db, store, vault) -> None:
    fake_db.add_owner(7, admin=True)
    fake_db.add_credential(7, vault.encrypt(_valid_token()))

    with pytest.raises(HTTPException) as exc:
        _create(fake_db, store, vault, scheduled_time=_now() - timedelta(minutes=1))

    assert exc.value.status_code == 400


def test_create_with_ruleset(fake_db, store, vault) -> None:
    fake_db.add_owner(7, admin=True)
    fake_db.add_credential(7, vault.encrypt(_valid_token()))

    payload = _create(
        fake_db,
        store,
        vault,
        ruleset_config={"ruleset_match_type": "any_of", "required_mods": [{"acronym": "HD"}, {"acronym": "HR"}]},
    )

    assert payload["schedule"]["ruleset_config"] == {
        "ruleset_match_type": "any_of",
        "required_mods": [{"acronym": "HD"}, {"acronym": "HR"}],
    }


def test_list_get_update_and_cancel(fake_db, store, vault) -> None:
    fake_db.add_owner(7, admin=True)
    fake_db.add_credential(7, vault.encrypt(_valid_token()))
    created = _create(fake_db, store, vault)["schedule"]

    listing = schedule_routes.list_scheduled_challenges(
        osu_id=7, status_filter="pending", limit=50, offset=0, store=store
    )
    assert [item["id"] for item in listing["schedules"]] == [created["id"]]
    assert listing["pagination"]["total"] == 1

    fetched = schedule_routes.get_scheduled_challenge(schedule_id=created["id"], store=store)
    assert fetched["schedule"]["id"] == created["id"]

    updated = schedule_routes.update_scheduled_challenge(
        schedule_id=created["id"],
        payload=UpdateScheduleRequest(chat_messages=["updated"]),
        store=store,
    )
    assert updated["schedule"]["chat_messages"] == ["updated"]
    assert updated["schedule"]["room_data"] == ROOM

    cancelled = schedule_routes.cancel_scheduled_challenge(schedule_id=created["id"], store=store)
    assert cancelled["schedule"]["status"] == "cancelled"

    with pytest.raises(HTTPException) as exc:
        schedule_routes.cancel_scheduled_challenge(schedule_id=created["id"], store=store)
    assert exc.value.status_code == 400


def test_get_missing_schedule_is_404(store) -> None:
    with pytest.raises(HTTPException) as exc:
        schedule_routes.get_scheduled_challenge(schedule_id=404, store=store)

    assert exc.value.status_code == 404


def test_update_of_claimed_schedule_is_409(fake_db, store) -> None:
    record = fake_db.add_schedule(osu_id=7, scheduled_time=_now())
    store.claim(record["id"], "executor")

    with pytest.raises(HTTPException) as exc:
        schedule_routes.update_scheduled_challenge(
            schedule_id=record["id"],
            payload=UpdateScheduleRequest(chat_messages=["late edit"]),
            store=store,
        )

    assert exc.value.status_code == 409


def test_list_rejects_unknown_status(store) -> None:
    with pytest.raises(HTTPException) as exc:
        schedule_routes.list_scheduled_challenges(osu_id=None, status_filter="bogus", limit=50, offset=0, store=store)

    assert exc.value.status_code == 400


# --- owner tokens ---------------------------------------------------------


def test_store_token_verifies_and_encrypts(fake_db, vault) -> None:
    fake_db.add_owner(7, admin=True, username="owner")
    token = _valid_token()
    osu = StubOsu(user_id=7)

    payload = token_routes.store_user_token(StoreTokenRequest(osu_id=7, osu_token=token), db=fake_db, vault=vault, osu=osu)

    assert payload["success"] is True
    assert payload["user"].username == "owner"
    assert osu.tokens == ["access-abcdefgh"]
    assert vault.decrypt(fake_db.credentials[7]["encrypted_token"]) == token


def test_store_token_rejects_expired_token(fake_db, vault) -> None:
    fake_db.add_owner(7, admin=True)
    osu = StubOsu()

    with pytest.raises(HTTPException) as exc:
        token_routes.store_user_token(
            StoreTokenRequest(osu_id=7, osu_token=_valid_token(hours=-1)),
            db=fake_db,
            vault=vault,
            osu=osu,
        )

    assert exc.value.status_code == 400
    assert osu.tokens == []
    assert fake_db.credentials == {}


def test_store_token_rejects_token_of_another_user(fake_db, vault) -> None:
    fake_db.add_owner(7, admin=True)

    with pytest.raises(HTTPException) as exc:
        token_routes.store_user_token(
            StoreTokenRequest(osu_id=7, osu_token=_valid_token()),
            db=fake_db,
            vault=vault,
            osu=StubOsu(user_id=99),
        )

    assert exc.value.status_code == 400
    assert exc.value.detail["token_user_id"] == 99
    assert fake_db.credentials == {}


def test_store_token_reports_verification_failure(fake_db, vault) -> None:
    fake_db.add_owner(7, admin=True)

    with pytest.raises(HTTPException) as exc:
        token_routes.store_user_token(
            StoreTokenRequest(osu_id=7, osu_token=_valid_token()),
            db=fake_db,
            vault=vault,
            osu=StubOsu(error=OsuAPIError("osu! API error 401: invalid", status_code=401)),
        )

    assert exc.value.status_code == 400
    assert "Failed to verify" in exc.value.detail["error"]


def test_store_token_requires_admin(fake_db, vault) -> None:
    fake_db.add_owner(7, admin=False)

    with pytest.raises(HTTPException) as exc:
        token_routes.store_user_token(
            StoreTokenRequest(osu_id=7, osu_token=_valid_token()),
            db=fake_db,
            vault=vault,
            osu=StubOsu(),
        )

    assert exc.value.status_code == 403


def test_token_status_and_revoke(fake_db, vault) -> None:
    fake_db.add_owner(7, admin=True)

    before = token_routes.get_user_token_status(osu_id=7, db=fake_db)
    assert before["has_token"] is False
    assert before["token_set_at"] is None

    fake_db.add_credential(7, vault.encrypt(_valid_token()))
    after = token_routes.get_user_token_status(osu_id=7, db=fake_db)
    assert after["has_token"] is True
    assert after["token_set_at"] is not None

    revoked = token_routes.revoke_user_token(DeleteTokenRequest(osu_id=7), db=fake_db)
    assert revoked["success"] is True
    assert fake_db.credentials == {}

    with pytest.raises(HTTPException) as exc:
        token_routes.revoke_user_token(DeleteTokenRequest(osu_id=7), db=fake_db)
    assert exc.value.status_code == 404


# --- permission check -----------------------------------------------------


def test_permission_check(fake_db) -> None:
    fake_db.add_owner(7, admin=True, username="owner")
    fake_db.add_owner(8, admin=False)

    allowed = permission_routes.verify_schedule_permission(PermissionRequest(osu_id=7), db=fake_db)
    denied = permission_routes.verify_schedule_permission(PermissionRequest(osu_id=8), db=fake_db)
    unknown = permission_routes.verify_schedule_permission(PermissionRequest(osu_id=9), db=fake_db)

    assert allowed["allowed"] is True
    assert allowed["user"].username == "owner"
    assert denied["allowed"] is False
    assert unknown == {"allowed": False, "reason": "User not found in Challengers database", "user": None}

"""
osu! API v2 collaborator used by the scheduler.

Covers the four calls the scheduler needs: refreshing a delegated user token,
creating a multiplayer room with it, posting chat messages into the room's
channel and resolving the token's own user (``/me``) when an owner stores a
new credential.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

import requests

from ...config import CONFIG

logger = logging.getLogger(__name__)


class OsuAPIError(RuntimeError):
    """Raised when an osu! API call fails.

    ``transient`` is True for network errors, rate limiting and 5xx responses;
    callers may use it to tell retryable failures from permanent rejections.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, transient: bool = False):
        self.status_code = status_code
        self.transient = transient
        super().__init__(message)


def _is_transient(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return (response.text or "").strip()[:200]
    if isinstance(payload, dict):
        for key in ("error", "message", "hint"):
            value = payload.get(key)
            if value:
                return str(value)
    return str(payload)[:200]


class OsuClient:
    """Thin ``requests`` wrapper around the osu! API v2."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        token_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or getattr(CONFIG, "osu_api_base_url", "https://osu.ppy.sh/api/v2")).rstrip("/")
        self.token_url = token_url or getattr(CONFIG, "osu_oauth_token_url", "https://osu.ppy.sh/oauth/token")
        self.client_id = client_id if client_id is not None else getattr(CONFIG, "osu_client_id", None)
        self.client_secret = client_secret if client_secret is not None else getattr(CONFIG, "osu_client_secret", None)
        self.timeout = timeout if timeout is not None else getattr(CONFIG, "osu_request_timeout", 15.0)
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _request(
        self,
        method: str,
        url: str,
        *,
        access_token: Optional[str] = None,
        json: Any = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = self._session.request(
                method,
                url,
                headers=headers,
                json=json,
                data=data,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("osu! API %s %s failed: %s", method, url, exc)
            raise OsuAPIError(f"Network error calling osu! API: {exc}", transient=True) from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning("osu! API %s %s returned %s: %s", method, url, response.status_code, detail)
            raise OsuAPIError(
                f"osu! API error {response.status_code}: {detail or response.reason}",
                status_code=response.status_code,
                transient=_is_transient(response.status_code),
            )

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise OsuAPIError(
                "osu! API returned a non-JSON response",
                status_code=response.status_code,
            ) from exc

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------
    def refresh_user_token(self, refresh_token: str) -> Dict[str, Any]:
        """Exchange ``refresh_token`` for ``{access_token, refresh_token, expires_in}``."""

        if not self.client_id or not self.client_secret:
            raise OsuAPIError("OSU_CLIENT_ID and OSU_CLIENT_SECRET must be set to refresh tokens")

        payload = self._request(
            "POST",
            self.token_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
        )
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise OsuAPIError("Token refresh response did not include an access token")

        try:
            expires_in = int(payload.get("expires_in") or 0)
        except (TypeError, ValueError) as exc:
            raise OsuAPIError("Token refresh response has an invalid expires_in") from exc

        return {
            "access_token": payload["access_token"],
            # osu! may omit a rotated refresh token; keep the old one then.
            "refresh_token": payload.get("refresh_token") or refresh_token,
            "expires_in": expires_in,
        }

    def get_me(self, access_token: str) -> Dict[str, Any]:
        """Return the user the access token belongs to."""

        payload = self._request("GET", self._url("/me"), access_token=access_token)
        if not isinstance(payload, dict) or "id" not in payload:
            raise OsuAPIError("osu! API /me response did not include a user id")
        return payload

    # ------------------------------------------------------------------
    # Multiplayer
    # ------------------------------------------------------------------
    def create_room(self, room_config: Mapping[str, Any], access_token: str) -> Dict[str, Any]:
        """Create a multiplayer room on behalf of the token's owner; returns ``{id, name}``."""

        payload = self._request("POST", self._url("/rooms"), access_token=access_token, json=dict(room_config))
        if not isinstance(payload, dict) or payload.get("id") is None:
            raise OsuAPIError("Room creation response did not include a room id")
        return {"id": int(payload["id"]), "name": payload.get("name") or room_config.get("name")}

    def send_chat_messages(
        self,
        room_id: int,
        owner_id: int,
        messages: Iterable[str],
        access_token: str,
    ) -> None:
        """Post ``messages`` in order into the room's chat channel as the owner."""

        room = self._request("GET", self._url(f"/rooms/{room_id}"), access_token=access_token)
        channel_id = room.get("channel_id") if isinstance(room, dict) else None
        if not channel_id:
            raise OsuAPIError(f"Room {room_id} has no chat channel")

        sent = 0
        for message in messages:
            text = (message or "").strip()
            if not text:
                continue
            self._request(
                "POST",
                self._url(f"/chat/channels/{channel_id}/messages"),
                access_token=access_token,
                json={"message": text, "is_action": False},
            )
            sent += 1
        logger.info("Sent %s chat message(s) to room %s as user %s", sent, room_id, owner_id)


_osu_client: Optional[OsuClient] = None


def get_osu_client() -> OsuClient:
    """Get the global osu! API client."""
    global _osu_client
    if _osu_client is None:
        _osu_client = OsuClient()
    return _osu_client


__all__ = ["OsuAPIError", "OsuClient", "get_osu_client"]

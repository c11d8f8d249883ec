"""osu! API v2 integration."""

from .client import OsuAPIError, OsuClient, get_osu_client

__all__ = ["OsuAPIError", "OsuClient", "get_osu_client"]

"""Lightweight logging helpers shared by the API, worker and CLI."""

from __future__ import annotations

import logging
from typing import Any, Optional

_LOGGER = logging.getLogger("challengers")

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _coerce(parts: tuple[object, ...]) -> str:
    rendered = " ".join(str(part) for part in parts if part is not None)
    return rendered.strip()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a root handler once; later calls only adjust the level."""

    from .config import CONFIG

    resolved = (level or getattr(CONFIG, "log_level", "INFO") or "INFO").upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=_FORMAT)
    root.setLevel(resolved)


def log(*parts: object, **metadata: Any) -> None:
    """
    Emit an info-level log message.

    Keyword arguments are appended to the message as a metadata dict so call
    sites can attach identifiers without formatting them by hand.
    """

    message = _coerce(parts)
    if metadata:
        message = f"{message} | {metadata}"

    if not _LOGGER.handlers and not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format=_FORMAT)

    _LOGGER.info(message)


__all__ = ["configure_logging", "log"]

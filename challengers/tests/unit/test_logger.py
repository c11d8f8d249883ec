"""Tests for the shared logging shim."""

from __future__ import annotations

import logging

from challengers import logger


def test_log_appends_metadata(caplog) -> None:
    caplog.set_level(logging.INFO)

    logger.log("processing", "batch", grace_minutes=100)

    assert any("processing batch" in message for message in caplog.messages)
    assert any("grace_minutes" in message for message in caplog.messages)


def test_configure_logging_sets_root_level() -> None:
    root = logging.getLogger()
    previous = root.level
    try:
        logger.configure_logging("warning")
        assert root.level == logging.WARNING
    finally:
        root.setLevel(previous)

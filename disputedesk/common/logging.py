"""Logging helpers shared by every DisputeDesk module."""

from __future__ import annotations

import logging

from disputedesk.config import settings

ROOT_LOGGER = "disputedesk"


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(level: str | None = None) -> None:
    """Configure the package logger once; safe to call repeatedly."""
    level_name = (level or settings.LOG_LEVEL).upper()
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        root.addHandler(handler)

"""Shared helpers for process logging and timestamps."""

from __future__ import annotations

import logging
from datetime import UTC, datetime


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def configure_logging(debug: bool) -> None:
    """Install a basic root handler unless the host application already did."""

    root_logger = logging.getLogger()
    if root_logger.handlers:
        if debug:
            root_logger.setLevel(logging.DEBUG)
        return
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
    )


def truncate_for_log(value: str, limit: int = 200) -> str:
    """Collapse *value* to a single stripped line no longer than *limit*."""

    text = " ".join(value.split())
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def utc_now_iso() -> str:
    """Return the current UTC time in ISO-8601 with millisecond precision."""

    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")

"""
utils.py — Shared Utility Functions and Logging Setup
======================================================

Common helpers used across the telemetry engine modules.
"""

import logging
from datetime import datetime, timezone

from . import config


def setup_logging(level: str = None) -> None:
    """
    Configure console logging for the telemetry engine.

    Sets up a console handler with timestamp, logger name, level,
    and message. All telemetry.* loggers inherit this configuration.

    Args:
        level: Log level string (DEBUG/INFO/WARNING/ERROR/CRITICAL).
               Defaults to config.LOG_LEVEL.
    """
    level = level or config.LOG_LEVEL
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(name)s] %(levelname)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger("telemetry")
    root_logger.setLevel(numeric_level)

    # Avoid duplicate handlers on repeated calls
    if not root_logger.handlers:
        root_logger.addHandler(handler)


def parse_timestamp(value) -> datetime:
    """
    Coerce a wire timestamp into an aware UTC datetime.

    Accepts datetime objects, ISO-8601 strings (a trailing 'Z' is allowed)
    and epoch milliseconds as produced by browser and firmware clocks.
    Anything missing or unparseable falls back to the current time.

    Args:
        value: datetime, str, int/float epoch ms, or None.

    Returns:
        Timezone-aware datetime.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        try:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            ts = datetime.now(timezone.utc)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            ts = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            ts = datetime.now(timezone.utc)
    else:
        ts = datetime.now(timezone.utc)

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts

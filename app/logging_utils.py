"""
Logging setup and structured event helpers shared by the API, the
scheduler and the command-line scripts.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level_name: str | None = None) -> None:
    """
    Configure root logging once for the process.

    ``level_name`` falls back to ``LOG_LEVEL`` and then INFO; unknown
    names resolve to INFO.
    """

    raw_level = level_name or os.getenv("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=getattr(logging, raw_level.strip().upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one scoring-run event as a compact JSON line.

    Fields whose value is None are dropped.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event}
    payload.update({key: value for key, value in fields.items() if value is not None})
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))

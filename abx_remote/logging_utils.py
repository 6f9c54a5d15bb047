"""
Logging setup for the remote.

Environment:
    LOG_LEVEL             root level (default INFO)
    AMP_DEBUG             1 = abx_remote loggers at DEBUG (every frame sent and
                          received) while everything else stays at LOG_LEVEL
    WEBSOCKETS_LOG_LEVEL  level for the websockets library (default WARNING);
                          its DEBUG output dumps every frame header and ping
"""
from __future__ import annotations

import logging
import os

_TRUE = ("1", "true", "yes", "y", "on")


def _level(key: str, default: str) -> int:
    name = os.getenv(key, default).upper().strip()
    return getattr(logging, name, getattr(logging, default))


def setup_logging() -> None:
    logging.basicConfig(
        level=_level("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Console output shares the terminal; keep the socket library to real problems.
    logging.getLogger("websockets").setLevel(_level("WEBSOCKETS_LOG_LEVEL", "WARNING"))

    if os.getenv("AMP_DEBUG", "0").strip().lower() in _TRUE:
        logging.getLogger("abx_remote").setLevel(logging.DEBUG)

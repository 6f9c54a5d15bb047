from __future__ import annotations
from dataclasses import dataclass
import logging
import os
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"


def _env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or str(v).strip() == "":
        return default
    try:
        return int(v)
    except Exception as e:
        raise ValueError(f"{key} must be an int, got {v!r}") from e


def _env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None or str(v).strip() == "":
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "y", "on")


@dataclass(frozen=True)
class ClientConfig:
    host: str
    port: int
    ws_path: str
    simulate: bool
    reconnect_delay_ms: int = 2000
    abx_unmute_delay_ms: int = 1000
    stopwatch_tick_ms: int = 1000

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}{self.ws_path}"


def load_config(env_file: str | None = None) -> ClientConfig:
    """Load config from .env + environment.

    Precedence: real environment wins over .env values.
    """
    if env_file:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)

    host = os.getenv("AMP_HOST", "amp.local").strip() or "amp.local"
    port = _env_int("AMP_PORT", 80)

    ws_path = os.getenv("AMP_WS_PATH", "/ws").strip() or "/ws"
    if not ws_path.startswith("/"):
        ws_path = "/" + ws_path

    # Pointing the client at the loopback address means no real amplifier.
    simulate = _env_bool("AMP_SIMULATE", host == LOOPBACK_HOST)

    reconnect_delay_ms = _env_int("RECONNECT_DELAY_MS", 2000)
    abx_unmute_delay_ms = _env_int("ABX_UNMUTE_DELAY_MS", 1000)
    stopwatch_tick_ms = _env_int("STOPWATCH_TICK_MS", 1000)

    for key, v in (
        ("RECONNECT_DELAY_MS", reconnect_delay_ms),
        ("ABX_UNMUTE_DELAY_MS", abx_unmute_delay_ms),
        ("STOPWATCH_TICK_MS", stopwatch_tick_ms),
    ):
        if v <= 0:
            raise ValueError(f"{key} must be > 0, got {v}")

    if simulate and host != LOOPBACK_HOST:
        logger.warning("AMP_SIMULATE is on: %s will not be contacted", host)

    return ClientConfig(
        host=host,
        port=port,
        ws_path=ws_path,
        simulate=simulate,
        reconnect_delay_ms=reconnect_delay_ms,
        abx_unmute_delay_ms=abx_unmute_delay_ms,
        stopwatch_tick_ms=stopwatch_tick_ms,
    )

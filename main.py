from __future__ import annotations

import asyncio
import logging

from abx_remote.app import run_client
from abx_remote.config import load_config
from abx_remote.logging_utils import setup_logging


logger = logging.getLogger(__name__)


def _log_config(cfg) -> None:
    logging.getLogger("abx_remote").info(
        "Config: url=%s simulate=%s reconnect_delay_ms=%s abx_unmute_delay_ms=%s stopwatch_tick_ms=%s",
        getattr(cfg, "url", ""),
        getattr(cfg, "simulate", ""),
        getattr(cfg, "reconnect_delay_ms", ""),
        getattr(cfg, "abx_unmute_delay_ms", ""),
        getattr(cfg, "stopwatch_tick_ms", ""),
    )


async def _async_main() -> None:
    """Async entry point: loads config, connects to the amplifier, runs the console."""
    setup_logging()
    cfg = load_config()
    logger.info("=== amplifier A/B + ABX remote starting ===")
    _log_config(cfg)
    await run_client(cfg)


def main() -> None:
    try:
        asyncio.run(_async_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

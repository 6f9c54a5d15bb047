"""
Amplifier remote: wiring and run loop.

Data path:
  websocket frame -> ChannelManager (JSON decode) -> StateSynchronizer
    -> DeviceState / SessionSnapshot -> SessionViewController -> console
  console command -> AB / ABX controller -> StateSynchronizer.issue
    -> ChannelManager.send -> websocket frame

Design:
  1. One asyncio loop; commands, timers and inbound frames run to completion
     one after another, so nothing needs a lock.
  2. The link never gives up: any unrequested close retries after 2 s.
  3. Every (re)connect starts with get_state; snapshots replace state whole.
  4. Stdin is read on a daemon thread and handed to the loop line by line.
"""
from __future__ import annotations

import asyncio
import logging
import random
import sys
import threading
from typing import Optional

from .channel import ChannelManager, Connector
from .config import ClientConfig
from .console import HELP, Console
from .sessions import ABTestController, ABXTestController
from .state import StateSynchronizer
from .timers import LoopScheduler, Scheduler
from .views import SessionViewController

logger = logging.getLogger(__name__)


class AmpRemote:
    """All client components, wired with explicit collaborators."""

    def __init__(
        self,
        cfg: ClientConfig,
        *,
        scheduler: Optional[Scheduler] = None,
        connector: Optional[Connector] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.cfg = cfg
        self.scheduler = scheduler or LoopScheduler()
        self.views = SessionViewController()
        self.channel = ChannelManager(
            cfg.url,
            scheduler=self.scheduler,
            connector=connector,
            simulate=cfg.simulate,
            reconnect_delay_s=cfg.reconnect_delay_ms / 1000.0,
        )
        self.sync = StateSynchronizer(self.channel, self.views)
        self.channel.on_message = self.sync.apply_inbound
        self.ab = ABTestController(
            self.sync,
            self.scheduler,
            tick_s=cfg.stopwatch_tick_ms / 1000.0,
        )
        self.abx = ABXTestController(
            self.sync,
            self.scheduler,
            rng=rng,
            unmute_delay_s=cfg.abx_unmute_delay_ms / 1000.0,
        )

    def start(self) -> None:
        self.channel.connect()

    async def close(self) -> None:
        self.ab.stopwatch.stop()
        await self.channel.disconnect()


def _read_stdin(loop: asyncio.AbstractEventLoop, on_line, on_eof) -> None:
    for line in sys.stdin:
        loop.call_soon_threadsafe(on_line, line)
    loop.call_soon_threadsafe(on_eof)


async def run_client(cfg: ClientConfig) -> None:
    remote = AmpRemote(cfg)
    console = Console(remote)
    stop_event = asyncio.Event()

    import signal
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, OSError):
            pass

    def _on_line(line: str) -> None:
        if not console.handle(line):
            stop_event.set()

    remote.start()
    print(HELP)
    threading.Thread(
        target=_read_stdin,
        args=(loop, _on_line, stop_event.set),
        name="stdin-reader",
        daemon=True,
    ).start()

    logger.info("Remote ready (%s): type 'help' or 'quit'", "simulation" if cfg.simulate else cfg.url)
    await stop_event.wait()
    logger.info("Shutting down...")
    await remote.close()

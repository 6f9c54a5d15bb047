"""
Amplifier simulator for the A/B + ABX remote.
Speaks the same websocket protocol as the amplifier's /ws endpoint so the
remote (and its tests) can run against something real without hardware.

Behaviour copied from the device:
  - get_state answers with a full amp_state snapshot
  - every set_* command changes the state and broadcasts it to all clients
  - start_test runs the device-side A/B test: a random preset every
    min..max seconds, muted for one tick around each switch
  - ab_test is included in broadcasts only while test mode is enabled

Usage:
    python amp_simulator.py
    AMP_HOST=127.0.0.1 AMP_PORT=8765 AMP_SIMULATE=0 python main.py

Environment variables:
    SIM_HOST          (default 0.0.0.0)
    SIM_PORT          (default 8765)
    SIM_TICK_MS       (default 1000)   A/B test task period
    SIM_MAX_CLIENTS   (default 7)      further connections are refused
"""

from __future__ import annotations

import asyncio
import json
import os
import random
import time
from typing import Any, Optional

import websockets

from abx_remote import wire


def log(msg: str) -> None:
    print(f"[{time.strftime('%H:%M:%S')}] {msg}", flush=True)


class AmpSimulator:
    def __init__(
        self,
        *,
        tick_s: float = 1.0,
        max_clients: int = 7,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.tick_s = tick_s
        self.max_clients = max_clients
        self.rng = rng or random.Random()

        self.filter_name = "simulated"
        self.is_muted = False
        self.preset = 1
        self.eq_on = [False, True, True]
        self.preset_source = [4, 1, 0]
        self.current_source = 2
        self.volume_db = -42

        self.test_mode = False
        self.ab_running = False
        self.ab_finished = False
        self.ab_config: dict[str, int] = {}
        self._ab_task: Optional[asyncio.Task] = None

        self.clients: set[Any] = set()

    # ── Snapshots ──

    def amp_state(self) -> dict[str, Any]:
        return wire.amp_state_payload(
            filter_name=self.filter_name,
            is_muted=self.is_muted,
            preset=self.preset,
            eq_on=self.eq_on,
            preset_source=self.preset_source,
            current_source=self.current_source,
            volume_db=self.volume_db,
        )

    def snapshot(self, with_amp_state: bool = True) -> dict[str, Any]:
        root: dict[str, Any] = {}
        if with_amp_state:
            root[wire.AMP_STATE] = self.amp_state()
        if self.test_mode:
            root[wire.AB_TEST] = wire.ab_test_payload(
                is_running=self.ab_running,
                is_finished=self.ab_finished,
                preset_a=self.ab_config.get("preset_a", 0),
                preset_b=self.ab_config.get("preset_b", 0),
            )
        return root

    async def broadcast(self, with_amp_state: bool = True) -> None:
        text = wire.encode_message(self.snapshot(with_amp_state))
        for ws in list(self.clients):
            try:
                await ws.send(text)
            except websockets.ConnectionClosed:
                self.clients.discard(ws)

    # ── Device-side A/B test ──

    async def _ab_test_loop(self) -> None:
        cfg = self.ab_config
        choices = (cfg["preset_a"], cfg["preset_b"])
        log("A/B test task started")
        self.ab_running = True
        self.ab_finished = False
        self.test_mode = True
        self.preset = self.rng.choice(choices)
        await self.broadcast()

        next_switch = time.monotonic()
        pending_preset: Optional[int] = None
        while self.ab_running:
            if pending_preset is not None:
                self.is_muted = False
                self.preset = pending_preset
                pending_preset = None
                await self.broadcast()

            if time.monotonic() >= next_switch:
                pending_preset = self.rng.choice(choices)
                delay_s = self.rng.randint(cfg["min_time"], max(cfg["min_time"], cfg["max_time"]))
                next_switch = time.monotonic() + delay_s
                log(f"A/B: change to preset {pending_preset}, next change in {delay_s} s")
                # Mute to mask the switch; the preset changes on the next tick.
                self.is_muted = True
                await self.broadcast()

            await asyncio.sleep(self.tick_s)

        self.is_muted = False
        log("A/B test task finished")

    def _start_test(self, value: Any) -> bool:
        if self._ab_task is not None and not self._ab_task.done():
            log("A/B test already running")
            return False
        try:
            self.ab_config = {
                "preset_a": int(value["preset_a"]),
                "preset_b": int(value["preset_b"]),
                "min_time": int(value["min_time"]),
                "max_time": int(value["max_time"]),
            }
        except (KeyError, TypeError, ValueError):
            log(f"Invalid start_test value: {value!r}")
            return False
        self._ab_task = asyncio.create_task(self._ab_test_loop())
        return True

    async def stop(self) -> None:
        """Cancel the A/B task (server shutdown)."""
        if self._ab_task is not None and not self._ab_task.done():
            self._ab_task.cancel()
            try:
                await self._ab_task
            except asyncio.CancelledError:
                pass

    # ── Requests ──

    async def handle_request(self, action: str, value: Any) -> None:
        if action == wire.GET_STATE:
            await self.broadcast()
        elif action == wire.START_TEST:
            self._start_test(value)
        elif action == wire.STOP_TEST:
            self.ab_running = False
            self.ab_finished = True
            await self.broadcast(with_amp_state=False)
        elif action == wire.RESET_TEST:
            self.ab_running = False
            self.ab_finished = False
            self.ab_config = {}
            await self.broadcast(with_amp_state=False)
        elif action == wire.DISABLE_TEST_MODE:
            self.test_mode = False
            await self.broadcast(with_amp_state=False)
        elif action == wire.SET_PRESET:
            self.preset = int(value)
            await self.broadcast()
        elif action == wire.SET_VOLUME:
            self.volume_db = int(value)
            await self.broadcast()
        elif action == wire.SET_MUTE:
            self.is_muted = value is True
            await self.broadcast()
        elif action.startswith("set_eq_p") and action[-1] in "123":
            self.eq_on[int(action[-1]) - 1] = value is True
            await self.broadcast()
        elif action.startswith("set_source_p") and action[-1] in "123":
            self.preset_source[int(action[-1]) - 1] = int(value)
            await self.broadcast()
        else:
            log(f"Invalid command received: {action}")

    async def handler(self, ws) -> None:
        peer = getattr(ws, "remote_address", "?")
        if len(self.clients) >= self.max_clients:
            log(f"Maximum number of clients ({self.max_clients}) reached, rejecting {peer}")
            await ws.close(1013, "Too many clients")
            return

        log(f"Client connected: {peer}")
        self.clients.add(ws)
        try:
            async for msg in ws:
                try:
                    data = json.loads(msg)
                    action = data["action"]
                    value = data["value"]
                except (ValueError, KeyError, TypeError):
                    log(f"Ignoring malformed request: {msg!r:.200}")
                    continue
                try:
                    await self.handle_request(str(action), value)
                except (TypeError, ValueError) as e:
                    log(f"Ignoring {action} with bad value {value!r}: {e}")
        except websockets.ConnectionClosed:
            pass
        finally:
            self.clients.discard(ws)
            log(f"Client disconnected: {peer}")


async def main() -> None:
    listen_host = os.getenv("SIM_HOST", "0.0.0.0").strip()
    listen_port = int(os.getenv("SIM_PORT", "8765"))
    tick_s = int(os.getenv("SIM_TICK_MS", "1000")) / 1000.0
    max_clients = int(os.getenv("SIM_MAX_CLIENTS", "7"))

    sim = AmpSimulator(tick_s=tick_s, max_clients=max_clients)
    log(f"Config: tick={tick_s:.3f}s max_clients={max_clients}")

    async with websockets.serve(sim.handler, listen_host, listen_port, max_size=2**20):
        log(f"Listening ws://{listen_host}:{listen_port}/ws")
        try:
            await asyncio.Future()
        finally:
            await sim.stop()


if __name__ == "__main__":
    asyncio.run(main())

"""
Single logical websocket link to the amplifier.

Lifecycle:
  connect()   DISCONNECTED -> CONNECTING -> OPEN, then get_state is sent
  close       any close not asked for -> DISCONNECTED, retry in 2 s, forever
  send()      best effort: dropped (and logged) unless OPEN, never queued
              for a later connection

While OPEN, outbound frames go through a per-connection writer task so they
reach the socket in call order. Inbound frames are JSON-decoded and handed
to the message handler one at a time.

Simulation mode skips the socket entirely: connect() opens on the spot and
requests are answered synchronously by `simulation.simulated_response`.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol

import websockets

from . import wire
from .simulation import simulated_response
from .timers import Scheduler

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY_S = 2.0


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


class Transport(Protocol):
    """What the channel needs from a connected socket (websockets connections fit)."""

    async def send(self, message: str) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[Transport]]
MessageHandler = Callable[[Any], None]


async def connect_websocket(url: str) -> Transport:
    return await websockets.connect(url, max_size=None)


class ChannelManager:
    def __init__(
        self,
        url: str,
        *,
        scheduler: Scheduler,
        on_message: Optional[MessageHandler] = None,
        connector: Optional[Connector] = None,
        simulate: bool = False,
        reconnect_delay_s: float = DEFAULT_RECONNECT_DELAY_S,
    ) -> None:
        self._url = url
        self._scheduler = scheduler
        self.on_message = on_message
        self._connector: Connector = connector or connect_websocket
        self._simulate = simulate
        self._reconnect_delay_s = reconnect_delay_s

        self._state = ConnectionState.DISCONNECTED
        self._closing = False
        self._task: Optional[asyncio.Task] = None
        self._transport: Optional[Transport] = None
        self._outbox: Optional[asyncio.Queue[str]] = None

        self.connects = 0
        self.reconnects_scheduled = 0
        self.dropped_sends = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def simulate(self) -> bool:
        return self._simulate

    # ──────────────────────────────────────────────
    # Connection lifecycle
    # ──────────────────────────────────────────────

    def connect(self) -> None:
        """Open the link unless it is already open or opening."""
        if self._state is not ConnectionState.DISCONNECTED:
            logger.debug("connect() ignored, channel is %s", self._state.value)
            return
        self._closing = False

        if self._simulate:
            logger.info("No device reachable: entering simulation mode")
            self._state = ConnectionState.OPEN
            self._on_open()
            return

        logger.info("Trying to open a WebSocket connection to %s", self._url)
        self._state = ConnectionState.CONNECTING
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def disconnect(self) -> None:
        """Close on purpose; no reconnect follows."""
        self._closing = True
        if self._simulate:
            self._state = ConnectionState.DISCONNECTED
            return

        task = self._task
        transport = self._transport
        if transport is not None:
            try:
                await transport.close()
            except Exception:
                logger.debug("Transport close failed", exc_info=True)
        if task is not None and not task.done():
            if transport is None:
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._state = ConnectionState.DISCONNECTED

    def _reconnect(self) -> None:
        if self._closing:
            return
        self.connect()

    async def _run(self) -> None:
        try:
            transport = await self._connector(self._url)
        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            raise
        except Exception as e:
            logger.info("Connection to %s failed: %s", self._url, e)
            self._on_closed()
            return

        if self._closing:
            await transport.close()
            self._state = ConnectionState.DISCONNECTED
            return

        outbox: asyncio.Queue[str] = asyncio.Queue()
        writer = asyncio.create_task(self._writer(transport, outbox))
        self._transport = transport
        self._outbox = outbox
        self._state = ConnectionState.OPEN
        self.connects += 1
        logger.info("Connection opened")
        self._on_open()

        try:
            async for raw in transport:
                self._deliver(raw)
        except websockets.ConnectionClosed as e:
            logger.info("Connection lost: %s", e)
        except Exception:
            logger.exception("Receive loop failed")
        finally:
            # Stop accepting sends before yielding to the writer.
            self._state = ConnectionState.DISCONNECTED
            self._transport = None
            self._outbox = None
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
            unsent = outbox.qsize()
            if unsent:
                self.dropped_sends += unsent
                logger.warning("Connection closed with %d request(s) unsent, dropped", unsent)

        self._on_closed()

    async def _writer(self, transport: Transport, outbox: asyncio.Queue[str]) -> None:
        while True:
            text = await outbox.get()
            try:
                await transport.send(text)
            except Exception as e:
                self.dropped_sends += 1
                logger.warning("Send failed, dropped %s: %s", text, e)

    def _on_open(self) -> None:
        # Snapshots are only trusted in order; start every connection from a fresh one.
        self.send(wire.GET_STATE, 0)

    def _on_closed(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        if self._closing:
            logger.info("Connection closed")
            return
        self.reconnects_scheduled += 1
        logger.info("Connection closed, reconnecting in %.1fs", self._reconnect_delay_s)
        self._scheduler.call_later(self._reconnect_delay_s, self._reconnect)

    # ──────────────────────────────────────────────
    # Messages
    # ──────────────────────────────────────────────

    def send(self, action: str, value: Any = 0) -> bool:
        """Fire one request. Returns False when it was dropped."""
        text = wire.request_json(action, value)
        if self._state is not ConnectionState.OPEN:
            self.dropped_sends += 1
            logger.warning("Websocket not connected, failed to send %s", text)
            return False

        if self._simulate:
            logger.debug("Simulated send: %s", text)
            request = wire.decode_message(text)
            response = simulated_response(request["action"], request["value"])
            if response is not None:
                self._deliver(wire.encode_message(response))
            return True

        outbox = self._outbox
        if outbox is None:
            self.dropped_sends += 1
            logger.warning("Websocket closing, failed to send %s", text)
            return False
        logger.debug("Send: %s", text)
        outbox.put_nowait(text)
        return True

    def _deliver(self, raw: str | bytes) -> None:
        logger.debug("Received: %s", raw)
        try:
            message = wire.decode_message(raw)
        except ValueError:
            logger.warning("Ignoring undecodable frame: %.200r", raw)
            return
        if self.on_message is None:
            return
        try:
            self.on_message(message)
        except Exception:
            logger.exception("Message handler failed")

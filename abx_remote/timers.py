"""
Timer scheduling for the client.

Every delay in the client (reconnect backoff, the ABX unmute guard, the
A/B stopwatch tick) goes through a Scheduler so the same code runs on the
asyncio loop in production and on a virtual clock in tests:

    LoopScheduler     asyncio loop.call_later, monotonic loop clock
    VirtualScheduler  nothing fires until advance(seconds) is called

Callbacks run to completion on the loop thread; there is no locking.
"""
from __future__ import annotations

import abc
import asyncio
import heapq
import itertools
from typing import Callable, Optional


class TimerHandle(abc.ABC):
    @abc.abstractmethod
    def cancel(self) -> None:
        ...

    @property
    @abc.abstractmethod
    def cancelled(self) -> bool:
        ...


class Scheduler(abc.ABC):
    """Clock plus one-shot and repeating timers."""

    @abc.abstractmethod
    def now(self) -> float:
        """Current time in seconds (monotonic)."""
        ...

    @abc.abstractmethod
    def call_later(self, delay_s: float, callback: Callable[..., None], *args) -> TimerHandle:
        ...

    def call_every(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback every interval_s until the returned handle is cancelled."""
        if interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {interval_s!r}")
        return _RepeatingHandle(self, interval_s, callback)


class _RepeatingHandle(TimerHandle):
    __slots__ = ("_scheduler", "_interval_s", "_callback", "_current", "_cancelled")

    def __init__(self, scheduler: Scheduler, interval_s: float, callback: Callable[[], None]) -> None:
        self._scheduler = scheduler
        self._interval_s = interval_s
        self._callback = callback
        self._cancelled = False
        self._current: TimerHandle = scheduler.call_later(interval_s, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._current = self._scheduler.call_later(self._interval_s, self._fire)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._current.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


# ──────────────────────────────────────────────
# asyncio-backed
# ──────────────────────────────────────────────

class _LoopHandle(TimerHandle):
    __slots__ = ("_handle",)

    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class LoopScheduler(Scheduler):
    """Scheduler on an asyncio event loop.

    The loop is looked up lazily so the scheduler can be built before
    asyncio.run() starts.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self._get_loop().time()

    def call_later(self, delay_s: float, callback: Callable[..., None], *args) -> TimerHandle:
        return _LoopHandle(self._get_loop().call_later(delay_s, callback, *args))


# ──────────────────────────────────────────────
# Virtual clock
# ──────────────────────────────────────────────

class _VirtualHandle(TimerHandle):
    __slots__ = ("due", "callback", "args", "_cancelled")

    def __init__(self, due: float, callback: Callable[..., None], args: tuple) -> None:
        self.due = due
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class VirtualScheduler(Scheduler):
    """Deterministic clock: timers fire only inside advance().

    Timers due at the same instant fire in the order they were scheduled.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._seq = itertools.count()
        self._queue: list[tuple[float, int, _VirtualHandle]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: Callable[..., None], *args) -> TimerHandle:
        handle = _VirtualHandle(self._now + max(0.0, delay_s), callback, args)
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        """Number of timers still waiting to fire."""
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every timer that becomes due. Returns timers fired."""
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = due
            handle.callback(*handle.args)
            fired += 1
        self._now = target
        return fired


# ──────────────────────────────────────────────
# Elapsed-time display
# ──────────────────────────────────────────────

def format_elapsed(seconds: float) -> str:
    """MM:SS, minutes zero-padded to at least two digits."""
    total = int(max(0.0, seconds))
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


class Stopwatch:
    """Elapsed-time counter for display, sampled once per tick.

    Not used for any scoring; the device owns real session timing.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        tick_s: float = 1.0,
        on_tick: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._scheduler = scheduler
        self._tick_s = tick_s
        self._on_tick = on_tick
        self._started_at: Optional[float] = None
        self._ticker: Optional[TimerHandle] = None
        self.text = format_elapsed(0)

    @property
    def running(self) -> bool:
        return self._ticker is not None

    @property
    def started_at(self) -> Optional[float]:
        return self._started_at

    def start(self) -> None:
        """(Re)start from zero."""
        self.stop()
        self.text = format_elapsed(0)
        self._started_at = self._scheduler.now()
        self._ticker = self._scheduler.call_every(self._tick_s, self._tick)

    def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _tick(self) -> None:
        if self._started_at is None:
            return
        self.text = format_elapsed(self._scheduler.now() - self._started_at)
        if self._on_tick is not None:
            self._on_tick(self.text)

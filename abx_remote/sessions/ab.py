"""
A/B preference test.

The device runs the session: it picks A or B at random, switches every
min..max seconds (muting around each switch) and reports progress in its
ab_test snapshots. The client only validates the settings, tallies the
listener's likes against whatever preset is active when "like" is pressed,
and shows an elapsed-time display.

    IDLE --start--> RUNNING --stop--> FINISHED --reset--> IDLE
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .. import wire
from ..errors import ValidationError
from ..state import StateSynchronizer
from ..timers import Scheduler, Stopwatch
from ..views import View

logger = logging.getLogger(__name__)


class ABPhase(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"


@dataclass(frozen=True)
class ABConfig:
    preset_a: int
    preset_b: int
    min_duration_s: int
    max_duration_s: int
    muted_during_switch: bool = False


@dataclass
class ABSession:
    preset_a: int
    preset_b: int
    muted_during_switch: bool
    min_duration_s: int
    max_duration_s: int
    started_at: float
    likes_a: int = 0
    likes_b: int = 0


@dataclass(frozen=True)
class ABResult:
    preset_a: int
    preset_b: int
    likes_a: int
    likes_b: int
    elapsed: str

    def summary(self) -> dict:
        return {
            "preset_a": self.preset_a,
            "preset_b": self.preset_b,
            "likes_a": self.likes_a,
            "likes_b": self.likes_b,
            "elapsed": self.elapsed,
        }

    def log_summary(self) -> None:
        logger.info(
            "AB_RESULT: preset_a=%d likes_a=%d preset_b=%d likes_b=%d elapsed=%s",
            self.preset_a, self.likes_a, self.preset_b, self.likes_b, self.elapsed,
        )


class ABTestController:
    def __init__(
        self,
        sync: StateSynchronizer,
        scheduler: Scheduler,
        *,
        tick_s: float = 1.0,
        on_tick: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._sync = sync
        self._views = sync.views
        self._scheduler = scheduler
        self.stopwatch = Stopwatch(scheduler, tick_s=tick_s, on_tick=on_tick)
        # The elapsed display belongs to the active view, whoever opened it.
        self._views.on_enter(View.AB_ACTIVE, self._on_active)

        self._phase = ABPhase.IDLE
        self._session: Optional[ABSession] = None
        self._result: Optional[ABResult] = None
        self.anomalies = 0

    @property
    def phase(self) -> ABPhase:
        return self._phase

    @property
    def session(self) -> Optional[ABSession]:
        return self._session

    @property
    def result(self) -> Optional[ABResult]:
        return self._result

    def _on_active(self) -> None:
        self.stopwatch.start()
        if self._phase is ABPhase.RUNNING:
            return
        snap = self._sync.session
        if snap is None or not snap.is_running:
            return
        # The device is already mid-test (another client, or we reconnected).
        self._session = ABSession(
            preset_a=snap.preset_a or self._sync.result_preset_a,
            preset_b=snap.preset_b or self._sync.result_preset_b,
            muted_during_switch=False,
            min_duration_s=0,
            max_duration_s=0,
            started_at=self._scheduler.now(),
        )
        self._result = None
        self._phase = ABPhase.RUNNING
        logger.info(
            "Joined running A/B test: preset_a=%d preset_b=%d",
            self._session.preset_a, self._session.preset_b,
        )

    def open(self) -> None:
        self._views.show(View.AB_CONTROL)

    def start(self, config: ABConfig) -> ABSession:
        if config.min_duration_s >= config.max_duration_s:
            raise ValidationError("Min. time must be less than max. time.")

        self._session = ABSession(
            preset_a=config.preset_a,
            preset_b=config.preset_b,
            muted_during_switch=config.muted_during_switch,
            min_duration_s=config.min_duration_s,
            max_duration_s=config.max_duration_s,
            started_at=self._scheduler.now(),
        )
        self._result = None
        self._phase = ABPhase.RUNNING
        logger.info(
            "A/B test: preset_a=%d preset_b=%d switch every %d..%ds",
            config.preset_a, config.preset_b, config.min_duration_s, config.max_duration_s,
        )
        self._views.show(View.AB_ACTIVE)
        self._sync.issue(
            wire.START_TEST,
            wire.start_test_value(
                config.preset_a, config.preset_b, config.min_duration_s, config.max_duration_s,
            ),
        )
        return self._session

    def log_like(self) -> bool:
        """Credit one like to the preset playing right now."""
        session = self._session
        if self._phase is not ABPhase.RUNNING or session is None:
            logger.warning("Like ignored: no A/B test running")
            return False

        current = self._sync.active_preset
        if current == session.preset_a:
            session.likes_a += 1
        elif current == session.preset_b:
            session.likes_b += 1
        else:
            self.anomalies += 1
            logger.error("Trying to log like for unknown preset %d", current)
            return False
        return True

    def stop(self) -> Optional[ABResult]:
        session = self._session
        if self._phase is not ABPhase.RUNNING or session is None:
            self.stopwatch.stop()
            logger.warning("stop() ignored: no A/B test running")
            return self._result

        self.stopwatch.stop()
        self._phase = ABPhase.FINISHED
        self._result = ABResult(
            preset_a=session.preset_a,
            preset_b=session.preset_b,
            likes_a=session.likes_a,
            likes_b=session.likes_b,
            elapsed=self.stopwatch.text,
        )
        # The result must exist before the device's "finished" snapshot can arrive.
        self._sync.issue(wire.STOP_TEST, 0)
        self._result.log_summary()
        self._views.show(View.AB_RESULTS)
        return self._result

    def reset(self) -> None:
        self.stopwatch.stop()
        self._phase = ABPhase.IDLE
        self._session = None
        self._result = None
        self._sync.issue(wire.RESET_TEST, 0)
        self._views.show(View.AB_CONTROL)

    def exit_test_mode(self) -> None:
        """Leave A/B testing altogether and return to the main controls."""
        self.stopwatch.stop()
        self._phase = ABPhase.IDLE
        self._session = None
        self._result = None
        self._sync.issue(wire.DISABLE_TEST_MODE, 0)
        self._views.show(View.MAIN)

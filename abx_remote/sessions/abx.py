"""
ABX discrimination test.

The listener can audition A, B and a hidden X as often as they like, then
says whether X is A or B. X is redrawn from {A, B} before every trial. At
the end the hit count is tested against pure guessing with a one-tailed
exact binomial test (see stats.py); p <= 0.05 rejects the guessing
hypothesis.

    IDLE --start--> PRESENTING --guess (repeat)--> FINISHED --reset--> IDLE

The whole session runs client side; the device only sees set_preset and
set_mute requests.
"""
from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass, field
from typing import Optional

from ..errors import ValidationError
from ..state import StateSynchronizer
from ..stats import SIGNIFICANCE_ALPHA, abx_p_value, interpret, is_significant
from ..timers import Scheduler
from ..views import View

logger = logging.getLogger(__name__)

DEFAULT_UNMUTE_DELAY_S = 1.0


class Choice(enum.Enum):
    A = "A"
    B = "B"
    X = "X"


class ABXPhase(enum.Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    FINISHED = "finished"


@dataclass(frozen=True)
class ABXConfig:
    preset_a: int
    preset_b: int
    total_trials: int
    muted_during_switch: bool = False


@dataclass
class ABXSession:
    preset_a: int
    preset_b: int
    muted_during_switch: bool
    total_trials: int
    trials_completed: int = 0
    correct_count: int = 0
    preset_x: int = field(default=0, repr=False)


@dataclass(frozen=True)
class ABXResult:
    preset_a: int
    preset_b: int
    total_trials: int
    trials: int
    correct: int
    p_value: float
    significant: bool
    interpretation: str

    def summary(self) -> dict:
        return {
            "preset_a": self.preset_a,
            "preset_b": self.preset_b,
            "trials": self.trials,
            "total_trials": self.total_trials,
            "correct": self.correct,
            "p_value": round(self.p_value, 4),
            "significant": self.significant,
        }

    def log_summary(self) -> None:
        logger.info(
            "ABX_RESULT: preset_a=%d preset_b=%d trials=%d/%d correct=%d p=%.4f %s",
            self.preset_a, self.preset_b, self.trials, self.total_trials, self.correct,
            self.p_value, "reject_null" if self.significant else "fail_to_reject",
        )


class ABXTestController:
    def __init__(
        self,
        sync: StateSynchronizer,
        scheduler: Scheduler,
        *,
        rng: Optional[random.Random] = None,
        unmute_delay_s: float = DEFAULT_UNMUTE_DELAY_S,
    ) -> None:
        self._sync = sync
        self._views = sync.views
        self._scheduler = scheduler
        self._rng = rng if rng is not None else random.Random()
        self._unmute_delay_s = unmute_delay_s

        self._phase = ABXPhase.IDLE
        self._session: Optional[ABXSession] = None
        self._result: Optional[ABXResult] = None
        self.selected: Optional[Choice] = None

    @property
    def phase(self) -> ABXPhase:
        return self._phase

    @property
    def session(self) -> Optional[ABXSession]:
        return self._session

    @property
    def result(self) -> Optional[ABXResult]:
        return self._result

    def open(self) -> None:
        self._views.show(View.ABX_CONTROL)

    def _draw_x(self, session: ABXSession) -> None:
        session.preset_x = self._rng.choice((session.preset_a, session.preset_b))

    def start(self, config: ABXConfig) -> ABXSession:
        if config.total_trials < 1:
            raise ValidationError("Number of trials must be at least 1.")
        if config.preset_a == config.preset_b:
            raise ValidationError("Preset A and preset B must differ.")

        session = ABXSession(
            preset_a=config.preset_a,
            preset_b=config.preset_b,
            muted_during_switch=config.muted_during_switch,
            total_trials=config.total_trials,
        )
        self._draw_x(session)
        self._session = session
        self._result = None
        self._phase = ABXPhase.PRESENTING
        logger.info(
            "ABX test: preset_a=%d preset_b=%d trials=%d muted_switch=%s",
            config.preset_a, config.preset_b, config.total_trials, config.muted_during_switch,
        )
        self.present(Choice.A)
        self._views.show(View.ABX_ACTIVE)
        return session

    def present(self, choice: Choice) -> bool:
        """Switch the amplifier to A, B or the hidden X."""
        session = self._session
        if self._phase is not ABXPhase.PRESENTING or session is None:
            logger.warning("present(%s) ignored: no ABX test running", choice.value)
            return False

        preset = {
            Choice.A: session.preset_a,
            Choice.B: session.preset_b,
            Choice.X: session.preset_x,
        }[choice]
        self.selected = choice

        if session.muted_during_switch:
            self._sync.set_mute(True)
        sent = self._sync.set_preset(preset)
        if session.muted_during_switch:
            # Fixed settle time; not tied to any confirmation from the device.
            self._scheduler.call_later(self._unmute_delay_s, self._sync.set_mute, False)
        return sent

    def submit_guess(self, label: Choice) -> bool:
        """Record the listener's answer to "X is ...". Returns True when correct."""
        if label is Choice.X:
            raise ValueError("A guess must be A or B")
        session = self._session
        if self._phase is not ABXPhase.PRESENTING or session is None:
            logger.warning("Guess ignored: no ABX test running")
            return False

        guessed = session.preset_a if label is Choice.A else session.preset_b
        correct = session.preset_x == guessed
        if correct:
            session.correct_count += 1
        session.trials_completed += 1
        logger.debug(
            "ABX trial %d/%d: %s",
            session.trials_completed, session.total_trials, "correct" if correct else "wrong",
        )

        if session.trials_completed >= session.total_trials:
            self._finalize(session)
        else:
            self._draw_x(session)
        return correct

    def stop(self) -> Optional[ABXResult]:
        """End early; the result covers the trials completed so far."""
        session = self._session
        if self._phase is not ABXPhase.PRESENTING or session is None:
            return self._result
        return self._finalize(session)

    def reset(self) -> None:
        self._phase = ABXPhase.IDLE
        self._session = None
        self._result = None
        self.selected = None
        self._views.show(View.ABX_CONTROL)

    def _finalize(self, session: ABXSession) -> ABXResult:
        p_value = abx_p_value(session.trials_completed, session.correct_count)
        self._result = ABXResult(
            preset_a=session.preset_a,
            preset_b=session.preset_b,
            total_trials=session.total_trials,
            trials=session.trials_completed,
            correct=session.correct_count,
            p_value=p_value,
            significant=is_significant(p_value, SIGNIFICANCE_ALPHA),
            interpretation=interpret(p_value, SIGNIFICANCE_ALPHA),
        )
        self._phase = ABXPhase.FINISHED
        self._result.log_summary()
        self._views.show(View.ABX_RESULTS)
        return self._result

"""
Normalized device state and the inbound/outbound synchronization point.

The amplifier broadcasts full snapshots:

  {"amp_state": {"filter_name": "...", "is_muted": false, "preset": 2,
                 "eq_on": [false, true, true], "preset_source": [4, 1, 0],
                 "current_source": 2, "volume_db": -42},
   "ab_test":   {"preset_a": 1, "preset_b": 2,
                 "is_running": true, "is_finished": false}}

Either part may be missing. An amp_state replaces DeviceState as a whole;
fields are never merged with the previous snapshot. Preset 0 means no
device is connected behind the controller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from . import wire
from .channel import ChannelManager
from .views import SessionViewController

logger = logging.getLogger(__name__)


def _triple(raw: Any, cast: Callable[[Any], Any], default: Any) -> tuple:
    values = list(raw) if isinstance(raw, Sequence) and not isinstance(raw, str) else []
    values = (values + [default] * 3)[:3]
    return tuple(cast(v) for v in values)


@dataclass(frozen=True)
class DeviceState:
    filter_name: str = ""
    is_muted: bool = False
    active_preset: int = 0
    eq_enabled: tuple[bool, bool, bool] = (False, False, False)
    preset_source: tuple[int, int, int] = (0, 0, 0)
    live_input_source: int = 0
    volume_db: float = 0.0

    @property
    def connected(self) -> bool:
        return self.active_preset != 0

    @classmethod
    def from_snapshot(cls, snap: dict[str, Any]) -> "DeviceState":
        return cls(
            filter_name=str(snap.get("filter_name") or ""),
            is_muted=bool(snap.get("is_muted", False)),
            active_preset=int(snap.get("preset") or 0),
            eq_enabled=_triple(snap.get("eq_on"), bool, False),
            preset_source=_triple(snap.get("preset_source"), int, 0),
            live_input_source=int(snap.get("current_source") or 0),
            volume_db=float(snap.get("volume_db") or 0.0),
        )


DISCONNECTED = DeviceState()


@dataclass(frozen=True)
class SessionSnapshot:
    """The device's view of the A/B test."""
    is_running: bool = False
    is_finished: bool = False
    preset_a: Optional[int] = None
    preset_b: Optional[int] = None

    @classmethod
    def from_snapshot(cls, snap: dict[str, Any]) -> "SessionSnapshot":
        a = snap.get("preset_a")
        b = snap.get("preset_b")
        return cls(
            is_running=bool(snap.get("is_running", False)),
            is_finished=bool(snap.get("is_finished", False)),
            preset_a=int(a) if a is not None else None,
            preset_b=int(b) if b is not None else None,
        )


class StateSynchronizer:
    """Owns DeviceState; everything else reads it through here.

    Outbound requests go through issue(). Nothing here changes the preset
    indicator on request: a set_preset only shows once the device confirms
    it in the next snapshot.
    """

    def __init__(self, channel: ChannelManager, views: SessionViewController) -> None:
        self._channel = channel
        self._views = views
        self._device = DISCONNECTED
        self._session: Optional[SessionSnapshot] = None
        self._listeners: list[Callable[["StateSynchronizer"], None]] = []
        self.result_preset_a = 0
        self.result_preset_b = 0
        self.snapshots_applied = 0

    @property
    def device_state(self) -> DeviceState:
        return self._device

    @property
    def active_preset(self) -> int:
        return self._device.active_preset

    @property
    def session(self) -> Optional[SessionSnapshot]:
        """Last A/B session snapshot the device sent, if any."""
        return self._session

    @property
    def views(self) -> SessionViewController:
        return self._views

    def add_listener(self, callback: Callable[["StateSynchronizer"], None]) -> None:
        self._listeners.append(callback)

    # ──────────────────────────────────────────────
    # Inbound
    # ──────────────────────────────────────────────

    def apply_inbound(self, message: Any) -> None:
        if not isinstance(message, dict):
            logger.warning("Ignoring non-object message: %.200r", message)
            return

        amp = message.get(wire.AMP_STATE)
        if isinstance(amp, dict):
            state = DeviceState.from_snapshot(amp)
            if state.active_preset != self._device.active_preset:
                logger.info("Active preset: %d -> %d", self._device.active_preset, state.active_preset)
            self._device = state
            self.snapshots_applied += 1

        session: Optional[SessionSnapshot] = None
        ab = message.get(wire.AB_TEST)
        if isinstance(ab, dict):
            session = SessionSnapshot.from_snapshot(ab)
            self._session = session
            if session.preset_a:
                self.result_preset_a = session.preset_a
            if session.preset_b:
                self.result_preset_b = session.preset_b

        self._views.apply_snapshot(self._device, session)
        for listener in self._listeners:
            listener(self)

    # ──────────────────────────────────────────────
    # Outbound
    # ──────────────────────────────────────────────

    def issue(self, action: str, value: Any = 0) -> bool:
        return self._channel.send(action, value)

    def set_preset(self, preset: int) -> bool:
        return self.issue(wire.SET_PRESET, int(preset))

    def set_mute(self, muted: bool) -> bool:
        return self.issue(wire.SET_MUTE, bool(muted))

    def set_volume(self, volume_db: float) -> bool:
        return self.issue(wire.SET_VOLUME, int(volume_db))

    def set_eq(self, preset: int, enabled: bool) -> bool:
        return self.issue(wire.set_eq_action(preset), bool(enabled))

    def set_source(self, preset: int, source: int) -> bool:
        return self.issue(wire.set_source_action(preset), int(source))

    def request_state(self) -> bool:
        return self.issue(wire.GET_STATE, 0)

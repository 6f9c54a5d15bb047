"""
Which screen of the control surface is showing.

Exactly one View is active at a time. Device snapshots pick between the
main view and the three A/B views; the ABX views are only entered and left
through the ABX controller, so an ABX screen survives ordinary amp_state
updates. A preset-0 snapshot still forces the main view; the interrupted
ABX screen returns with the next connected snapshot.
"""
from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from .state import DeviceState, SessionSnapshot

logger = logging.getLogger(__name__)


class View(enum.Enum):
    MAIN = "mainControlView"
    AB_CONTROL = "abControlView"
    AB_ACTIVE = "abActiveView"
    AB_RESULTS = "abResultsView"
    ABX_CONTROL = "abxControlView"
    ABX_ACTIVE = "abxActiveView"
    ABX_RESULTS = "abxResultsView"


ABX_VIEWS = frozenset({View.ABX_CONTROL, View.ABX_ACTIVE, View.ABX_RESULTS})


def select_view(
    device: DeviceState,
    ab: Optional[SessionSnapshot],
    current: View,
    suspended: Optional[View] = None,
) -> View:
    """View for one inbound message. `suspended` is an ABX view a disconnect interrupted."""
    if not device.connected:
        return View.MAIN
    if ab is not None:
        if ab.is_running:
            return View.AB_ACTIVE
        if ab.is_finished:
            return View.AB_RESULTS
        return View.AB_CONTROL
    if current in ABX_VIEWS:
        return current
    if suspended is not None:
        return suspended
    return View.MAIN


class SessionViewController:
    def __init__(self) -> None:
        self._view = View.MAIN
        self._ui_enabled = False
        self._preset_indicator = 0
        self._suspended: Optional[View] = None
        self._enter_hooks: dict[View, list[Callable[[], None]]] = {}
        self._listeners: list[Callable[[View], None]] = []

    @property
    def view(self) -> View:
        return self._view

    @property
    def ui_enabled(self) -> bool:
        """False while no preset is active (device missing)."""
        return self._ui_enabled

    @property
    def preset_indicator(self) -> int:
        """Preset shown as active; 0 when none."""
        return self._preset_indicator

    def on_enter(self, view: View, callback: Callable[[], None]) -> None:
        """Run callback each time `view` becomes active (not on re-selection)."""
        self._enter_hooks.setdefault(view, []).append(callback)

    def add_listener(self, callback: Callable[[View], None]) -> None:
        self._listeners.append(callback)

    def show(self, view: View) -> bool:
        """Switch to view. Returns False if it was already showing."""
        self._suspended = None
        return self._switch(view)

    def _switch(self, view: View) -> bool:
        if view is self._view:
            return False
        logger.debug("View: %s -> %s", self._view.value, view.value)
        self._view = view
        for hook in self._enter_hooks.get(view, ()):
            hook()
        for listener in self._listeners:
            listener(view)
        return True

    def apply_snapshot(self, device: DeviceState, ab: Optional[SessionSnapshot]) -> View:
        """React to one inbound message; `ab` is the session snapshot it carried, if any."""
        self._preset_indicator = device.active_preset
        self._ui_enabled = device.connected
        if not device.connected and self._view in ABX_VIEWS:
            self._suspended = self._view
        view = select_view(device, ab, self._view, self._suspended)
        if device.connected:
            self._suspended = None
        self._switch(view)
        return self._view

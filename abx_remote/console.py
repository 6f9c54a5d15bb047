"""
Line-oriented control surface.

Stands in for the web page the amplifier serves: every button maps to one
command, every display to a line of text. Commands are handled one at a
time on the event loop.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from .errors import ValidationError
from .presets import PRESETS, sanitize_preset_pair, source_label
from .sessions import ABConfig, ABXConfig, ABXPhase, Choice
from .state import DeviceState
from .views import View

if TYPE_CHECKING:
    from .app import AmpRemote

logger = logging.getLogger(__name__)

HELP = """\
Commands:
  state                          show amplifier state
  preset N                       select preset 1-3
  mute on|off                    mute / unmute
  volume DB                      set volume in dB
  eq N on|off                    EQ of preset N
  source N S                     input source of preset N (0 = scan)
  ab open                        A/B test settings
  ab start A B MIN MAX [mute]    start A/B test (MIN < MAX seconds)
  ab like                        like what is playing now
  ab stop | ab reset | ab exit
  abx open                       ABX test settings
  abx start A B TRIALS [mute]    start ABX test
  abx play A|B|X                 listen to A, B or X
  abx guess A|B                  X is A / X is B
  abx stop | abx reset
  help | quit"""

NOT_CONNECTED = "NOT CONNECTED"
HIDDEN = "(hidden during ABX)"


def _on_off(word: str) -> bool:
    w = word.strip().lower()
    if w in ("on", "1", "true", "yes"):
        return True
    if w in ("off", "0", "false", "no"):
        return False
    raise ValueError(f"expected on/off, got {word!r}")


def _choice(word: str) -> Choice:
    try:
        return Choice(word.strip().upper())
    except ValueError:
        raise ValueError(f"expected A, B or X, got {word!r}") from None


def format_device(device: DeviceState, ui_enabled: bool = True, blind: bool = False) -> list[str]:
    """Render the amplifier state.

    blind hides everything that tells which preset is playing (active
    marker, detected scan input, filter name) while an ABX trial runs.
    """
    if blind:
        filter_text = HIDDEN if device.connected else NOT_CONNECTED
    else:
        filter_text = device.filter_name or NOT_CONNECTED
    lines = [
        f"Filter: {filter_text}",
        f"Volume: {device.volume_db:.1f} dB{'  [MUTED]' if device.is_muted else ''}",
    ]
    active = 0 if blind else device.active_preset
    for preset in PRESETS:
        i = preset - 1
        marker = "*" if preset == active else " "
        lines.append(
            f" {marker} Preset {preset}: EQ {'on ' if device.eq_enabled[i] else 'off'}  "
            f"source {source_label(preset, device.preset_source[i], active, device.live_input_source)}"
        )
    if not ui_enabled:
        lines.append("(controls disabled until an amplifier is connected)")
    return lines


class Console:
    def __init__(self, remote: AmpRemote, out: Callable[[str], None] = print) -> None:
        self._remote = remote
        self._out = out
        self._last_lines: list[str] = []
        remote.views.add_listener(self._on_view)
        remote.sync.add_listener(self._on_sync)

    def _on_view(self, view: View) -> None:
        self._out(f"[{view.value}]")
        if view is View.AB_RESULTS:
            ab = self._remote.ab.result
            sync = self._remote.sync
            if ab is not None:
                self._out(
                    f"Preset {sync.result_preset_a or ab.preset_a}: {ab.likes_a} likes, "
                    f"preset {sync.result_preset_b or ab.preset_b}: {ab.likes_b} likes ({ab.elapsed})"
                )
        elif view is View.ABX_RESULTS:
            res = self._remote.abx.result
            if res is not None:
                self._out(
                    f"Preset A={res.preset_a} B={res.preset_b}: {res.correct}/{res.trials} correct, "
                    f"p-value {res.p_value:.4f}"
                )
                self._out(res.interpretation)

    @property
    def blind(self) -> bool:
        """True while an ABX trial is running and the active preset must stay hidden."""
        return self._remote.abx.phase is ABXPhase.PRESENTING

    def _device_lines(self) -> list[str]:
        sync = self._remote.sync
        return format_device(sync.device_state, sync.views.ui_enabled, blind=self.blind)

    def _on_sync(self, sync) -> None:
        # Compare rendered text, not state: a hidden preset change must print nothing.
        lines = self._device_lines()
        if lines != self._last_lines:
            self._last_lines = lines
            for line in lines:
                self._out(line)

    def handle(self, line: str) -> bool:
        """Run one command. Returns False when the user asked to quit."""
        words = line.split()
        if not words:
            return True
        cmd, args = words[0].lower(), words[1:]
        logger.debug("Console command: %s", line.strip())
        if cmd in ("quit", "exit", "q"):
            return False
        try:
            self._dispatch(cmd, args)
        except ValidationError as e:
            self._out(f"Rejected: {e}")
        except (ValueError, IndexError) as e:
            self._out(f"Bad command {line.strip()!r}: {e}")
            self._out("Type 'help' for the command list.")
        return True

    def _dispatch(self, cmd: str, args: list[str]) -> None:
        remote = self._remote
        sync = remote.sync

        if cmd == "help":
            self._out(HELP)
        elif cmd == "state":
            for line in self._device_lines():
                self._out(line)
            self._out(f"View: {sync.views.view.value}  link: {remote.channel.state.value}")
        elif cmd == "preset":
            sync.set_preset(int(args[0]))
        elif cmd == "mute":
            sync.set_mute(_on_off(args[0]))
        elif cmd == "volume":
            sync.set_volume(float(args[0]))
        elif cmd == "eq":
            sync.set_eq(int(args[0]), _on_off(args[1]))
        elif cmd == "source":
            sync.set_source(int(args[0]), int(args[1]))
        elif cmd == "ab":
            self._ab(args)
        elif cmd == "abx":
            self._abx(args)
        else:
            raise ValueError("unknown command")

    def _ab(self, args: list[str]) -> None:
        ab = self._remote.ab
        sub = args[0].lower()
        if sub == "open":
            ab.open()
        elif sub == "start":
            a, b = sanitize_preset_pair(int(args[1]), int(args[2]))
            ab.start(ABConfig(
                preset_a=a,
                preset_b=b,
                min_duration_s=int(args[3]),
                max_duration_s=int(args[4]),
                muted_during_switch=len(args) > 5 and args[5].lower() == "mute",
            ))
        elif sub == "like":
            if ab.log_like():
                s = ab.session
                self._out(f"Likes: A={s.likes_a} B={s.likes_b}  {ab.stopwatch.text}")
        elif sub == "stop":
            ab.stop()
        elif sub == "reset":
            ab.reset()
        elif sub == "exit":
            ab.exit_test_mode()
        else:
            raise ValueError(f"unknown ab command {sub!r}")

    def _abx(self, args: list[str]) -> None:
        abx = self._remote.abx
        sub = args[0].lower()
        if sub == "open":
            abx.open()
        elif sub == "start":
            a, b = sanitize_preset_pair(int(args[1]), int(args[2]))
            abx.start(ABXConfig(
                preset_a=a,
                preset_b=b,
                total_trials=int(args[3]),
                muted_during_switch=len(args) > 4 and args[4].lower() == "mute",
            ))
        elif sub == "play":
            abx.present(_choice(args[1]))
        elif sub == "guess":
            label = _choice(args[1])
            if label is Choice.X:
                raise ValueError("guess A or B")
            abx.submit_guess(label)
            s = abx.session
            if s is not None and abx.result is None:
                self._out(f"Trial {s.trials_completed + 1} of {s.total_trials}")
        elif sub == "stop":
            abx.stop()
        elif sub == "reset":
            abx.reset()
        else:
            raise ValueError(f"unknown abx command {sub!r}")

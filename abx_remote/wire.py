from __future__ import annotations

import json
from typing import Any, Optional, Sequence

# ── Actions the client core understands ──
GET_STATE = "get_state"
START_TEST = "start_test"
STOP_TEST = "stop_test"
SET_PRESET = "set_preset"

# ── Opaque pass-through actions ──
SET_MUTE = "set_mute"
SET_VOLUME = "set_volume"
RESET_TEST = "reset_test"
DISABLE_TEST_MODE = "disable_test_mode"

AMP_STATE = "amp_state"
AB_TEST = "ab_test"


def set_eq_action(preset: int) -> str:
    return f"set_eq_p{int(preset)}"


def set_source_action(preset: int) -> str:
    return f"set_source_p{int(preset)}"


def request_json(action: str, value: Any = 0) -> str:
    """Build the text frame the amplifier's websocket handler accepts.

    Schema:

      {"action":"set_preset","value":2}

    Notes:
    - both keys are required by the device; actions without a meaningful
      value send 0.
    - value may be a scalar or an object (start_test carries its config).
    """
    return encode_message({"action": action, "value": value})


def encode_message(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"))


def decode_message(text: str | bytes) -> Any:
    """Parse one inbound frame into plain Python values."""
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8")
    return json.loads(text)


def start_test_value(preset_a: int, preset_b: int, min_time_s: int, max_time_s: int) -> dict[str, int]:
    return {
        "preset_a": int(preset_a),
        "preset_b": int(preset_b),
        "min_time": int(min_time_s),
        "max_time": int(max_time_s),
    }


def amp_state_payload(
    *,
    filter_name: str,
    is_muted: bool,
    preset: int,
    eq_on: Sequence[bool],
    preset_source: Sequence[int],
    current_source: int,
    volume_db: float,
) -> dict[str, Any]:
    return {
        "filter_name": filter_name,
        "is_muted": bool(is_muted),
        "preset": int(preset),
        "eq_on": [bool(v) for v in eq_on],
        "preset_source": [int(v) for v in preset_source],
        "current_source": int(current_source),
        "volume_db": volume_db,
    }


def ab_test_payload(
    *,
    is_running: bool,
    is_finished: bool,
    preset_a: Optional[int] = None,
    preset_b: Optional[int] = None,
) -> dict[str, Any]:
    """ab_test snapshot; presets are omitted when not known."""
    payload: dict[str, Any] = {"is_running": bool(is_running), "is_finished": bool(is_finished)}
    if preset_a is not None:
        payload["preset_a"] = int(preset_a)
    if preset_b is not None:
        payload["preset_b"] = int(preset_b)
    return payload

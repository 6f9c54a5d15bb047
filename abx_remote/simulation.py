"""
Offline stand-in for the amplifier.

Used when the client runs without a reachable device: the three requests
the test workflow depends on are answered on the spot with fixed payloads,
everything else is accepted and ignored.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from . import wire

logger = logging.getLogger(__name__)

CANNED_AMP_STATE = wire.amp_state_payload(
    filter_name="test mode",
    is_muted=False,
    preset=1,
    eq_on=(False, True, True),
    preset_source=(4, 1, 0),
    current_source=2,
    volume_db=-42,
)


def simulated_response(action: str, value: Any) -> Optional[dict[str, Any]]:
    """Reply the real device would broadcast for `action`, or None."""
    if action == wire.START_TEST:
        value = value if isinstance(value, dict) else {}
        return {
            wire.AB_TEST: wire.ab_test_payload(
                is_running=True,
                is_finished=False,
                preset_a=value.get("preset_a"),
                preset_b=value.get("preset_b"),
            )
        }
    if action == wire.STOP_TEST:
        return {wire.AB_TEST: wire.ab_test_payload(is_running=False, is_finished=True)}
    if action == wire.GET_STATE:
        return {wire.AMP_STATE: dict(CANNED_AMP_STATE)}
    logger.debug("Simulation: no reply for %s", action)
    return None

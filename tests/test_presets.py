from abx_remote.presets import PRESETS, SCAN, sanitize_preset_pair, scan_label, source_label
from abx_remote import wire


def test_preset_range():
    assert PRESETS == (1, 2, 3)


def test_distinct_pair_is_kept():
    assert sanitize_preset_pair(1, 3) == (1, 3)
    assert sanitize_preset_pair(3, 2) == (3, 2)


def test_clashing_b_is_moved():
    assert sanitize_preset_pair(1, 1) == (1, 2)
    assert sanitize_preset_pair(2, 2) == (2, 1)
    assert sanitize_preset_pair(3, 3) == (3, 1)


def test_scan_label():
    assert scan_label(1) == "Scan (XLR)"
    assert scan_label(4) == "Scan (SPDIF)"
    assert scan_label(0) == "Scan"
    assert scan_label(3) == "Scan"


def test_source_label_shows_detected_input_only_for_active_preset():
    assert source_label(3, SCAN, active_preset=3, live_source=2) == "Scan (RCA)"
    assert source_label(3, SCAN, active_preset=1, live_source=2) == "Scan"
    assert source_label(1, 4, active_preset=1, live_source=2) == "SPDIF"
    assert source_label(1, 42, active_preset=1, live_source=2) == "42"


def test_request_frames():
    assert wire.request_json(wire.SET_PRESET, 2) == '{"action":"set_preset","value":2}'
    assert wire.request_json(wire.STOP_TEST) == '{"action":"stop_test","value":0}'
    assert wire.set_eq_action(3) == "set_eq_p3"
    assert wire.set_source_action(1) == "set_source_p1"
    assert wire.decode_message(wire.request_json(wire.START_TEST, wire.start_test_value(1, 2, 5, 10))) == {
        "action": "start_test",
        "value": {"preset_a": 1, "preset_b": 2, "min_time": 5, "max_time": 10},
    }


def test_ab_test_payload_omits_unknown_presets():
    assert wire.ab_test_payload(is_running=False, is_finished=True) == {
        "is_running": False,
        "is_finished": True,
    }

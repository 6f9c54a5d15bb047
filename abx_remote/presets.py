from __future__ import annotations

PRESETS = (1, 2, 3)

# Source code 0 is "scan": the amplifier picks whichever input carries signal.
SCAN = 0
SOURCE_NAMES = {
    1: "XLR",
    2: "RCA",
    4: "SPDIF",
    5: "AES",
    6: "OPT",
    7: "EXT",
}


def sanitize_preset_pair(preset_a: int, preset_b: int) -> tuple[int, int]:
    """Keep A and B distinct: a clashing B becomes the first other preset."""
    if preset_a == preset_b:
        preset_b = next(p for p in PRESETS if p != preset_a)
    return preset_a, preset_b


def scan_label(detected_source: int) -> str:
    name = SOURCE_NAMES.get(detected_source)
    return f"Scan ({name})" if name else "Scan"


def source_label(preset: int, configured_source: int, active_preset: int, live_source: int) -> str:
    """Label for a preset's source selector; the active scanning preset shows what it found."""
    if configured_source == SCAN:
        return scan_label(live_source if preset == active_preset else 0)
    return SOURCE_NAMES.get(configured_source, str(configured_source))

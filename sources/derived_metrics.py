# derived_metrics.py
"""
Presentation values computed from a bottle's latest state.

All functions are pure: they read numbers and return numbers or display
strings, nothing else.
"""

import math
from datetime import datetime
from typing import Optional, Tuple

from config import DEFAULT_LOW_VOLUME_THRESHOLD, RATE_NOISE_FLOOR
from models import DeviceState

RGB = Tuple[int, int, int]

# Gradient anchors
RED: RGB = (239, 68, 68)       # 0 %
YELLOW: RGB = (234, 180, 8)    # 50 %
GREEN: RGB = (34, 197, 94)     # 100 %

NO_DATA = "--"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _interpolate(start: RGB, end: RGB, ratio: float) -> RGB:
    """Channel‑wise linear blend; ``ratio`` 0 gives ``start``, 1 gives ``end``."""
    return tuple(
        _round_half_up(a + (b - a) * ratio) for a, b in zip(start, end)
    )  # type: ignore[return-value]


# ----------------------------------------------------------------------
# Level
# ----------------------------------------------------------------------
def percentage(state: DeviceState) -> Optional[float]:
    """
    Remaining level in percent.  The service's own percentage wins when it
    sent one; otherwise remaining / capacity, rounded.  No clamping.
    """
    if state.current_percentage_hint is not None:
        return state.current_percentage_hint
    if state.remaining_volume is None or not state.fill_capacity:
        return None
    return _round_half_up(state.remaining_volume / state.fill_capacity * 100)


def urgency_color(pct: float) -> RGB:
    """Red → yellow → green gradient over [0, 100], split at 50 %."""
    clamped = max(0.0, min(100.0, float(pct)))
    if clamped >= 50:
        return _interpolate(YELLOW, GREEN, (clamped - 50) / 50)
    return _interpolate(RED, YELLOW, clamped / 50)


def rgb_string(color: RGB) -> str:
    return "rgb({}, {}, {})".format(*color)


# ----------------------------------------------------------------------
# Time
# ----------------------------------------------------------------------
def _hours_minutes(total_minutes: float) -> str:
    minutes = int(math.floor(total_minutes))
    hours, rest = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {rest}m"
    return f"{minutes}m"


def time_remaining_display(
    time_remaining_hint: Optional[float],
    remaining_volume: Optional[float],
    infusion_rate: Optional[float],
) -> str:
    """
    Time to empty.  A positive hint (seconds) is authoritative; otherwise it
    is estimated from volume (ml) and rate (ml/min).
    """
    if time_remaining_hint is not None and time_remaining_hint > 0:
        return _hours_minutes(time_remaining_hint / 60)

    if (
        infusion_rate is not None
        and infusion_rate > 0
        and remaining_volume is not None
        and remaining_volume > 0
    ):
        minutes = remaining_volume / infusion_rate
        if minutes < 1:
            return "< 1m"
        return _hours_minutes(minutes)

    return NO_DATA


def elapsed_minutes(time: float, start_time: float) -> float:
    """Chart x value: minutes between ``start_time`` and ``time``."""
    return (time - start_time) / 60.0


def clock_display(epoch_s: Optional[float]) -> str:
    """Local wall‑clock time as ``HH:MM:SS``."""
    if epoch_s is None:
        return NO_DATA
    try:
        return datetime.fromtimestamp(epoch_s).strftime("%H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return NO_DATA


# ----------------------------------------------------------------------
# Rate / alerts
# ----------------------------------------------------------------------
def rate_display(infusion_rate: Optional[float]) -> str:
    if infusion_rate is None or abs(infusion_rate) < RATE_NOISE_FLOOR:
        return NO_DATA
    return f"{abs(infusion_rate):.1f}"


def low_volume_alert(
    remaining_volume: Optional[float],
    threshold: float = DEFAULT_LOW_VOLUME_THRESHOLD,
) -> bool:
    """True for a bottle running low; an empty bottle (0 ml) is not "low"."""
    if remaining_volume is None:
        return False
    return 0 < remaining_volume < threshold

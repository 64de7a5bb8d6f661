# test_derived_metrics.py
from datetime import datetime

import pytest

from derived_metrics import (
    GREEN,
    RED,
    YELLOW,
    clock_display,
    elapsed_minutes,
    low_volume_alert,
    percentage,
    rate_display,
    rgb_string,
    time_remaining_display,
    urgency_color,
)
from models import DeviceState


def state(**fields) -> DeviceState:
    base = dict(device_id="B7", observed_at=100, start_time=100)
    base.update(fields)
    return DeviceState(**base)


# ----------------------------------------------------------------------
# percentage
# ----------------------------------------------------------------------
def test_percentage_prefers_hint() -> None:
    assert percentage(state(current_percentage_hint=42.5, remaining_volume=1, fill_capacity=2)) == 42.5


def test_percentage_hint_of_zero_is_still_a_hint() -> None:
    assert percentage(state(current_percentage_hint=0.0, remaining_volume=50, fill_capacity=100)) == 0.0


def test_percentage_from_volume_rounds_half_up() -> None:
    assert percentage(state(remaining_volume=50, fill_capacity=200)) == 25
    assert percentage(state(remaining_volume=1, fill_capacity=8)) == 13


def test_percentage_is_not_clamped() -> None:
    assert percentage(state(remaining_volume=600, fill_capacity=500)) == 120


@pytest.mark.parametrize(
    "fields",
    [dict(remaining_volume=None, fill_capacity=500), dict(remaining_volume=10, fill_capacity=0),
     dict(remaining_volume=10, fill_capacity=None)],
)
def test_percentage_unavailable(fields) -> None:
    assert percentage(state(**fields)) is None


# ----------------------------------------------------------------------
# urgency colour
# ----------------------------------------------------------------------
def test_color_anchors() -> None:
    assert urgency_color(0) == RED == (239, 68, 68)
    assert urgency_color(50) == YELLOW == (234, 180, 8)
    assert urgency_color(100) == GREEN == (34, 197, 94)


def test_color_is_continuous_at_fifty() -> None:
    below = urgency_color(49.9999)
    assert all(abs(a - b) <= 1 for a, b in zip(below, urgency_color(50)))


def test_color_interpolates_each_segment() -> None:
    assert urgency_color(25) == (237, 124, 38)
    assert urgency_color(75) == (134, 189, 51)


def test_color_clamps_out_of_range() -> None:
    assert urgency_color(-20) == RED
    assert urgency_color(180) == GREEN


def test_rgb_string() -> None:
    assert rgb_string(urgency_color(50)) == "rgb(234, 180, 8)"


# ----------------------------------------------------------------------
# time remaining
# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "hint, volume, rate, expected",
    [
        (3900, None, None, "1h 5m"),
        (1800, None, None, "30m"),
        (3600, 5, 10, "1h 0m"),
        (None, 5, 10, "< 1m"),
        (None, 650, 10, "1h 5m"),
        (None, 30, 10, "3m"),
        (0, 650, 10, "1h 5m"),
        (-5, 650, 10, "1h 5m"),
        (None, 650, 0, "--"),
        (None, 650, -3, "--"),
        (None, 0, 10, "--"),
        (None, None, 10, "--"),
        (None, 650, None, "--"),
    ],
)
def test_time_remaining_display(hint, volume, rate, expected) -> None:
    assert time_remaining_display(hint, volume, rate) == expected


# ----------------------------------------------------------------------
# rate / alerts / clock
# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "rate, expected",
    [(None, "--"), (0, "--"), (0.005, "--"), (-0.009, "--"), (2.36, "2.4"), (-4.0, "4.0"), (0.01, "0.0")],
)
def test_rate_display(rate, expected) -> None:
    assert rate_display(rate) == expected


@pytest.mark.parametrize(
    "volume, expected",
    [(0, False), (19.999, True), (20, False), (0.1, True), (-1, False), (None, False)],
)
def test_low_volume_alert(volume, expected) -> None:
    assert low_volume_alert(volume, 20) is expected


def test_low_volume_alert_default_threshold() -> None:
    assert low_volume_alert(19.0) is True
    assert low_volume_alert(21.0) is False


def test_clock_display() -> None:
    ts = 1_767_962_407
    assert clock_display(ts) == datetime.fromtimestamp(ts).strftime("%H:%M:%S")
    assert clock_display(None) == "--"


def test_elapsed_minutes() -> None:
    assert elapsed_minutes(190, 100) == 1.5

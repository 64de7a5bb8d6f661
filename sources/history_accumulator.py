# history_accumulator.py
"""
Bounded per‑bottle trend history.

Each bottle owns a :class:`DeviceHistory`, a FIFO ring of
:class:`HistoryPoint` values.  When the ring is full the oldest point is
dropped, never an interior one.  :class:`HistoryAccumulator` maps bottle ids
to their history and appends one point per new observation.
"""

import math
from collections import deque
from typing import Deque, Dict, Iterator, Optional, Tuple

import pandas as pd

from config import DEFAULT_HISTORY_CAPACITY
from derived_metrics import elapsed_minutes
from models import DeviceState, HistoryPoint

FRAME_COLUMNS = ["time", "elapsed_min", "remaining_volume", "infusion_rate"]


def _valid_volume(value: Optional[float]) -> bool:
    return value is not None and not isinstance(value, bool) and math.isfinite(value)


class DeviceHistory:
    """
    Insertion‑ordered history of one bottle, at most ``capacity`` points.
    """

    def __init__(self, device_id: str, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.device_id = device_id
        self.capacity = capacity
        self._points: Deque[HistoryPoint] = deque(maxlen=capacity)

    def append(self, point: HistoryPoint) -> bool:
        """Append ``point``; returns False when its volume is unusable."""
        if not _valid_volume(point.remaining_volume):
            return False
        self._points.append(point)   # deque(maxlen) drops the oldest
        return True

    def points(self) -> Tuple[HistoryPoint, ...]:
        """Oldest first."""
        return tuple(self._points)

    def newest_first(self) -> Tuple[HistoryPoint, ...]:
        """Order used by the history table."""
        return tuple(sorted(self._points, key=lambda p: p.time, reverse=True))

    @property
    def latest(self) -> Optional[HistoryPoint]:
        return self._points[-1] if self._points else None

    def to_frame(self, start_time: Optional[int] = None) -> pd.DataFrame:
        """
        Chart‑ready DataFrame sorted by time.

        ``elapsed_min`` is measured from ``start_time`` (the first point when
        not given); volume and rate are rounded to one decimal.
        """
        if not self._points:
            return pd.DataFrame(columns=FRAME_COLUMNS)

        origin = start_time if start_time is not None else self._points[0].time
        df = pd.DataFrame(
            {
                "time": [p.time for p in self._points],
                "elapsed_min": [elapsed_minutes(p.time, origin) for p in self._points],
                "remaining_volume": [p.remaining_volume for p in self._points],
                "infusion_rate": [
                    p.infusion_rate if p.infusion_rate is not None else float("nan")
                    for p in self._points
                ],
            },
            columns=FRAME_COLUMNS,
        )
        df[["remaining_volume", "infusion_rate"]] = df[
            ["remaining_volume", "infusion_rate"]
        ].round(1)
        return df.sort_values("time", kind="stable").reset_index(drop=True)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[HistoryPoint]:
        return iter(tuple(self._points))


class HistoryAccumulator:
    """Owns one :class:`DeviceHistory` per bottle id."""

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._histories: Dict[str, DeviceHistory] = {}

    def record(self, state: DeviceState) -> bool:
        """
        Append the sample carried by ``state``.  Not idempotent: calling it
        twice with the same state stores two points.
        """
        history = self._histories.get(state.device_id)
        if history is None:
            history = DeviceHistory(state.device_id, self.capacity)
            self._histories[state.device_id] = history
        point = HistoryPoint(
            time=state.observed_at,
            remaining_volume=state.remaining_volume,
            infusion_rate=state.infusion_rate,
        )
        return history.append(point)

    def get(self, device_id: str) -> Optional[DeviceHistory]:
        return self._histories.get(device_id)

    def points(self, device_id: str) -> Tuple[HistoryPoint, ...]:
        history = self._histories.get(device_id)
        return history.points() if history else ()

    def newest_first(self, device_id: str) -> Tuple[HistoryPoint, ...]:
        history = self._histories.get(device_id)
        return history.newest_first() if history else ()

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._histories

    def __len__(self) -> int:
        return len(self._histories)

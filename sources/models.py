# models.py
"""
Dataclasses describing one bottle's telemetry.

``TelemetryRecord`` is what the data service sends, ``DeviceState`` is the
latest known state the session keeps per bottle and ``HistoryPoint`` is one
sample of the per‑bottle trend.
"""

from dataclasses import dataclass, replace
from typing import Optional


# ----------------------------------------------------------------------
# Dataclasses
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class TelemetryRecord:
    """One element of a poll response."""
    device_id: str
    observed_at: int                                  # epoch seconds
    current_level: Optional[float] = None             # ml
    remaining_volume: Optional[float] = None          # ml
    fill_capacity: Optional[float] = None             # ml, full bottle
    infusion_rate: Optional[float] = None             # ml/min, sign ignored
    time_remaining_hint: Optional[float] = None       # seconds
    current_percentage_hint: Optional[float] = None   # 0‑100


@dataclass(frozen=True)
class DeviceState:
    """Latest state of one bottle.  ``start_time`` is fixed at first sighting."""
    device_id: str
    observed_at: int
    start_time: int
    current_level: Optional[float] = None
    remaining_volume: Optional[float] = None
    fill_capacity: Optional[float] = None
    infusion_rate: Optional[float] = None
    time_remaining_hint: Optional[float] = None
    current_percentage_hint: Optional[float] = None

    @classmethod
    def from_record(cls, record: TelemetryRecord) -> "DeviceState":
        """First sighting of a bottle: the record's timestamp becomes start_time."""
        return cls(
            device_id=record.device_id,
            observed_at=record.observed_at,
            start_time=record.observed_at,
            current_level=record.current_level,
            remaining_volume=record.remaining_volume,
            fill_capacity=record.fill_capacity,
            infusion_rate=record.infusion_rate,
            time_remaining_hint=record.time_remaining_hint,
            current_percentage_hint=record.current_percentage_hint,
        )

    def is_superseded_by(self, record: TelemetryRecord) -> bool:
        return record.observed_at > self.observed_at

    def updated_with(self, record: TelemetryRecord) -> "DeviceState":
        """Return a new state carrying ``record``'s fields and our start_time."""
        return replace(
            self,
            observed_at=record.observed_at,
            current_level=record.current_level,
            remaining_volume=record.remaining_volume,
            fill_capacity=record.fill_capacity,
            infusion_rate=record.infusion_rate,
            time_remaining_hint=record.time_remaining_hint,
            current_percentage_hint=record.current_percentage_hint,
        )


@dataclass(frozen=True)
class HistoryPoint:
    time: int                                 # epoch seconds
    remaining_volume: float                   # ml
    infusion_rate: Optional[float] = None     # ml/min

# monitor_session.py
"""
Session object owning the per‑bottle state and history.

The poll scheduler is the only writer (``apply_payload`` / ``merge`` /
``mark_disconnected``); presenters read immutable snapshots.  Every
read‑modify‑write of a bottle's state and history happens under one lock so
a reader never sees a state without its matching history point.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from app_logger import logger
from config import DEFAULT_HISTORY_CAPACITY, DEFAULT_LOW_VOLUME_THRESHOLD
from derived_metrics import low_volume_alert
from history_accumulator import HistoryAccumulator
from models import DeviceState, HistoryPoint, TelemetryRecord
from snapshot_ingestor import ingest_snapshot
from timing_decorator import timed


@dataclass(frozen=True)
class SessionSnapshot:
    """Consistent, read‑only copy of the session for one render."""
    states: Dict[str, DeviceState] = field(default_factory=dict)
    histories: Dict[str, Tuple[HistoryPoint, ...]] = field(default_factory=dict)
    connected: bool = False
    last_error: Optional[str] = None
    # newest first, as the history table lists them
    history_tables: Dict[str, Tuple[HistoryPoint, ...]] = field(default_factory=dict)
    low_volume: Tuple[str, ...] = ()

    @property
    def device_ids(self) -> List[str]:
        return sorted(self.states)


class MonitorSession:
    """
    Latest state and bounded history for every bottle seen so far.

    Parameters
    ----------
    history_capacity : int
        Maximum number of history points per bottle.
    low_volume_threshold : float
        Threshold (ml) used by :meth:`low_volume_devices`.
    """

    def __init__(
        self,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
        low_volume_threshold: float = DEFAULT_LOW_VOLUME_THRESHOLD,
    ):
        self.low_volume_threshold = low_volume_threshold
        self._states: Dict[str, DeviceState] = {}
        self._histories = HistoryAccumulator(history_capacity)
        self._lock = threading.Lock()

        self.connected = False
        self.last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Writers – called by the poll scheduler only
    # ------------------------------------------------------------------
    @timed("MonitorSession.merge")
    def merge(
        self, records: Union[Mapping[str, TelemetryRecord], Iterable[TelemetryRecord]]
    ) -> List[str]:
        """
        Fold one cycle's records into the session.

        A bottle seen for the first time gets ``start_time = observed_at``.
        A known bottle is updated only by a strictly newer record.  Each
        creation or update appends one history point.  Returns the ids of
        the bottles that changed.
        """
        with self._lock:
            return self._merge_locked(records)

    def apply_payload(self, payload: Any) -> List[str]:
        """Ingest a successful poll response and mark the session connected."""
        records = ingest_snapshot(payload)
        with self._lock:
            changed = self._merge_locked(records)
            self.connected = True
            self.last_error = None
        return changed

    def mark_disconnected(self, reason: str) -> None:
        """Failed cycle: flip status, keep every state and history untouched."""
        with self._lock:
            self.connected = False
            self.last_error = reason

    def _merge_locked(
        self, records: Union[Mapping[str, TelemetryRecord], Iterable[TelemetryRecord]]
    ) -> List[str]:
        # caller holds self._lock
        if isinstance(records, Mapping):
            records = records.values()

        changed: List[str] = []
        for record in records:
            current = self._states.get(record.device_id)
            if current is None:
                new_state = DeviceState.from_record(record)
                logger.info(
                    "new bottle %s first seen at %d", record.device_id, record.observed_at
                )
            elif current.is_superseded_by(record):
                new_state = current.updated_with(record)
            else:
                logger.debug(
                    "bottle %s: stale record %d <= %d ignored",
                    record.device_id, record.observed_at, current.observed_at,
                )
                continue

            self._states[record.device_id] = new_state
            self._histories.record(new_state)
            changed.append(record.device_id)
        return changed

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------
    def get_state(self, device_id: str) -> Optional[DeviceState]:
        with self._lock:
            return self._states.get(device_id)

    def get_history(self, device_id: str) -> Tuple[HistoryPoint, ...]:
        with self._lock:
            return self._histories.points(device_id)

    def history_table(self, device_id: str) -> Tuple[HistoryPoint, ...]:
        """A bottle's history newest first."""
        with self._lock:
            return self._histories.newest_first(device_id)

    def history_frame(self, device_id: str):
        """pandas DataFrame of a bottle's history, x measured from start_time."""
        with self._lock:
            state = self._states.get(device_id)
            history = self._histories.get(device_id)
            if state is None or history is None:
                return None
            return history.to_frame(state.start_time)

    @property
    def device_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._states)

    def states(self) -> Dict[str, DeviceState]:
        with self._lock:
            return dict(self._states)

    def low_volume_devices(self) -> List[str]:
        with self._lock:
            return self._low_volume_locked()

    def _low_volume_locked(self) -> List[str]:
        return sorted(
            device_id
            for device_id, state in self._states.items()
            if low_volume_alert(state.remaining_volume, self.low_volume_threshold)
        )

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                states=dict(self._states),
                histories={
                    device_id: self._histories.points(device_id)
                    for device_id in self._states
                },
                connected=self.connected,
                last_error=self.last_error,
                history_tables={
                    device_id: self._histories.newest_first(device_id)
                    for device_id in self._states
                },
                low_volume=tuple(self._low_volume_locked()),
            )

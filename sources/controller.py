# controller.py
"""
Glue between the session and whichever view is running.  After every poll
cycle it turns the session snapshot into one display row per bottle and hands
the rows to the view through ``update_row(device_id, dict)``,
``set_status(connected, error)`` and ``set_alerts(low_volume_ids)``.
"""

from typing import Any, Dict, Optional, Protocol, Sequence

from app_logger import logger
from config import DEFAULT_LOW_VOLUME_THRESHOLD
from derived_metrics import (
    clock_display,
    low_volume_alert,
    percentage,
    rate_display,
    rgb_string,
    time_remaining_display,
    urgency_color,
)
from models import DeviceState, HistoryPoint
from monitor_session import MonitorSession


class DashboardView(Protocol):
    def update_row(self, device_id: str, data: Dict[str, Any]) -> None: ...

    def set_status(self, connected: bool, error: Optional[str] = None) -> None: ...

    def set_alerts(self, device_ids: Sequence[str]) -> None: ...


def build_row(
    state: DeviceState,
    history: Sequence[HistoryPoint] = (),
    low_volume_threshold: float = DEFAULT_LOW_VOLUME_THRESHOLD,
    history_table: Sequence[HistoryPoint] = (),
) -> Dict[str, Any]:
    """Everything a card or table row shows for one bottle.

    ``history`` is oldest first (trend); ``history_table`` newest first.
    """
    pct = percentage(state)
    color = urgency_color(pct) if pct is not None else None
    return {
        "device_id": state.device_id,
        "remaining_volume": state.remaining_volume,
        "fill_capacity": state.fill_capacity,
        "current_level": state.current_level,
        "percentage": pct,
        "color": color,
        "color_css": rgb_string(color) if color is not None else None,
        "rate": rate_display(state.infusion_rate),
        "time_left": time_remaining_display(
            state.time_remaining_hint, state.remaining_volume, state.infusion_rate
        ),
        "updated": clock_display(state.observed_at),
        "started": clock_display(state.start_time),
        "observed_at": state.observed_at,
        "start_time": state.start_time,
        "low_volume": low_volume_alert(state.remaining_volume, low_volume_threshold),
        "history": tuple(history),
        "history_table": tuple(history_table),
    }


class TelemetryController:
    def __init__(
        self,
        session: MonitorSession,
        view: Optional[DashboardView] = None,
        low_volume_threshold: float = DEFAULT_LOW_VOLUME_THRESHOLD,
    ):
        self.session = session
        self.view = view
        self.low_volume_threshold = low_volume_threshold
        # last observed_at logged per bottle, so a bottle is logged once per update
        self._last_logged: Dict[str, int] = {}
        self._was_low: Dict[str, bool] = {}

    def handle_cycle(self, session: Optional[MonitorSession] = None) -> Dict[str, Dict[str, Any]]:
        """Callback for ``PollScheduler.on_cycle``; returns the rows it built."""
        snapshot = (session or self.session).snapshot()

        rows: Dict[str, Dict[str, Any]] = {}
        for device_id in snapshot.device_ids:
            state = snapshot.states[device_id]
            row = build_row(
                state,
                snapshot.histories.get(device_id, ()),
                self.low_volume_threshold,
                snapshot.history_tables.get(device_id, ()),
            )
            rows[device_id] = row
            self._log_update(row)
            if self.view is not None:
                self.view.update_row(device_id, row)

        if self.view is not None:
            self.view.set_status(snapshot.connected, snapshot.last_error)
            self.view.set_alerts(snapshot.low_volume)
        return rows

    def _log_update(self, row: Dict[str, Any]) -> None:
        device_id = row["device_id"]
        if self._last_logged.get(device_id) == row["observed_at"]:
            return
        self._last_logged[device_id] = row["observed_at"]

        volume = row["remaining_volume"]
        logger.info(
            "bottle %s – vol=%s ml, level=%s%%, rate=%s ml/min, left=%s",
            device_id,
            f"{volume:.1f}" if volume is not None else "--",
            row["percentage"] if row["percentage"] is not None else "--",
            row["rate"],
            row["time_left"],
        )

        was_low = self._was_low.get(device_id, False)
        if row["low_volume"] and not was_low:
            logger.warning(
                "bottle %s low fluid level (%.1f ml < %.1f ml)",
                device_id, volume, self.low_volume_threshold,
            )
        self._was_low[device_id] = row["low_volume"]

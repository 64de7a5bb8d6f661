#!/usr/bin/env python3
"""
Live trend charts for every bottle in one Matplotlib window.

The per‑bottle drawing lives in the private class _OneBottlePlot; the public
wrapper InfusionLivePlot owns the figure, lays out one subplot per bottle
(rebuilding the grid when a new bottle shows up) and drives the animation.
Data comes from a MonitorSession, filled by a PollScheduler running in
another thread.
"""

import math
from typing import Dict, List

import matplotlib.pyplot as plt
import seaborn as sns
from matplotlib.animation import FuncAnimation

from app_logger import logger
from config import DEFAULT_LOW_VOLUME_THRESHOLD, DEFAULT_POLL_INTERVAL_S
from controller import build_row
from monitor_session import MonitorSession

CHART_CONFIG = {
    "remaining_volume": {
        "name": "Remaining Volume",
        "unit": "ml",
        "color": "#3b82f6",
        "y_label": "Volume (ml)",
    },
    "infusion_rate": {
        "name": "Infusion Rate",
        "unit": "ml/min",
        "color": "#10b981",
        "y_label": "Rate (ml/min)",
    },
}


# ----------------------------------------------------------------------
# 1️⃣  INTERNAL CLASS – one bottle, drawn on a pre‑created Axes
# ----------------------------------------------------------------------
class _OneBottlePlot:
    """Draws the history of a single bottle."""

    def __init__(self, session: MonitorSession, device_id: str, ax, low_volume_threshold: float):
        self.session = session
        self.device_id = device_id
        self.ax = ax
        self.low_volume_threshold = low_volume_threshold

        (self.line,) = self.ax.plot([], [], linewidth=2)
        self.ax.set_xlabel("Elapsed (min)")
        self.ax.set_title(f"Bottle {self.device_id}")

        # summary box, axes‑fraction coordinates (left, centred)
        self.summary = self.ax.text(
            0.02, 0.15, "",
            transform=self.ax.transAxes,
            ha="left", va="center",
            fontsize=9,
            color="#555555",
            bbox=dict(facecolor="white", edgecolor="#dddddd", pad=4),
        )
        self.alert_tag = self.ax.text(
            0.98, 0.98, "",
            transform=self.ax.transAxes,
            ha="right", va="top",
            fontsize=9,
            color="white",
            bbox=dict(facecolor="#ef4444", edgecolor="#ef4444", pad=1.5),
        )
        self.alert_tag.set_visible(False)

    def animate(self, graph_type: str):
        config = CHART_CONFIG[graph_type]
        state = self.session.get_state(self.device_id)
        df = self.session.history_frame(self.device_id)
        if state is None or df is None:
            return (self.line, self.summary, self.alert_tag)

        data = df.dropna(subset=[graph_type])
        self.line.set_data(data["elapsed_min"], data[graph_type])
        self.line.set_color(config["color"])
        self.line.set_label(config["name"])
        self.ax.set_ylabel(config["y_label"], color=config["color"])

        if not data.empty:
            x_min, x_max = data["elapsed_min"].min(), data["elapsed_min"].max()
            if x_min == x_max:
                x_max = x_min + 1.0
            y_min, y_max = data[graph_type].min(), data[graph_type].max()
            pad = max((y_max - y_min) * 0.1, 1.0)
            self.ax.set_xlim(x_min, x_max)
            self.ax.set_ylim(y_min - pad, y_max + pad)

        row = build_row(state, low_volume_threshold=self.low_volume_threshold)
        pct = row["percentage"]
        self.summary.set_text(
            f"Level: {pct if pct is not None else '--'}%\n"
            f"Rate: {row['rate']} ml/min\n"
            f"Time left: {row['time_left']}\n"
            f"Updated: {row['updated']}"
        )
        if row["color"] is not None:
            self.summary.get_bbox_patch().set_edgecolor(
                tuple(c / 255.0 for c in row["color"])
            )
        self.alert_tag.set_visible(row["low_volume"])
        if row["low_volume"]:
            self.alert_tag.set_text(
                f"Low limit ({state.remaining_volume:.1f} ml < {self.low_volume_threshold:g} ml)"
            )
        return (self.line, self.summary, self.alert_tag)


# ----------------------------------------------------------------------
# 2️⃣  PUBLIC WRAPPER – any number of bottles
# ----------------------------------------------------------------------
class InfusionLivePlot:
    """
    Parameters
    ----------
    session : MonitorSession
        Session filled by the poll scheduler.
    interval_ms : int, optional
        Refresh interval for the animation (default 2000 ms).
    graph_type : str, optional
        ``"remaining_volume"`` or ``"infusion_rate"``; ``v`` toggles it.
    """

    def __init__(self, session: MonitorSession,
                 interval_ms: int = int(DEFAULT_POLL_INTERVAL_S * 1000),
                 graph_type: str = "remaining_volume",
                 low_volume_threshold: float = DEFAULT_LOW_VOLUME_THRESHOLD):
        if graph_type not in CHART_CONFIG:
            raise ValueError(f"unknown graph type {graph_type!r}")
        self.session = session
        self.interval_ms = interval_ms
        self.graph_type = graph_type
        self.low_volume_threshold = low_volume_threshold

        sns.set_style("whitegrid")
        self.fig = plt.figure(figsize=(12, 6))
        self.fig.canvas.mpl_connect("key_press_event", self._on_key)
        self.sub_plots: Dict[str, _OneBottlePlot] = {}
        self._layout: List[str] = []
        self._build_grid()

    def toggle_graph_type(self) -> None:
        self.graph_type = (
            "infusion_rate" if self.graph_type == "remaining_volume" else "remaining_volume"
        )

    def _on_key(self, event) -> None:
        if event.key in ("v", "V"):
            self.toggle_graph_type()
            logger.info("chart view: %s", CHART_CONFIG[self.graph_type]["name"])

    def _title(self) -> str:
        status = "Connected" if self.session.connected else "Disconnected"
        return f"Infusion Monitoring – {CHART_CONFIG[self.graph_type]['name']} vs Time  [{status}]"

    def _build_grid(self) -> None:
        """(Re)create one subplot per known bottle in a tidy grid."""
        device_ids = self.session.device_ids
        self.fig.clf()
        self.sub_plots = {}
        self._layout = device_ids

        if not device_ids:
            ax = self.fig.add_subplot(1, 1, 1)
            ax.axis("off")
            ax.text(0.5, 0.5, "Loading bottle data...", ha="center", va="center")
            return

        n = len(device_ids)
        cols = math.ceil(math.sqrt(n))
        rows = math.ceil(n / cols)
        for idx, device_id in enumerate(device_ids):
            ax = self.fig.add_subplot(rows, cols, idx + 1)
            self.sub_plots[device_id] = _OneBottlePlot(
                self.session, device_id, ax, self.low_volume_threshold
            )
        self.fig.tight_layout(rect=[0, 0, 1, 0.95])

    def _animate_all(self, frame_idx):
        if self.session.device_ids != self._layout:
            self._build_grid()
        self.fig.suptitle(self._title(), fontsize=14)
        artists = []
        for sp in self.sub_plots.values():
            artists.extend(sp.animate(self.graph_type))
        return artists

    def run(self) -> None:
        """Start the live animation; blocks until the window is closed."""
        self._anim = FuncAnimation(
            self.fig, func=self._animate_all, interval=self.interval_ms,
            blit=False, cache_frame_data=False,
        )
        plt.show()

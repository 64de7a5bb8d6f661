# curses_view.py
"""
Curses dashboard showing the latest state of every bottle.

The view owns the curses window and redraws only when the controller has
pushed new rows or a key changed the screen; it never blocks the poll loop.
Three modes: the bottle table, the scrollable log and the history table of
the selected bottle.
"""

import curses
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app_logger import log_buffer
from derived_metrics import GREEN, RED, YELLOW, clock_display

GRAPH_TYPES = ("remaining_volume", "infusion_rate")
GRAPH_LABELS = {"remaining_volume": "Remaining Volume", "infusion_rate": "Infusion Rate"}
SPARK_CHARS = "▁▂▃▄▅▆▇█"
SPARK_WIDTH = 16

# colour pair ids
PAIR_HEADER, PAIR_GREEN, PAIR_YELLOW, PAIR_RED, PAIR_ALERT = 1, 2, 3, 4, 5
_BANDS = ((GREEN, PAIR_GREEN), (YELLOW, PAIR_YELLOW), (RED, PAIR_RED))


def color_band(color: Optional[Tuple[int, int, int]]) -> int:
    """Nearest terminal colour pair for an urgency RGB value (0 = none)."""
    if color is None:
        return 0
    return min(
        _BANDS,
        key=lambda band: sum((a - b) ** 2 for a, b in zip(color, band[0])),
    )[1]


def sparkline(values: Sequence[Optional[float]], width: int = SPARK_WIDTH) -> str:
    """Text trend of the last ``width`` values; gaps for missing ones."""
    tail = list(values)[-width:]
    present = [v for v in tail if v is not None]
    if not present:
        return ""
    low, high = min(present), max(present)
    span = high - low
    chars = []
    for v in tail:
        if v is None:
            chars.append(" ")
        elif span == 0:
            chars.append(SPARK_CHARS[len(SPARK_CHARS) // 2])
        else:
            chars.append(SPARK_CHARS[round((v - low) / span * (len(SPARK_CHARS) - 1))])
    return "".join(chars)


class CursesView:
    """
    Minimal curses UI.  The controller calls ``update_row`` with the dict
    built by ``controller.build_row``, then ``set_status`` and ``set_alerts``
    after each cycle.
    """

    HEADER = ["bottle", "remaining ml", "total ml", "level %",
              "rate ml/min", "time left", "updated", "trend"]

    def __init__(self, stdscr: "curses.window", graph_type: str = "remaining_volume") -> None:
        self.stdscr = stdscr
        self._rows: Dict[str, Dict[str, Any]] = {}
        self.mode: str = "table"           # table | log | history
        self.graph_type = graph_type       # which metric the trend column shows
        self.selected: int = 0             # index into the sorted bottle ids
        self.scroll: int = 0               # first visible line in log/history mode
        self.connected = False
        self.last_error: Optional[str] = None
        self._low_volume: List[str] = []
        self._needs_redraw = True
        self._stopped = False
        self._init_curses()

    # ------------------------------------------------------------------
    # Curses initialisation
    # ------------------------------------------------------------------
    def _init_curses(self) -> None:
        curses.curs_set(0)
        self.stdscr.nodelay(True)
        self.stdscr.keypad(True)
        curses.start_color()
        curses.use_default_colors()
        curses.init_pair(PAIR_HEADER, curses.COLOR_WHITE, curses.COLOR_BLUE)
        curses.init_pair(PAIR_GREEN, curses.COLOR_GREEN, -1)
        curses.init_pair(PAIR_YELLOW, curses.COLOR_YELLOW, -1)
        curses.init_pair(PAIR_RED, curses.COLOR_RED, -1)
        curses.init_pair(PAIR_ALERT, curses.COLOR_WHITE, curses.COLOR_RED)
        self.header_attr = curses.color_pair(PAIR_HEADER) | curses.A_BOLD

    # ------------------------------------------------------------------
    # Public API – called by the controller
    # ------------------------------------------------------------------
    def update_row(self, device_id: str, data: Dict[str, Any]) -> None:
        self._rows[device_id] = data
        self._needs_redraw = True

    def set_status(self, connected: bool, error: Optional[str] = None) -> None:
        if connected != self.connected or error != self.last_error:
            self._needs_redraw = True
        self.connected = connected
        self.last_error = error

    def set_alerts(self, device_ids: Sequence[str]) -> None:
        low = list(device_ids)
        if low != self._low_volume:
            self._needs_redraw = True
        self._low_volume = low

    def toggle_graph_type(self) -> None:
        idx = GRAPH_TYPES.index(self.graph_type)
        self.graph_type = GRAPH_TYPES[(idx + 1) % len(GRAPH_TYPES)]

    def stop(self) -> None:
        self._stopped = True

    def run(self) -> None:
        """Poll keys and redraw when needed, until :meth:`stop` or 'q'."""
        while not self._stopped:
            self._handle_key()
            if self._needs_redraw:
                self._render()
                self._needs_redraw = False
            curses.napms(10)

    # ------------------------------------------------------------------
    # Key handling
    # ------------------------------------------------------------------
    def _selected_id(self) -> Optional[str]:
        ids = sorted(self._rows)
        if not ids:
            return None
        self.selected = min(self.selected, len(ids) - 1)
        return ids[self.selected]

    def _handle_key(self) -> None:
        """
        * ``t`` table, ``l`` log, ``h`` history of the selected bottle
        * ``v`` toggle the trend metric, ``q`` quit
        * arrows / PageUp / PageDown select a bottle or scroll
        """
        try:
            ch = self.stdscr.getch()
        except curses.error:
            ch = -1
        if ch == -1:
            return

        if ch in (ord("q"), ord("Q")):
            self.stop()
            return
        if ch in (ord("l"), ord("L")):
            self.mode, self.scroll = "log", 0
        elif ch in (ord("t"), ord("T")):
            self.mode = "table"
        elif ch in (ord("h"), ord("H")):
            self.mode, self.scroll = "history", 0
        elif ch in (ord("v"), ord("V")):
            self.toggle_graph_type()
        elif self.mode == "table":
            if ch in (curses.KEY_DOWN, ord("j")):
                self.selected = min(self.selected + 1, max(0, len(self._rows) - 1))
            elif ch in (curses.KEY_UP, ord("k")):
                self.selected = max(self.selected - 1, 0)
        else:
            max_y, _ = self.stdscr.getmaxyx()
            visible = max(1, max_y - 3)
            last = max(0, self._scroll_length() - visible)
            if ch in (curses.KEY_DOWN, ord("j")):
                self.scroll = min(self.scroll + 1, last)
            elif ch in (curses.KEY_UP, ord("k")):
                self.scroll = max(self.scroll - 1, 0)
            elif ch == curses.KEY_NPAGE:
                self.scroll = min(self.scroll + visible, last)
            elif ch == curses.KEY_PPAGE:
                self.scroll = max(self.scroll - visible, 0)

        self._needs_redraw = True

    def _scroll_length(self) -> int:
        if self.mode == "log":
            return len(log_buffer)
        device_id = self._selected_id()
        return len(self._rows[device_id]["history_table"]) if device_id else 0

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def _addstr(self, y: int, x: int, text: str, attr: int = 0) -> None:
        max_y, max_x = self.stdscr.getmaxyx()
        if y >= max_y or x >= max_x - 1:
            return
        try:
            self.stdscr.addstr(y, x, text[: max_x - x - 1], attr)
        except curses.error:
            pass   # writing the bottom‑right cell raises; harmless

    def _render(self) -> None:
        self.stdscr.erase()
        self._draw_status()
        if self.mode == "table":
            self._draw_table()
        elif self.mode == "history":
            self._draw_history()
        else:
            self._draw_log()
        self._draw_footer()
        self.stdscr.refresh()

    def _draw_status(self) -> None:
        if self.connected:
            self._addstr(0, 0, " Status: Connected ", curses.color_pair(PAIR_GREEN) | curses.A_REVERSE)
        else:
            msg = " Status: Disconnected "
            if self.last_error:
                msg += f"({self.last_error}) "
            self._addstr(0, 0, msg, curses.color_pair(PAIR_ALERT) | curses.A_BOLD)

    def _draw_table(self) -> None:
        max_y, max_x = self.stdscr.getmaxyx()
        col_widths = [max(len(h), 10) for h in self.HEADER]
        col_widths[-1] = SPARK_WIDTH

        x = 0
        for title, w in zip(self.HEADER, col_widths):
            self._addstr(1, x, title.ljust(w), self.header_attr)
            x += w + 1

        if not self._rows:
            waiting = ("Unable to connect to server. Please check your connection."
                       if not self.connected else "Loading bottle data...")
            self._addstr(3, 0, waiting)
            return

        for idx, device_id in enumerate(sorted(self._rows)):
            row_y = idx + 2
            if row_y >= max_y - 2:
                break
            row = self._rows[device_id]
            volume = row["remaining_volume"]
            total = row["fill_capacity"]
            pct = row["percentage"]
            cells = [
                str(device_id),
                f"{volume:.0f}" if volume is not None else "--",
                f"{total:.0f}" if total is not None else "--",
                f"{pct:.0f}" if pct is not None else "--",
                row["rate"],
                row["time_left"],
                row["updated"],
                sparkline([getattr(p, self.graph_type) for p in row["history"]]),
            ]
            base = curses.A_REVERSE if idx == self.selected else 0
            x = 0
            for col, (cell, w) in enumerate(zip(cells, col_widths)):
                attr = base
                if col == 3:
                    attr |= curses.color_pair(color_band(row["color"]))
                self._addstr(row_y, x, cell.ljust(w), attr)
                x += w + 1

        if self._low_volume:
            banner = f" Low fluid level detected on bottle {', '.join(self._low_volume)}! Please attend immediately. "
            self._addstr(max_y - 2, 0, banner, curses.color_pair(PAIR_ALERT) | curses.A_BOLD)

    def _draw_history(self) -> None:
        max_y, _ = self.stdscr.getmaxyx()
        device_id = self._selected_id()
        if device_id is None:
            self._addstr(1, 0, "No history data available")
            return
        row = self._rows[device_id]
        self._addstr(1, 0, f"Bottle {device_id} – history (started {row['started']})".ljust(60),
                     self.header_attr)
        self._addstr(2, 0, f"{'time':<10} {'rate (ml/min)':<14} {'volume (ml)':<12}", curses.A_BOLD)

        points = row["history_table"]
        visible = max(0, max_y - 4)
        for idx, point in enumerate(points[self.scroll:self.scroll + visible]):
            rate = f"{point.infusion_rate:.1f} ml/min" if point.infusion_rate is not None else "--"
            self._addstr(
                idx + 3, 0,
                f"{clock_display(point.time):<10} {rate:<14} {point.remaining_volume:.1f} ml",
            )

    def _draw_log(self) -> None:
        max_y, _ = self.stdscr.getmaxyx()
        visible = max(0, max_y - 3)
        logs = list(log_buffer)
        for idx, line in enumerate(logs[self.scroll:self.scroll + visible]):
            self._addstr(idx + 1, 0, line)

    def _draw_footer(self) -> None:
        max_y, _ = self.stdscr.getmaxyx()
        mode_msg = f"[{self.mode.upper()} MODE] [trend: {GRAPH_LABELS[self.graph_type]}] "
        hint = "t table, l logs, h history, v trend, ↑/↓ select, q quit"
        self._addstr(max_y - 1, 0, mode_msg + hint, curses.A_REVERSE)

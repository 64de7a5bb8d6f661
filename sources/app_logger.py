# app_logger.py
"""
Single source of truth for log configuration.

Every module does ``from app_logger import logger``.  Records go to two
places: an in‑memory ring that the curses log view reads, and a file that
captures everything down to DEBUG.
"""

import logging
from collections import deque
from typing import Deque, Union

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
LOG_FILE = "infusion_monitor.log"
MAX_LOG_RECORDS = 200   # lines kept for the UI

logger = logging.getLogger("InfusionMonitor")
logger.setLevel(logging.DEBUG)
logger.propagate = False   # the curses screen must not receive stray stderr output


class MemoryHandler(logging.Handler):
    """
    Keeps the newest ``capacity`` formatted log lines in a bounded deque.
    The UI can read ``handler.buffer`` at any time.
    """
    def __init__(self, capacity: int = MAX_LOG_RECORDS):
        super().__init__(level=logging.INFO)
        self.capacity = capacity
        self.buffer: Deque[str] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        self.buffer.append(self.format(record))


formatter = logging.Formatter(LOG_FORMAT)

memory_handler = MemoryHandler()
memory_handler.setFormatter(formatter)
logger.addHandler(memory_handler)

file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8", delay=True)
file_handler.setLevel(logging.DEBUG)
file_handler.setFormatter(formatter)
logger.addHandler(file_handler)

# Exported so the view can read it without touching the handler.
log_buffer = memory_handler.buffer


def set_ui_level(level: Union[int, str]) -> None:
    """Change the level of the lines shown in the UI buffer."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"unknown log level: {level}")
    memory_handler.setLevel(level)

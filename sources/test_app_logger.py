# test_app_logger.py
import logging

import pytest

from app_logger import log_buffer, logger, memory_handler, set_ui_level
from timing_decorator import timed


def test_info_lines_reach_the_ui_buffer() -> None:
    logger.info("ui buffer probe %d", 42)
    assert any("ui buffer probe 42" in line for line in log_buffer)


def test_debug_lines_stay_out_of_the_ui_buffer() -> None:
    logger.debug("debug probe only for the file")
    assert not any("debug probe only for the file" in line for line in log_buffer)


def test_set_ui_level() -> None:
    try:
        set_ui_level("warning")
        assert memory_handler.level == logging.WARNING
        with pytest.raises(ValueError):
            set_ui_level("chatty")
    finally:
        set_ui_level(logging.INFO)


def test_timed_keeps_sync_and_async_results() -> None:
    import asyncio

    @timed("probe")
    def add(a, b):
        return a + b

    @timed()
    async def double(x):
        return x * 2

    assert add(2, 3) == 5
    assert add.__name__ == "add"
    assert asyncio.run(double(4)) == 8

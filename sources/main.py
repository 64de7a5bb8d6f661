#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""main.py
Entry point of the infusion monitor.  Polls the data service every few
seconds and shows the bottles either in a curses dashboard, in live
Matplotlib charts, or only in the log (headless).
"""

import asyncio
import curses
import logging
import threading
from enum import Enum
from typing import Callable, Optional

import aiohttp
import typer

from api_client import InfusionApiClient
from app_logger import LOG_FILE, logger, set_ui_level
from config import (
    DEFAULT_API_URL,
    DEFAULT_HISTORY_CAPACITY,
    DEFAULT_LOW_VOLUME_THRESHOLD,
    DEFAULT_POLL_INTERVAL_S,
    DEFAULT_REQUEST_TIMEOUT_S,
    MonitorConfig,
    get_version,
)
from controller import TelemetryController
from exceptions import ConfigException
from monitor_session import MonitorSession
from poll_scheduler import PollScheduler

app = typer.Typer(help="Infusion bottle monitoring dashboard.", add_completion=False)


class ViewMode(str, Enum):
    """Which presentation layer to start."""

    curses = "curses"
    plot = "plot"
    headless = "headless"


async def poll_forever(
    config: MonitorConfig,
    session: MonitorSession,
    on_cycle: Optional[Callable[[MonitorSession], None]] = None,
    keep_running: Callable[[], bool] = lambda: True,
) -> None:
    """Run the scheduler until ``keep_running()`` turns false."""
    async with aiohttp.ClientSession() as http:
        client = InfusionApiClient(http, config.api_url, config.request_timeout_s)
        scheduler = PollScheduler(client, session, config.poll_interval_s, on_cycle)
        task = asyncio.create_task(scheduler.run())
        try:
            while keep_running() and not task.done():
                await asyncio.sleep(0.1)
        finally:
            scheduler.stop()
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


# ----------------------------------------------------------------------
# One runner per view
# ----------------------------------------------------------------------
def run_curses(config: MonitorConfig, session: MonitorSession) -> None:
    from curses_view import CursesView

    def _main(stdscr: "curses.window") -> None:
        view = CursesView(stdscr)
        controller = TelemetryController(session, view, config.low_volume_threshold)
        # curses blocks, so the UI loop gets its own thread and asyncio keeps this one
        ui_thread = threading.Thread(target=view.run, daemon=True)
        ui_thread.start()
        try:
            asyncio.run(poll_forever(config, session, controller.handle_cycle, ui_thread.is_alive))
        finally:
            view.stop()
            ui_thread.join(timeout=1)

    curses.wrapper(_main)


def run_plot(config: MonitorConfig, session: MonitorSession) -> None:
    from live_plot import InfusionLivePlot

    # Matplotlib wants the main thread; polling moves to a worker thread.
    stop = threading.Event()
    controller = TelemetryController(session, None, config.low_volume_threshold)
    worker = threading.Thread(
        target=lambda: asyncio.run(
            poll_forever(config, session, controller.handle_cycle, lambda: not stop.is_set())
        ),
        daemon=True,
    )
    worker.start()
    try:
        InfusionLivePlot(
            session,
            interval_ms=int(config.poll_interval_s * 1000),
            low_volume_threshold=config.low_volume_threshold,
        ).run()
    finally:
        stop.set()
        worker.join(timeout=2)


def run_headless(config: MonitorConfig, session: MonitorSession) -> None:
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter("%(asctime)s %(levelname)-8s %(message)s"))
    logger.addHandler(console)
    controller = TelemetryController(session, None, config.low_volume_threshold)
    asyncio.run(poll_forever(config, session, controller.handle_cycle))


RUNNERS = {
    ViewMode.curses: run_curses,
    ViewMode.plot: run_plot,
    ViewMode.headless: run_headless,
}


def version_check(version: bool) -> None:
    if version:
        typer.echo(f"infusion-monitor version: {get_version()}")
        raise typer.Exit()


@app.command()
def main(
    url: str = typer.Option(DEFAULT_API_URL, "--url", "-u", help="Snapshot endpoint."),
    interval: float = typer.Option(
        DEFAULT_POLL_INTERVAL_S, "--interval", "-i", help="Seconds between polls."
    ),
    capacity: int = typer.Option(
        DEFAULT_HISTORY_CAPACITY, "--capacity", "-c", help="History points kept per bottle."
    ),
    threshold: float = typer.Option(
        DEFAULT_LOW_VOLUME_THRESHOLD, "--threshold", "-t", help="Low volume alarm (ml)."
    ),
    timeout: float = typer.Option(
        DEFAULT_REQUEST_TIMEOUT_S, "--timeout", help="HTTP request timeout (s)."
    ),
    view: ViewMode = typer.Option(ViewMode.curses, "--view", help="Presentation to start."),
    log_level: str = typer.Option("INFO", "--log-level", help="Level shown in the UI log."),
    version: bool = typer.Option(
        False, "--version", "-v", callback=version_check, is_eager=True,
        help="Print the version and exit.",
    ),
) -> None:
    """Poll the data service and show every monitored bottle."""
    try:
        config = MonitorConfig(
            api_url=url,
            poll_interval_s=interval,
            history_capacity=capacity,
            low_volume_threshold=threshold,
            request_timeout_s=timeout,
        )
        set_ui_level(log_level)
    except (ConfigException, ValueError) as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=2)

    session = MonitorSession(config.history_capacity, config.low_volume_threshold)
    logger.info("monitoring %s (log file: %s)", config.api_url, LOG_FILE)
    try:
        RUNNERS[view](config, session)
    except KeyboardInterrupt:
        typer.echo("\nProgram terminated by user.")


if __name__ == "__main__":
    app()

# poll_scheduler.py
"""
Fixed‑interval fetch‑and‑merge loop.

Cycles run one after another on a single asyncio timeline, so two poll
responses are never merged concurrently.  A failed cycle, whatever the
error, only flips the session to disconnected; the next tick retries,
forever, without backoff.  A failing ``on_cycle`` callback is logged and
never stops the loop.
"""

import asyncio
from typing import Any, Callable, Optional, Protocol

from app_logger import logger
from config import DEFAULT_POLL_INTERVAL_S
from exceptions import ApiException
from monitor_session import MonitorSession
from timing_decorator import timed


class SnapshotSource(Protocol):
    async def fetch_snapshot(self) -> Any: ...


class PollScheduler:
    """
    Parameters
    ----------
    client : SnapshotSource
        Anything with an ``async fetch_snapshot()``; normally an
        :class:`api_client.InfusionApiClient`.
    session : MonitorSession
        The session this scheduler writes to.
    interval_s : float
        Seconds between the starts of two cycles.
    on_cycle : callable, optional
        Called with the session after every cycle, successful or not.
    """

    def __init__(
        self,
        client: SnapshotSource,
        session: MonitorSession,
        interval_s: float = DEFAULT_POLL_INTERVAL_S,
        on_cycle: Optional[Callable[[MonitorSession], None]] = None,
    ):
        if interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {interval_s}")
        self.client = client
        self.session = session
        self.interval_s = interval_s
        self.on_cycle = on_cycle
        self._running = False

    @timed("PollScheduler.poll_once")
    async def poll_once(self) -> bool:
        """Run one cycle; returns True when the snapshot was applied."""
        was_connected = self.session.connected
        try:
            payload = await self.client.fetch_snapshot()
            changed = self.session.apply_payload(payload)
        except ApiException as exc:
            self.session.mark_disconnected(str(exc))
            logger.warning("poll failed: %s", exc)
            ok = False
        except Exception as exc:
            self.session.mark_disconnected(f"{type(exc).__name__}: {exc}")
            logger.exception("unexpected error in poll cycle")
            ok = False
        else:
            if not was_connected:
                logger.info("connected to data service")
            if changed:
                logger.debug("cycle updated %d bottle(s): %s", len(changed), ", ".join(changed))
            ok = True

        if self.on_cycle is not None:
            try:
                self.on_cycle(self.session)
            except Exception:
                logger.exception("on_cycle callback failed")
        return ok

    async def run(self, max_cycles: Optional[int] = None) -> None:
        """
        Poll every ``interval_s`` seconds until :meth:`stop` is called or
        ``max_cycles`` cycles have run.  The interval is measured from the
        start of each cycle; a slow cycle delays the next one, it never
        overlaps it.
        """
        loop = asyncio.get_running_loop()
        self._running = True
        cycles = 0
        logger.info("polling every %.1f s", self.interval_s)
        try:
            while self._running:
                started = loop.time()
                await self.poll_once()
                cycles += 1
                if max_cycles is not None and cycles >= max_cycles:
                    break
                delay = self.interval_s - (loop.time() - started)
                await asyncio.sleep(max(0.0, delay))
        finally:
            self._running = False

    def stop(self) -> None:
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

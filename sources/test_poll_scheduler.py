# test_poll_scheduler.py
import asyncio
from typing import Any, List

import pytest

from exceptions import ApiException
from monitor_session import MonitorSession
from poll_scheduler import PollScheduler


class FakeClient:
    """Replays a scripted list of payloads / exceptions."""

    def __init__(self, script: List[Any]):
        self.script = list(script)
        self.calls = 0

    async def fetch_snapshot(self) -> Any:
        self.calls += 1
        item = self.script.pop(0) if self.script else []
        if isinstance(item, Exception):
            raise item
        return item


def wire(observed_at, device_id="B7", volume=400.0) -> dict:
    return {"bottle_id": device_id, "timestamp": observed_at,
            "remaining_volume": volume, "fill_h": 500.0, "infusion_rate": 2.0}


def test_successful_cycle_merges_and_connects() -> None:
    session = MonitorSession()
    scheduler = PollScheduler(FakeClient([[wire(100)]]), session, interval_s=0.01)
    assert asyncio.run(scheduler.poll_once()) is True
    assert session.connected is True
    assert session.get_state("B7").observed_at == 100


def test_failed_cycle_keeps_state_and_disconnects() -> None:
    session = MonitorSession()
    client = FakeClient([[wire(100)], ApiException("HTTP error! status: 503")])
    scheduler = PollScheduler(client, session, interval_s=0.01)

    asyncio.run(scheduler.poll_once())
    before = (session.get_state("B7"), session.get_history("B7"))
    assert asyncio.run(scheduler.poll_once()) is False
    assert session.connected is False
    assert "503" in session.last_error
    assert (session.get_state("B7"), session.get_history("B7")) == before


def test_late_stale_response_is_ignored() -> None:
    session = MonitorSession()
    client = FakeClient([[wire(120, volume=300.0)], [wire(110, volume=350.0)]])
    scheduler = PollScheduler(client, session, interval_s=0.01)
    asyncio.run(scheduler.poll_once())
    asyncio.run(scheduler.poll_once())
    assert session.get_state("B7").remaining_volume == 300.0
    assert len(session.get_history("B7")) == 1


def test_run_retries_after_failures() -> None:
    session = MonitorSession()
    client = FakeClient([ApiException("down"), ApiException("down"), [wire(100)]])
    seen = []
    scheduler = PollScheduler(client, session, interval_s=0.001,
                              on_cycle=lambda s: seen.append(s.connected))
    asyncio.run(scheduler.run(max_cycles=3))
    assert client.calls == 3
    assert seen == [False, False, True]
    assert scheduler.running is False


def test_unexpected_error_disconnects_and_loop_continues() -> None:
    session = MonitorSession()
    client = FakeClient([RuntimeError("boom"), RuntimeError("boom"), [wire(100)]])
    seen = []
    scheduler = PollScheduler(client, session, interval_s=0.001,
                              on_cycle=lambda s: seen.append((s.connected, s.last_error)))
    asyncio.run(scheduler.run(max_cycles=3))
    assert client.calls == 3
    assert seen[:2] == [(False, "RuntimeError: boom")] * 2
    assert seen[2] == (True, None)
    assert session.get_state("B7").observed_at == 100


def test_failing_on_cycle_does_not_stop_the_loop() -> None:
    session = MonitorSession()
    client = FakeClient([[wire(100)], [wire(110)]])

    def on_cycle(s: MonitorSession) -> None:
        raise ValueError("view gone")

    scheduler = PollScheduler(client, session, interval_s=0.001, on_cycle=on_cycle)
    asyncio.run(scheduler.run(max_cycles=2))
    assert client.calls == 2
    assert session.connected is True
    assert session.get_state("B7").observed_at == 110


def test_stop_ends_the_loop() -> None:
    session = MonitorSession()
    client = FakeClient([])
    scheduler = PollScheduler(client, session, interval_s=0.001)
    scheduler.on_cycle = lambda s: scheduler.stop()
    asyncio.run(scheduler.run())
    assert client.calls == 1


def test_invalid_interval() -> None:
    with pytest.raises(ValueError):
        PollScheduler(FakeClient([]), MonitorSession(), interval_s=0)

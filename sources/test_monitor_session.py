# test_monitor_session.py
import dataclasses
import random
import threading

import pytest

from models import TelemetryRecord
from monitor_session import MonitorSession, SessionSnapshot


def record(observed_at, device_id="B7", volume=400.0, rate=2.0, **extra) -> TelemetryRecord:
    return TelemetryRecord(
        device_id=device_id,
        observed_at=observed_at,
        remaining_volume=volume,
        fill_capacity=500.0,
        infusion_rate=rate,
        **extra,
    )


def wire(observed_at, device_id="B7", volume=400.0) -> dict:
    return {
        "bottle_id": device_id,
        "timestamp": observed_at,
        "remaining_volume": volume,
        "fill_h": 500.0,
        "infusion_rate": 2.0,
    }


@pytest.fixture
def session() -> MonitorSession:
    return MonitorSession(history_capacity=50, low_volume_threshold=20.0)


def test_first_sighting_sets_start_time(session) -> None:
    assert session.merge([record(100)]) == ["B7"]
    state = session.get_state("B7")
    assert state.start_time == 100
    assert state.observed_at == 100
    assert len(session.get_history("B7")) == 1


def test_latest_wins_across_batches_in_any_order(session) -> None:
    times = list(range(100, 200, 10))
    random.Random(4).shuffle(times)
    for t in times:
        session.merge([record(t, volume=1000.0 - t)])
    state = session.get_state("B7")
    assert state.observed_at == 190
    assert state.remaining_volume == 810.0


def test_start_time_never_changes(session) -> None:
    session.merge([record(100, volume=400.0)])
    for t, volume in ((110, 380.0), (120, 360.0), (130, 12.0)):
        session.merge([record(t, volume=volume)])
        assert session.get_state("B7").start_time == 100
    assert session.get_state("B7").remaining_volume == 12.0


def test_out_of_order_record_is_a_noop(session) -> None:
    session.merge([record(100), record(120, device_id="A1")])
    session.merge([record(110, volume=390.0)])
    before_state = session.get_state("B7")
    before_history = session.get_history("B7")

    assert session.merge([record(110, volume=1.0), record(105, volume=2.0)]) == []
    assert session.get_state("B7") == before_state
    assert session.get_history("B7") == before_history


def test_history_bounded_to_capacity(session) -> None:
    for t in range(1, 131):
        session.merge([record(t, volume=float(t))])
    history = session.get_history("B7")
    assert len(history) == 50
    assert [p.time for p in history] == list(range(81, 131))


def test_absent_devices_keep_their_state(session) -> None:
    session.merge([record(100, "A1"), record(100, "B7")])
    session.merge([record(110, "A1")])
    assert session.get_state("B7").observed_at == 100
    assert len(session.get_history("B7")) == 1
    assert session.device_ids == ["A1", "B7"]


def test_apply_payload_ingests_and_connects(session) -> None:
    changed = session.apply_payload([wire(100, "B7"), wire(90, "B7"), wire(100, "C3")])
    assert sorted(changed) == ["B7", "C3"]
    assert session.connected is True
    assert session.get_state("B7").observed_at == 100


@pytest.mark.parametrize("payload", [[], None, {"detail": "boom"}, "garbage"])
def test_empty_cycle_preserves_state(session, payload) -> None:
    session.apply_payload([wire(100), wire(110)])
    before = (session.get_state("B7"), session.get_history("B7"))

    session.apply_payload(payload)
    assert (session.get_state("B7"), session.get_history("B7")) == before


def test_failed_cycle_preserves_state_and_disconnects(session) -> None:
    session.apply_payload([wire(100)])
    before = (session.get_state("B7"), session.get_history("B7"))

    session.mark_disconnected("HTTP error! status: 502")
    assert session.connected is False
    assert session.last_error == "HTTP error! status: 502"
    assert (session.get_state("B7"), session.get_history("B7")) == before

    session.apply_payload([])
    assert session.connected is True
    assert session.last_error is None


def test_snapshot_is_a_stable_copy(session) -> None:
    session.merge([record(100)])
    snap = session.snapshot()
    session.merge([record(110, volume=1.0), record(110, device_id="A1")])

    assert snap.device_ids == ["B7"]
    assert snap.states["B7"].observed_at == 100
    assert len(snap.histories["B7"]) == 1
    assert session.snapshot().device_ids == ["A1", "B7"]


def test_low_volume_devices(session) -> None:
    session.merge([
        record(100, "A1", volume=0.0),
        record(100, "B7", volume=19.999),
        record(100, "C3", volume=20.0),
    ])
    assert session.low_volume_devices() == ["B7"]


def test_history_frame(session) -> None:
    assert session.history_frame("B7") is None
    session.merge([record(100)])
    session.merge([record(160)])
    df = session.history_frame("B7")
    assert df["elapsed_min"].tolist() == [0.0, 1.0]


class CountingLock:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.acquired = 0

    def __enter__(self) -> "CountingLock":
        self._lock.acquire()
        self.acquired += 1
        return self

    def __exit__(self, *exc) -> None:
        self._lock.release()


def test_apply_payload_merges_and_connects_in_one_critical_section(session) -> None:
    session.mark_disconnected("down")
    lock = CountingLock()
    session._lock = lock

    session.apply_payload([wire(100), wire(100, "A1", volume=5.0)])
    assert lock.acquired == 1

    snap = session.snapshot()
    assert snap.connected is True
    assert snap.last_error is None
    assert snap.device_ids == ["A1", "B7"]


def test_snapshot_carries_history_table_and_low_volume(session) -> None:
    session.merge([record(100, "B7", volume=30.0), record(100, "A1", volume=400.0)])
    session.merge([record(130, "B7", volume=15.0)])
    session.merge([record(160, "B7", volume=10.0)])

    snap = session.snapshot()
    assert [p.time for p in snap.histories["B7"]] == [100, 130, 160]
    assert [p.time for p in snap.history_tables["B7"]] == [160, 130, 100]
    assert snap.history_tables["B7"] == session.history_table("B7")
    assert snap.low_volume == ("B7",)
    assert list(snap.low_volume) == session.low_volume_devices()
    assert session.history_table("Z0") == ()


def test_snapshot_fields() -> None:
    names = {f.name for f in dataclasses.fields(SessionSnapshot)}
    assert names == {
        "states", "histories", "connected", "last_error", "history_tables", "low_volume",
    }

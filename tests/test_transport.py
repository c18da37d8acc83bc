"""Tests for the heap ordered transport.

Most tests use ``Transport(realtime=False)`` and move time by hand with
``advance`` so dispatch order can be checked exactly.
"""

import asyncio
import importlib
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

transport_module = importlib.import_module("mood_composer.transport")
Transport = transport_module.Transport


def _recorder(log, name):
    return lambda when, payload: log.append((round(when, 6), name, payload))


def test_ties_break_by_layer_then_index():
    transport = Transport(realtime=False)
    log = []
    transport.add_part("chords", [(0.0, "c0")], _recorder(log, "chords"))
    transport.add_part("bass", [(0.0, "b0")], _recorder(log, "bass"))
    transport.add_part("melody", [(0.5, "m1"), (0.0, "m0"), (0.0, "m0b")], _recorder(log, "melody"))
    transport.start()
    assert transport.advance(1.0) == 5
    assert [entry[2] for entry in log] == ["m0", "m0b", "b0", "c0", "m1"]


def test_advance_only_fires_due_events():
    transport = Transport(realtime=False)
    log = []
    transport.add_part("melody", [(0.0, "a"), (0.5, "b")], _recorder(log, "melody"))
    transport.start()
    transport.advance(0.25)
    assert [p for _, _, p in log] == ["a"]
    assert transport.position == pytest.approx(0.25)
    transport.advance(0.25)
    assert [p for _, _, p in log] == ["a", "b"]


def test_nothing_fires_before_start():
    transport = Transport(realtime=False)
    log = []
    transport.add_part("melody", [(0.0, "a")], _recorder(log, "melody"))
    assert transport.advance(1.0) == 0
    assert log == []


def test_parts_loop_at_loop_end():
    transport = Transport(realtime=False)
    log = []
    transport.add_part("melody", [(0.0, "a"), (0.5, "b")], _recorder(log, "melody"), loop_end=1.0)
    transport.start()
    transport.advance(2.6)
    assert [(t, p) for t, _, p in log] == [
        (0.0, "a"), (0.5, "b"), (1.0, "a"), (1.5, "b"), (2.0, "a"), (2.5, "b"),
    ]


def test_events_past_loop_end_are_skipped():
    """A longer layer is cut at the shared loop boundary."""
    transport = Transport(realtime=False)
    log = []
    transport.add_part("bass", [(0.0, "a"), (1.5, "late")], _recorder(log, "bass"), loop_end=1.0)
    transport.start()
    transport.advance(2.5)
    assert [p for _, _, p in log] == ["a", "a", "a"]


def test_non_positive_loop_end_disables_looping():
    transport = Transport(realtime=False)
    log = []
    part = transport.add_part("melody", [(0.0, "a")], _recorder(log, "melody"), loop_end=0)
    assert not part.loop
    transport.start()
    transport.advance(5.0)
    assert len(log) == 1
    assert transport.pending == 0


def test_set_loop_applies_to_all_parts():
    transport = Transport(realtime=False)
    transport.add_part("melody", [(0.0, "a")], lambda *_: None)
    transport.add_part("bass", [(0.0, "b")], lambda *_: None)
    transport.set_loop(2.0)
    assert all(part.loop_end == 2.0 for part in transport.parts.values())
    transport.set_loop(-1)
    assert not any(part.loop for part in transport.parts.values())


def test_cancel_inside_callback_stops_dispatch():
    """No event fires after ``cancel`` returns, even mid dispatch."""
    transport = Transport(realtime=False)
    log = []

    def first(when, payload):
        log.append(payload)
        transport.cancel()

    transport.add_part("melody", [(0.0, "a")], first)
    transport.add_part("bass", [(0.0, "b"), (0.1, "c")], _recorder(log, "bass"))
    transport.start()
    assert transport.advance(1.0) == 1
    assert log == ["a"]
    assert transport.pending == 0
    assert transport.parts == {}


def test_stop_rewinds_and_clears():
    transport = Transport(realtime=False)
    transport.add_part("melody", [(0.0, "a"), (3.0, "b")], lambda *_: None)
    transport.start()
    transport.advance(1.0)
    transport.stop()
    assert transport.state == "stopped"
    assert transport.position == 0.0
    assert transport.pending == 0
    assert "melody" in transport.parts


def test_part_added_while_running_is_offset():
    transport = Transport(realtime=False)
    log = []
    transport.start()
    transport.advance(1.0)
    transport.add_part("melody", [(0.5, "a")], _recorder(log, "melody"))
    transport.advance(1.0)
    assert log == [(1.5, "melody", "a")]


def test_advance_rejects_negative_time():
    with pytest.raises(ValueError):
        Transport(realtime=False).advance(-1)
    with pytest.raises(ValueError):
        Transport(tick=0)


def test_realtime_clock_dispatches_events():
    log = []

    async def run():
        transport = Transport(realtime=True, tick=0.001)
        transport.add_part("melody", [(0.0, "a"), (0.01, "b")], _recorder(log, "melody"))
        transport.start()
        await asyncio.sleep(0.1)
        transport.stop()
        return transport

    transport = asyncio.run(run())
    assert [p for _, _, p in log] == ["a", "b"]
    assert transport._clock_task is None


def test_get_transport_is_a_singleton():
    transport_module.reset_transport()
    first = transport_module.get_transport()
    assert transport_module.get_transport() is first
    transport_module.reset_transport()
    assert transport_module.get_transport() is not first
    transport_module.reset_transport()


def test_failing_callback_does_not_stop_dispatch(caplog):
    """An exception in one event is logged and later events still fire."""
    transport = Transport(realtime=False)
    log = []

    def callback(when, payload):
        if payload == "bad":
            raise ValueError("Invalid note format: bad")
        log.append(payload)

    transport.add_part("melody", [(0.0, "bad"), (0.01, "a"), (0.02, "b")], callback)
    transport.start()
    with caplog.at_level("ERROR", logger="mood_composer.transport"):
        assert transport.advance(1.0) == 3
    assert log == ["a", "b"]
    assert "Event callback for part melody failed" in caplog.text
    assert "Invalid note format" in caplog.text


def test_realtime_clock_survives_failing_callback():
    log = []

    def callback(when, payload):
        if payload == "bad":
            raise ValueError("bad note")
        log.append(payload)

    async def run():
        transport = Transport(realtime=True, tick=0.001)
        transport.add_part("melody", [(0.0, "bad"), (0.01, "a"), (0.02, "b")], callback)
        transport.start()
        await asyncio.sleep(0.1)
        alive = not transport._clock_task.done()
        transport.stop()
        return alive

    assert asyncio.run(run()) is True
    assert log == ["a", "b"]

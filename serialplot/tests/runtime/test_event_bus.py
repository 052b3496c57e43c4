from __future__ import annotations

import logging

import pytest

from serialplot.runtime import event_bus as eb
from serialplot.runtime.event_bus import EventBus


def test_handlers_run_in_subscription_order():
    bus = EventBus()
    calls = []
    bus.subscribe(eb.STATUS, lambda p: calls.append(("a", p)))
    bus.subscribe(eb.STATUS, lambda p: calls.append(("b", p)))

    n = bus.emit(eb.STATUS, "hello")

    assert n == 2
    assert calls == [("a", "hello"), ("b", "hello")]


def test_events_are_delivered_in_emission_order():
    bus = EventBus()
    seen = []
    bus.subscribe(eb.DATA_BATCH, seen.append)

    for i in range(5):
        bus.emit(eb.DATA_BATCH, i)

    assert seen == [0, 1, 2, 3, 4]


def test_unsubscribe_removes_only_that_handler():
    bus = EventBus()
    seen = []
    unsub = bus.subscribe(eb.ERROR, lambda p: seen.append("gone"))
    bus.subscribe(eb.ERROR, lambda p: seen.append("kept"))

    unsub()
    unsub()  # second call is a no-op
    bus.emit(eb.ERROR, None)

    assert seen == ["kept"]
    assert bus.handler_count(eb.ERROR) == 1


def test_failing_handler_does_not_stop_delivery(caplog):
    bus = EventBus()
    seen = []

    def bad(_payload):
        raise RuntimeError("handler bug")

    bus.subscribe(eb.ACK_RECEIVED, bad)
    bus.subscribe(eb.ACK_RECEIVED, seen.append)

    with caplog.at_level(logging.ERROR):
        bus.emit(eb.ACK_RECEIVED, {"status": 0})

    assert seen == [{"status": 0}]
    assert "EVENT_HANDLER_ERROR" in caplog.text


@pytest.mark.parametrize("op", ["subscribe", "emit"])
def test_unknown_event_is_rejected(op):
    bus = EventBus()
    with pytest.raises(ValueError):
        if op == "subscribe":
            bus.subscribe("nope", print)
        else:
            bus.emit("nope")


def test_clear_drops_all_handlers():
    bus = EventBus()
    for name in eb.EVENTS:
        bus.subscribe(name, print)

    bus.clear()

    assert all(bus.handler_count(name) == 0 for name in eb.EVENTS)


def test_handler_may_emit_reentrantly():
    bus = EventBus()
    seen = []
    bus.subscribe(eb.CONNECTED, lambda p: bus.emit(eb.STATUS, f"connected to {p}"))
    bus.subscribe(eb.STATUS, seen.append)

    bus.emit(eb.CONNECTED, "COM3")

    assert seen == ["connected to COM3"]

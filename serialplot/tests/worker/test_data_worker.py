from __future__ import annotations

import queue
import time

import serialplot.worker.data_worker as dw_mod
from serialplot.app.config import SerialPlotConfig
from serialplot.codecs.registry import ParserStatus
from serialplot.core.errors import ConfigurationError, ParserError, StreamFaultError, WorkerFaultError
from serialplot.model.session import ProtocolName, SimConfig, Source
from serialplot.transport.base import Transport
from serialplot.transport.errors import TransportIOError
from serialplot.transport.stream import ReadableStream
from serialplot.worker.messages import (
    MessageType,
    Notice,
    SessionEnded,
    ShutdownCommand,
    StartCommand,
    StopCommand,
    UpdateActiveParserCommand,
    UpdateSimConfigCommand,
)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeTransport(Transport):
    def __init__(self, chunks=()):
        self.chunks = list(chunks)
        self.opened = True
        self.raise_on_read = None
        self.cancel_calls = 0

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.opened = False

    def is_open(self) -> bool:
        return self.opened

    def read(self, n: int) -> bytes:
        if self.raise_on_read is not None:
            raise self.raise_on_read
        return self.chunks.pop(0) if self.chunks else b""

    def write(self, data: bytes) -> int:
        return len(data)

    def flush(self) -> None:
        return None

    def cancel_read(self) -> None:
        self.cancel_calls += 1


# -----------------------------
# Helpers
# -----------------------------

def _worker(clock=None, **cfg):
    return dw_mod.DataWorker(SerialPlotConfig(**cfg), clock=clock or FakeClock())


def _drain(worker):
    out = []
    while True:
        try:
            out.append(worker.outbox.get_nowait())
        except queue.Empty:
            return out


def _payloads(msgs, mtype, cls=object):
    return [m.payload for m in msgs if m.type is mtype and isinstance(m.payload, cls)]


def _samples(msgs):
    return [s for batch in _payloads(msgs, MessageType.DATA_BATCH) for s in batch]


# -----------------------------
# Simulation
# -----------------------------

def test_sim_start_tick_stop():
    clock = FakeClock(100.0)
    w = _worker(clock)

    w._handle(StartCommand(Source.SIMULATED, sim_config=SimConfig(num_channels=2, frequency=1000)))
    assert w.collecting is True
    assert w.source is Source.SIMULATED

    clock.now = 110.0
    w._loop_once()
    w._handle(StopCommand())

    msgs = _drain(w)
    samples = _samples(msgs)
    assert len(samples) == 10
    assert all(len(s.values) == 2 for s in samples)
    assert _payloads(msgs, MessageType.INFO, SessionEnded) == [SessionEnded(Source.SIMULATED, "stopped", False)]
    assert "Simulation started (1000 Hz, 2 channels)." in _payloads(msgs, MessageType.STATUS)
    assert w.collecting is False


def test_sim_waits_for_next_tick():
    clock = FakeClock(0.0)
    w = _worker(clock, sim_tick_ms=10.0)
    w._handle(StartCommand(Source.SIMULATED))
    _drain(w)

    clock.now = 5.0
    w._loop_once()

    assert _samples(_drain(w)) == []


def test_sim_config_update_applies_to_running_simulation():
    clock = FakeClock(0.0)
    w = _worker(clock)
    w._handle(StartCommand(Source.SIMULATED, sim_config=SimConfig(num_channels=1)))
    _drain(w)

    w._handle(UpdateSimConfigCommand(SimConfig(num_channels=3, frequency=100)))
    clock.now = 10.0
    w._loop_once()

    samples = _samples(_drain(w))
    assert len(samples) == 1
    assert len(samples[0].values) == 3


def test_sim_restart_replaces_running_simulation_without_session_end():
    clock = FakeClock(0.0)
    w = _worker(clock)
    w._handle(StartCommand(Source.SIMULATED))
    w._handle(StartCommand(Source.SIMULATED, sim_config=SimConfig(num_channels=5)))

    msgs = _drain(w)
    assert _payloads(msgs, MessageType.INFO, SessionEnded) == []
    assert w.collecting is True


def test_stop_when_idle_reports_idle():
    w = _worker()

    w._handle(StopCommand())

    assert _payloads(_drain(w), MessageType.INFO, SessionEnded) == [SessionEnded(None, "idle", False)]


# -----------------------------
# Serial
# -----------------------------

def test_serial_session_reads_and_releases_reader_on_stop():
    clock = FakeClock(1000.0)
    w = _worker(clock)
    rs = ReadableStream(FakeTransport([b"1,2\n3,4\n"]))

    w._handle(StartCommand(Source.SERIAL, ProtocolName.DEFAULT, stream=rs))
    assert rs.locked is True
    w._loop_once()
    w._handle(StopCommand())

    msgs = _drain(w)
    assert [s.values for s in _samples(msgs)] == [(1.0, 2.0), (3.0, 4.0)]
    assert _payloads(msgs, MessageType.INFO, SessionEnded) == [SessionEnded(Source.SERIAL, "stopped", True)]
    assert _payloads(msgs, MessageType.INFO, ParserStatus)[0].active == "default"
    assert rs.acquisitions == rs.releases == 1
    assert rs.locked is False
    assert w.collecting is False


def test_stream_done_ends_session_with_done():
    t = FakeTransport([b"1\n"])
    rs = ReadableStream(t)
    w = _worker()
    w._handle(StartCommand(Source.SERIAL, stream=rs))

    w._loop_once()
    t.close()
    w._loop_once()

    ended = _payloads(_drain(w), MessageType.INFO, SessionEnded)
    assert ended == [SessionEnded(Source.SERIAL, "done", True)]
    assert rs.locked is False


def test_read_error_ends_session_with_fault():
    t = FakeTransport()
    t.raise_on_read = TransportIOError("unplugged")
    rs = ReadableStream(t)
    w = _worker()
    w._handle(StartCommand(Source.SERIAL, stream=rs))

    w._loop_once()

    msgs = _drain(w)
    errors = _payloads(msgs, MessageType.ERROR)
    assert isinstance(errors[0], StreamFaultError)
    assert _payloads(msgs, MessageType.INFO, SessionEnded) == [SessionEnded(Source.SERIAL, "fault", True)]


def test_request_stop_cancels_read_before_queueing_stop():
    t = FakeTransport([b"1\n"])
    rs = ReadableStream(t)
    w = _worker()
    w._handle(StartCommand(Source.SERIAL, stream=rs))

    w.request_stop()
    w._loop_once()

    assert t.cancel_calls == 1
    ended = _payloads(_drain(w), MessageType.INFO, SessionEnded)
    assert ended == [SessionEnded(Source.SERIAL, "stopped", True)]
    assert t.chunks == [b"1\n"]


def test_stop_is_idempotent_and_releases_once():
    rs = ReadableStream(FakeTransport())
    w = _worker()
    w._handle(StartCommand(Source.SERIAL, stream=rs))

    w._handle(StopCommand())
    w._handle(StopCommand())

    ended = _payloads(_drain(w), MessageType.INFO, SessionEnded)
    assert ended == [SessionEnded(Source.SERIAL, "stopped", True), SessionEnded(None, "idle", False)]
    assert rs.releases == 1


def test_final_batch_is_emitted_on_stop_even_if_empty():
    rs = ReadableStream(FakeTransport())
    w = _worker()
    w._handle(StartCommand(Source.SERIAL, stream=rs))
    _drain(w)

    w._handle(StopCommand())

    assert _payloads(_drain(w), MessageType.DATA_BATCH) == [[]]


def test_serial_start_without_stream_is_rejected():
    w = _worker()

    w._handle(StartCommand(Source.SERIAL))

    errors = _payloads(_drain(w), MessageType.ERROR)
    assert isinstance(errors[0], ConfigurationError)
    assert w.collecting is False


def test_locked_stream_reports_fault():
    rs = ReadableStream(FakeTransport())
    rs.get_reader()
    w = _worker()

    w._handle(StartCommand(Source.SERIAL, stream=rs))

    msgs = _drain(w)
    assert isinstance(_payloads(msgs, MessageType.ERROR)[0], StreamFaultError)
    assert _payloads(msgs, MessageType.INFO, SessionEnded) == [SessionEnded(Source.SERIAL, "fault", False)]
    assert w.collecting is False


def test_bad_custom_parser_falls_back_and_reports():
    rs = ReadableStream(FakeTransport([b"7\n"]))
    clock = FakeClock(0.0)
    w = _worker(clock)

    w._handle(StartCommand(Source.SERIAL, ProtocolName.CUSTOM, parser_source="import os", stream=rs))
    clock.now = 10.0
    w._loop_once()

    msgs = _drain(w)
    status = _payloads(msgs, MessageType.INFO, ParserStatus)[0]
    assert status.ok is False
    assert status.active == "default"
    assert isinstance(_payloads(msgs, MessageType.ERROR)[0], ParserError)
    assert [s.values for s in _samples(msgs)] == [(7.0,)]


def test_parser_update_swaps_codec_in_running_session():
    rs = ReadableStream(FakeTransport([b"a:1,2\n"]))
    clock = FakeClock(0.0)
    w = _worker(clock)
    w._handle(StartCommand(Source.SERIAL, ProtocolName.DEFAULT, stream=rs))

    w._handle(UpdateActiveParserCommand(ProtocolName.FIREWATER))
    clock.now = 10.0
    w._loop_once()

    msgs = _drain(w)
    assert [s.values for s in _samples(msgs)] == [(1.0, 2.0)]
    assert w._pump.codec.name == "firewater"


def test_parser_update_ignored_when_not_serial():
    w = _worker()

    w._handle(UpdateActiveParserCommand(ProtocolName.JUSTFLOAT))

    warns = _payloads(_drain(w), MessageType.WARN)
    assert warns == [Notice("worker", "Parser update ignored (not serial).")]


def test_simulated_start_ends_running_serial_session():
    rs = ReadableStream(FakeTransport())
    w = _worker()
    w._handle(StartCommand(Source.SERIAL, stream=rs))

    w._handle(StartCommand(Source.SIMULATED))

    ended = _payloads(_drain(w), MessageType.INFO, SessionEnded)
    assert ended == [SessionEnded(Source.SERIAL, "restarted", True)]
    assert w.source is Source.SIMULATED
    assert rs.locked is False


# -----------------------------
# Thread
# -----------------------------

def test_thread_runs_simulation_and_shuts_down():
    w = dw_mod.DataWorker(SerialPlotConfig())
    w.start()
    w.post(StartCommand(Source.SIMULATED, sim_config=SimConfig(num_channels=1, frequency=1000)))

    deadline = time.monotonic() + 2.0
    got_batch = False
    while time.monotonic() < deadline and not got_batch:
        try:
            msg = w.outbox.get(timeout=0.1)
        except queue.Empty:
            continue
        got_batch = msg.type is MessageType.DATA_BATCH and len(msg.payload) > 0

    w.shutdown(timeout=2.0)

    assert got_batch is True
    assert not w.is_alive()
    ended = _payloads(_drain(w), MessageType.INFO, SessionEnded)
    assert ended == [SessionEnded(Source.SIMULATED, "stopped", False)]


def test_shutdown_command_ends_idle_thread():
    w = dw_mod.DataWorker(SerialPlotConfig())
    w.start()

    w.post(ShutdownCommand())
    w.join(timeout=2.0)

    assert not w.is_alive()


def test_crash_posts_worker_fault_and_calls_on_fatal(monkeypatch):
    faults = []
    w = dw_mod.DataWorker(SerialPlotConfig(), on_fatal=faults.append)

    def boom():
        raise RuntimeError("kaboom")

    monkeypatch.setattr(w, "_loop_once", boom)
    w.run()

    msgs = _drain(w)
    errors = _payloads(msgs, MessageType.ERROR)
    assert isinstance(errors[0], WorkerFaultError)
    assert "kaboom" in errors[0].message
    assert faults == [errors[0]]
    assert w.fault is errors[0]

# serialplot/worker/data_worker.py
from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

from serialplot.app.config import SerialPlotConfig
from serialplot.codecs.base import Codec
from serialplot.codecs.registry import ParserStatus, build_codec
from serialplot.core.errors import ConfigurationError, ParserError, SerialPlotError, StreamFaultError, WorkerFaultError
from serialplot.model.sample import Batch
from serialplot.model.session import ProtocolName, SimConfig, Source
from serialplot.protocol.core.defs import Protocol
from serialplot.transport.errors import StreamLockedError
from serialplot.utils.timeutil import monotonic_ms
from .batcher import Batcher
from .messages import (
    MessageType,
    Notice,
    SessionEnded,
    ShutdownCommand,
    StartCommand,
    StopCommand,
    UpdateActiveParserCommand,
    UpdateSimConfigCommand,
    WorkerCommand,
    WorkerMessage,
)
from .pump import StreamPump
from .simulator import SignalSimulator
from .timesync import AresTimeSync

IDLE_WAIT_S = 0.1


class DataWorker(threading.Thread):
    """
    Acquisition thread: runs the stream pump or the simulator and the Batcher.

    The host talks to it only through post() (commands in) and the outbox
    queue (WorkerMessage out). request_stop() additionally interrupts a
    blocked read so stop is prompt.
    """

    def __init__(
        self,
        config: SerialPlotConfig,
        *,
        outbox: Optional["queue.Queue[WorkerMessage]"] = None,
        on_fatal: Optional[Callable[[WorkerFaultError], None]] = None,
        proto: Optional[Protocol] = None,
        clock: Callable[[], float] = monotonic_ms,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(name="serialplot-worker", daemon=True)
        self._config = config
        self.outbox: "queue.Queue[WorkerMessage]" = outbox if outbox is not None else queue.Queue()
        self._inbox: "queue.Queue[WorkerCommand]" = queue.Queue()
        self._on_fatal = on_fatal
        self._proto = proto
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self._source = Source.SIMULATED
        self._protocol = ProtocolName.DEFAULT
        self._parser_source: Optional[str] = None
        self._sim_config = SimConfig()

        self._batcher = Batcher(
            self._emit_batch,
            interval_ms=config.batch_interval_ms,
            max_samples=config.max_batch_samples,
        )
        self._time_sync = AresTimeSync()

        self._lock = threading.Lock()
        self._pump: Optional[StreamPump] = None
        self._sim: Optional[SignalSimulator] = None
        self._next_tick_ms = 0.0
        self._shutdown = False
        self.fault: Optional[WorkerFaultError] = None

    # ---------------- Host-side API ----------------
    def post(self, command: WorkerCommand) -> None:
        self._inbox.put(command)

    def request_stop(self) -> None:
        """Cancel the running read (if any) from the calling thread, then queue stop."""
        with self._lock:
            pump = self._pump
        if pump is not None:
            pump.cancel()
        self.post(StopCommand())

    def shutdown(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            pump = self._pump
        if pump is not None:
            pump.cancel()
        self.post(ShutdownCommand())
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout)

    @property
    def source(self) -> Source:
        return self._source

    @property
    def collecting(self) -> bool:
        with self._lock:
            return self._pump is not None or self._sim is not None

    # ---------------- Thread ----------------
    def run(self) -> None:
        self._log.info("WORKER_THREAD_STARTED")
        self._status("Worker ready.")
        try:
            while not self._shutdown:
                self._loop_once()
        except Exception as e:
            self._log.exception("WORKER_FATAL")
            fault = WorkerFaultError(
                f"Worker crashed: {type(e).__name__}: {e}",
                hint="Recreate the pipeline.",
            )
            self.fault = fault
            self._post(WorkerMessage(MessageType.ERROR, fault))
            if self._on_fatal is not None:
                try:
                    self._on_fatal(fault)
                except Exception:
                    self._log.exception("WORKER_ON_FATAL_ERROR")
        finally:
            self._teardown("shutdown")
            self._log.info("WORKER_THREAD_STOPPED")

    def _loop_once(self) -> None:
        pump = self._pump
        if pump is not None:
            self._drain_inbox(timeout=None)
            if self._pump is not pump or self._shutdown:
                return
            try:
                alive = pump.step()
            except StreamFaultError as e:
                self._post(WorkerMessage(MessageType.ERROR, e))
                self._end_serial("fault")
                return
            if not alive:
                self._end_serial("stopped" if pump.cancelled else "done")
            return

        sim = self._sim
        if sim is not None:
            now = self._clock()
            wait_ms = self._next_tick_ms - now
            if wait_ms > 0:
                self._drain_inbox(timeout=wait_ms / 1000.0)
                return
            self._sim_tick(sim, now)
            return

        self._drain_inbox(timeout=IDLE_WAIT_S)

    def _drain_inbox(self, *, timeout: Optional[float]) -> None:
        """Handle queued commands. timeout=None never blocks."""
        try:
            if timeout is None:
                cmd = self._inbox.get_nowait()
            else:
                cmd = self._inbox.get(timeout=timeout)
        except queue.Empty:
            return
        while True:
            self._handle(cmd)
            if self._shutdown:
                return
            try:
                cmd = self._inbox.get_nowait()
            except queue.Empty:
                return

    # ---------------- Commands ----------------
    def _handle(self, cmd: WorkerCommand) -> None:
        self._log.debug("WORKER_COMMAND cmd=%s", type(cmd).__name__)
        if isinstance(cmd, StartCommand):
            self._on_start(cmd)
        elif isinstance(cmd, StopCommand):
            self._on_stop()
        elif isinstance(cmd, UpdateActiveParserCommand):
            self._on_update_parser(cmd)
        elif isinstance(cmd, UpdateSimConfigCommand):
            self._on_update_sim(cmd)
        elif isinstance(cmd, ShutdownCommand):
            self._shutdown = True
        else:
            self._log.warning("WORKER_UNKNOWN_COMMAND cmd=%r", cmd)

    def _on_start(self, cmd: StartCommand) -> None:
        if cmd.source is Source.SIMULATED:
            if self._pump is not None:
                self._end_serial("restarted")
            self._stop_sim(notify=False)
            self._source = Source.SIMULATED
            self._protocol = ProtocolName.DEFAULT
            if cmd.sim_config is not None:
                self._sim_config = cmd.sim_config
            self._start_sim()
            return

        if cmd.stream is None:
            self._post(WorkerMessage(
                MessageType.ERROR,
                ConfigurationError("Invalid start: serial source without a readable stream."),
            ))
            return

        self._stop_sim(notify=True)
        if self._pump is not None:
            self._end_serial("restarted")

        self._source = Source.SERIAL
        self._protocol = cmd.protocol
        self._parser_source = cmd.parser_source
        codec, status = self._build_codec(cmd.protocol, cmd.parser_source)

        try:
            reader = cmd.stream.get_reader()
        except StreamLockedError as e:
            self._log.error("WORKER_READER_LOCKED err=%s", e)
            self._post(WorkerMessage(MessageType.ERROR, StreamFaultError(f"Cannot read stream: {e}")))
            self._post(WorkerMessage(MessageType.INFO, SessionEnded(Source.SERIAL, "fault", False)))
            return

        self._time_sync.reset()
        self._batcher.reset(self._clock())
        pump = StreamPump(
            reader,
            codec,
            self._batcher,
            post=self._post,
            clock=self._clock,
            forced_break_bytes=self._config.forced_break_bytes,
            time_sync=self._time_sync,
            logger=self._log,
        )
        with self._lock:
            self._pump = pump
        self._log.info("WORKER_SERIAL_STARTED protocol=%s codec=%s", status.requested, codec.name)
        self._status("Starting serial read loop.")

    def _on_stop(self) -> None:
        if self._pump is not None:
            self._end_serial("stopped")
        elif self._sim is not None:
            self._stop_sim(notify=True)
        else:
            self._post(WorkerMessage(MessageType.INFO, SessionEnded(None, "idle", False)))

    def _on_update_parser(self, cmd: UpdateActiveParserCommand) -> None:
        if self._source is not Source.SERIAL:
            self._post(WorkerMessage(
                MessageType.WARN, Notice("worker", "Parser update ignored (not serial).")
            ))
            return
        self._protocol = cmd.protocol
        self._parser_source = cmd.parser_source
        codec, _ = self._build_codec(cmd.protocol, cmd.parser_source)
        if self._pump is not None:
            self._pump.set_codec(codec)

    def _on_update_sim(self, cmd: UpdateSimConfigCommand) -> None:
        if self._source is not Source.SIMULATED:
            self._log.debug("WORKER_SIM_CONFIG_IGNORED source=%s", self._source.value)
            return
        self._sim_config = cmd.sim_config
        if self._sim is not None:
            self._sim.update_config(cmd.sim_config)

    def _build_codec(self, protocol: ProtocolName, parser_source: Optional[str]) -> "tuple[Codec, ParserStatus]":
        codec, status = build_codec(protocol, parser_source, proto=self._proto, logger=self._log)
        self._post(WorkerMessage(MessageType.INFO, status))
        self._status(status.message)
        if not status.ok:
            self._post(WorkerMessage(MessageType.ERROR, ParserError(status.message)))
        return codec, status

    # ---------------- Sessions ----------------
    def _end_serial(self, reason: str) -> None:
        with self._lock:
            pump, self._pump = self._pump, None
        if pump is None:
            return
        released = pump.close()
        self._log.info("WORKER_SERIAL_ENDED reason=%s released=%s", reason, released)
        self._post(WorkerMessage(MessageType.INFO, SessionEnded(Source.SERIAL, reason, released)))
        self._status("Serial read loop finished.")

    def _start_sim(self) -> None:
        now = self._clock()
        sim = SignalSimulator(self._sim_config)
        sim.start(now)
        self._batcher.reset(now)
        self._next_tick_ms = now + self._config.sim_tick_ms
        with self._lock:
            self._sim = sim
        cfg = self._sim_config
        self._log.info(
            "WORKER_SIM_STARTED channels=%d freq=%s amplitude=%s",
            cfg.num_channels, cfg.frequency, cfg.amplitude,
        )
        self._status(f"Simulation started ({cfg.frequency:g} Hz, {cfg.num_channels} channels).")

    def _stop_sim(self, *, notify: bool) -> None:
        with self._lock:
            sim, self._sim = self._sim, None
        if sim is None:
            return
        sim.stop()
        self._batcher.flush(self._clock(), force=True)
        self._log.info("WORKER_SIM_STOPPED")
        if notify:
            self._post(WorkerMessage(MessageType.INFO, SessionEnded(Source.SIMULATED, "stopped", False)))
            self._status("Simulation stopped.")

    def _sim_tick(self, sim: SignalSimulator, now: float) -> None:
        for sample in sim.tick(now):
            self._batcher.add(sample)
        self._batcher.flush(now)
        self._next_tick_ms += self._config.sim_tick_ms
        if self._next_tick_ms <= now:
            self._next_tick_ms = now + self._config.sim_tick_ms

    def _teardown(self, reason: str) -> None:
        try:
            if self._pump is not None:
                self._end_serial(reason)
            self._stop_sim(notify=True)
        except Exception:
            self._log.exception("WORKER_TEARDOWN_ERROR")

    # ---------------- Outbox ----------------
    def _emit_batch(self, batch: Batch) -> None:
        self._post(WorkerMessage(MessageType.DATA_BATCH, batch))

    def _post(self, msg: WorkerMessage) -> None:
        self.outbox.put(msg)

    def _status(self, text: str) -> None:
        self._post(WorkerMessage(MessageType.STATUS, text))

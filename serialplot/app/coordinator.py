# serialplot/app/coordinator.py
from __future__ import annotations

import dataclasses
import logging
import queue
import threading
import time
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional

from serialplot.app.config import SerialPlotConfig
from serialplot.codecs.frames import AresAck, AresError
from serialplot.codecs.registry import ParserStatus, build_codec
from serialplot.core.errors import (
    ConfigurationError,
    InvalidStateError,
    McuRequestError,
    SerialPlotError,
    StreamFaultError,
    WorkerFaultError,
)
from serialplot.interfaces import BatchSink, CommandSink
from serialplot.model.sample import Batch
from serialplot.model.session import ProtocolName, SessionConfig, SimConfig, Source
from serialplot.model.subscription import Subscription, SubscriptionSet
from serialplot.protocol.client import AresplotClient
from serialplot.protocol.core.defs import Protocol, load_default_protocol
from serialplot.protocol.errors import CommandFailed, CommandTimeout, ProtocolError
from serialplot.runtime import event_bus as ev
from serialplot.runtime.data_buffer import DataBuffer, RateMeter
from serialplot.runtime.event_bus import EventBus
from serialplot.runtime.serial_link import SerialLink
from serialplot.runtime.state import ConnectionState, PipelineStatus
from serialplot.transport.base import Transport
from serialplot.transport.options import SerialOptions
from serialplot.transport.uart import UARTTransport
from serialplot.utils.timeutil import monotonic_ms
from serialplot.worker.data_worker import DataWorker
from serialplot.worker.messages import (
    MessageType,
    Notice,
    SessionEnded,
    StartCommand,
    UpdateActiveParserCommand,
    UpdateSimConfigCommand,
    WorkerMessage,
)

TransportFactory = Callable[[str, SerialOptions], Transport]
WorkerFactory = Callable[..., DataWorker]


def _default_transport_factory(timeout_s: float) -> TransportFactory:
    def _make(port: str, options: SerialOptions) -> Transport:
        return UARTTransport(port, options, timeout=timeout_s)

    return _make


class _Dispatcher(threading.Thread):
    """Thread that keeps draining the worker outbox into the coordinator."""

    def __init__(self, coordinator: "Coordinator", poll_s: float = 0.02):
        super().__init__(name="serialplot-dispatch", daemon=True)
        self._coordinator = coordinator
        self._poll_s = poll_s
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._coordinator.dispatch(timeout=self._poll_s)
            except Exception:
                self._coordinator._log.exception("DISPATCH_EXCEPTION")
                self._stop_event.wait(0.01)

    def stop(self) -> None:
        self._stop_event.set()


class Coordinator:
    """
    Host-side control plane.

    Owns the connection state machine, the serial link (transport, stream
    halves, Aresplot engine) and the acquisition worker. Intents come in
    through the public methods; worker messages come back through
    dispatch(), which either runs on a dispatcher thread (auto_dispatch) or
    is called by the owner's own loop.

        Disconnected --connect()--> Connecting --ok--> Connected
                                        \\--fail--> Disconnected
        Connected    --start()--> Collecting
        Collecting   --stop()/error/external disconnect--> Connected | Disconnected
        any          --fatal worker error--> Faulted
    """

    def __init__(
        self,
        config: Optional[SerialPlotConfig] = None,
        *,
        proto: Optional[Protocol] = None,
        transport_factory: Optional[TransportFactory] = None,
        worker_factory: Optional[WorkerFactory] = None,
        bus: Optional[EventBus] = None,
        cmd_sink: Optional[CommandSink] = None,
        clock: Callable[[], float] = monotonic_ms,
        auto_dispatch: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        self._config = config or SerialPlotConfig()
        self._proto = proto or load_default_protocol()
        self._transport_factory = transport_factory or _default_transport_factory(self._config.read_timeout_s)
        self._worker_factory = worker_factory or DataWorker
        self._cmd_sink = cmd_sink
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self.bus = bus or EventBus(logger=self._log)
        self.data_buffer = DataBuffer(
            self._config.max_buffer_points,
            rate=RateMeter(window_ms=self._config.rate_window_ms, decay_ms=self._config.rate_decay_ms),
        )
        self.subscriptions = SubscriptionSet()

        self._lock = threading.RLock()
        self._dispatch_lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._session = SessionConfig()
        self._link: Optional[SerialLink] = None
        self._worker: Optional[DataWorker] = None
        self._outbox: "queue.Queue[WorkerMessage]" = queue.Queue()

        self._collect_source: Optional[Source] = None
        self._readable_in_worker = False
        self._session_ended = threading.Event()
        self._handling_disconnect = False
        self._fault: Optional[WorkerFaultError] = None
        self._last_error: Optional[str] = None

        self._sinks: List[BatchSink] = []
        self._dispatcher: Optional[_Dispatcher] = None
        if auto_dispatch:
            self.start_dispatcher()

    # ---------------- Properties ----------------
    @property
    def config(self) -> SerialPlotConfig:
        return self._config

    @property
    def proto(self) -> Protocol:
        return self._proto

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def session(self) -> SessionConfig:
        with self._lock:
            return self._session

    @property
    def link(self) -> Optional[SerialLink]:
        return self._link

    @property
    def readable_in_worker(self) -> bool:
        with self._lock:
            return self._readable_in_worker

    def status(self) -> PipelineStatus:
        now = self._clock()
        with self._lock:
            state = self._state
            session = self._session
            port = self._link.port if self._link is not None else None
            last_error = self._last_error
        collecting = state is ConnectionState.COLLECTING
        return PipelineStatus(
            state=state,
            source=session.source.value,
            protocol=session.protocol.value,
            port=port,
            buffered_points=len(self.data_buffer),
            max_points=self.data_buffer.max_points,
            rate_hz=self.data_buffer.rate(now),
            estimate=self.data_buffer.estimate(collecting, now),
            last_error=last_error,
        )

    def _set_state(self, new: ConnectionState) -> None:
        with self._lock:
            old, self._state = self._state, new
        if old is not new:
            self._log.info("STATE_CHANGED old=%s new=%s", old.value, new.value)

    def _require_not_faulted(self) -> None:
        with self._lock:
            fault = self._fault
        if fault is not None:
            raise InvalidStateError(
                "Pipeline is faulted.",
                hint="Create a new coordinator (reload) to continue.",
                details={"cause": fault.message},
            )

    # ---------------- Sinks ----------------
    def add_sink(self, sink: BatchSink) -> None:
        with self._lock:
            if sink not in self._sinks:
                self._sinks.append(sink)

    def remove_sink(self, sink: BatchSink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    def subscribe(self, event: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        return self.bus.subscribe(event, handler)

    # ---------------- Worker ----------------
    def _ensure_worker(self) -> DataWorker:
        with self._lock:
            if self._worker is None:
                worker = self._worker_factory(
                    self._config,
                    outbox=self._outbox,
                    on_fatal=self._on_worker_fatal,
                    proto=self._proto,
                    clock=self._clock,
                    logger=self._log,
                )
                worker.start()
                self._worker = worker
            return self._worker

    def _on_worker_fatal(self, fault: WorkerFaultError) -> None:
        # Runs on the worker thread.
        with self._lock:
            self._fault = fault
            self._last_error = fault.message
            self._readable_in_worker = False
        self._set_state(ConnectionState.FAULTED)
        self._session_ended.set()

    # ---------------- Connection ----------------
    def connect(self, port: str, options: Optional[SerialOptions] = None) -> None:
        self._require_not_faulted()
        with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                raise InvalidStateError(
                    f"Cannot connect while {self._state.value}.",
                    hint="Disconnect (or stop the simulation) first.",
                )
            options = (options or self._session.serial_options).validate()
            self._set_state(ConnectionState.CONNECTING)

        try:
            transport = self._transport_factory(port, options)
            link = SerialLink(
                port,
                options,
                transport,
                proto=self._proto,
                timeout_s=self._config.ares_timeout_s,
                read_chunk_size=self._config.read_chunk_size,
                cmd_sink=self._cmd_sink,
                logger=self._log,
            )
            link.open()
        except SerialPlotError as e:
            self._set_state(ConnectionState.DISCONNECTED)
            self._record_error(e)
            raise

        with self._lock:
            self._link = link
            self._session = dataclasses.replace(self._session, serial_options=options)
        self._set_state(ConnectionState.CONNECTED)
        self.bus.emit(ev.CONNECTED, {"port": port, "baud_rate": options.baud_rate})
        self.bus.emit(ev.STATUS, f"Connected to {port}.")

    def disconnect(self) -> None:
        """User-initiated disconnect. Stops collection first. Idempotent."""
        if self.state in (ConnectionState.COLLECTING, ConnectionState.STOPPING):
            self.stop()
        with self._lock:
            link, self._link = self._link, None
        if link is None:
            return
        link.close()
        self.subscriptions.clear()
        if self.state is not ConnectionState.FAULTED:
            self._set_state(ConnectionState.DISCONNECTED)
        self.bus.emit(ev.DISCONNECTED, {"external": False, "port": link.port})
        self.bus.emit(ev.STATUS, "Disconnected.")

    def handle_external_disconnect(self) -> None:
        """The device went away (unplugged, I/O error). Idempotent, never retries."""
        with self._lock:
            if self._handling_disconnect or self._link is None:
                return
            self._handling_disconnect = True
        try:
            self._log.warning("EXTERNAL_DISCONNECT port=%s", self._link.port)
            if self.state in (ConnectionState.COLLECTING, ConnectionState.STOPPING):
                self.stop()
            with self._lock:
                link, self._link = self._link, None
            if link is not None:
                link.close()
            self.subscriptions.clear()
            if self.state is not ConnectionState.FAULTED:
                self._set_state(ConnectionState.DISCONNECTED)
            self.bus.emit(ev.STATUS, "connection lost (external)")
            self.bus.emit(ev.DISCONNECTED, {"external": True, "port": link.port if link else None})
        finally:
            with self._lock:
                self._handling_disconnect = False

    # ---------------- Collection ----------------
    def start(
        self,
        *,
        source: "Source | str | None" = None,
        protocol: "ProtocolName | str | None" = None,
        parser_source: Optional[str] = None,
        sim_config: Optional[SimConfig] = None,
    ) -> None:
        self._require_not_faulted()
        # Resolved outside the lock: an unknown name emits parserStatus.
        resolved = self._resolve_protocol(protocol) if protocol is not None else None
        with self._lock:
            session = self._session
            if source is not None:
                session = dataclasses.replace(session, source=Source(source))
            if resolved is not None:
                session = dataclasses.replace(session, protocol=resolved)
            if parser_source is not None:
                session = dataclasses.replace(session, parser_source=parser_source)
            if sim_config is not None:
                session = dataclasses.replace(session, sim_params=sim_config)

            state = self._state
            if state in (ConnectionState.COLLECTING, ConnectionState.STOPPING):
                raise InvalidStateError(f"Cannot start while {state.value}.", hint="Stop collection first.")

            if session.source is Source.SERIAL:
                if state is not ConnectionState.CONNECTED or self._link is None:
                    raise InvalidStateError(
                        "Serial collection requires a connected device.",
                        hint="Connect to a serial port first.",
                    )
                self._check_parser_source(session.protocol, session.parser_source)
            elif state not in (ConnectionState.DISCONNECTED, ConnectionState.CONNECTED):
                raise InvalidStateError(f"Cannot start a simulation while {state.value}.")

            self._session = session
            self._collect_source = session.source
            self._session_ended.clear()
            stream = None
            if session.source is Source.SERIAL:
                stream = self._link.readable
                self._readable_in_worker = True

            self.data_buffer.clear()
            self.data_buffer.rate_meter.reset(self._clock())
            self._set_state(ConnectionState.COLLECTING)

        worker = self._ensure_worker()
        worker.post(StartCommand(
            source=session.source,
            protocol=session.protocol,
            parser_source=session.parser_source,
            sim_config=session.sim_params,
            stream=stream,
        ))
        self._log.info("COLLECT_START source=%s protocol=%s", session.source.value, session.protocol.value)
        self.bus.emit(ev.STATUS, f"Collecting ({session.source.value}, {session.protocol.value}).")

    def stop(self) -> ConnectionState:
        """
        Stop collecting. Safe in any state and any number of times; never raises.

        Waits (up to stop_timeout_s) until the worker reports the session
        ended, so the readable stream is back on the host when this returns.
        """
        with self._lock:
            state = self._state
            if state is not ConnectionState.COLLECTING:
                return state
            self._set_state(ConnectionState.STOPPING)
            worker = self._worker

        try:
            if worker is not None:
                worker.request_stop()
                if not self._wait_session_ended(self._config.stop_timeout_s):
                    self._log.warning("STOP_TIMEOUT timeout_s=%.2f", self._config.stop_timeout_s)
        except Exception:
            self._log.exception("STOP_ERROR")

        return self._finish_session("stopped")

    def _wait_session_ended(self, timeout_s: float) -> bool:
        deadline = time.monotonic() + timeout_s
        inline = self._dispatcher is None or threading.current_thread() is self._dispatcher
        while not self._session_ended.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            if inline:
                self.dispatch(timeout=min(remaining, 0.02))
            else:
                self._session_ended.wait(min(remaining, 0.05))
        return True

    def _finish_session(self, reason: str) -> ConnectionState:
        with self._lock:
            self._collect_source = None
            if self._state is ConnectionState.FAULTED:
                return self._state
            link_up = self._link is not None and self._link.is_open
            new = ConnectionState.CONNECTED if link_up else ConnectionState.DISCONNECTED
            self._set_state(new)
        self.bus.emit(ev.STATUS, f"Collection {reason}.")
        return new

    # ---------------- Parser / simulation ----------------
    def _resolve_protocol(self, protocol: "ProtocolName | str") -> ProtocolName:
        try:
            return ProtocolName.parse(protocol)
        except ConfigurationError as e:
            self._log.warning("UNKNOWN_PROTOCOL requested=%s", protocol)
            self.bus.emit(
                ev.PARSER_STATUS,
                ParserStatus(str(protocol), ProtocolName.DEFAULT.value, False, f"{e.message} Using default."),
            )
            return ProtocolName.DEFAULT

    @staticmethod
    def _check_parser_source(protocol: ProtocolName, parser_source: Optional[str]) -> None:
        if protocol is ProtocolName.CUSTOM and not (parser_source or "").strip():
            raise ConfigurationError(
                "Custom protocol selected but no parser source given.",
                hint="Provide the parser code (e.g. --parser-file).",
            )

    def set_protocol(self, protocol: "ProtocolName | str", parser_source: Optional[str] = None) -> ParserStatus:
        """
        Select the protocol for the next (or, if allowed, the current) session.

        Blocked while Collecting unless allow_parser_update_while_collecting.
        """
        self._require_not_faulted()
        with self._lock:
            collecting = self._state in (ConnectionState.COLLECTING, ConnectionState.STOPPING)
            if collecting and not self._config.allow_parser_update_while_collecting:
                raise InvalidStateError(
                    "Protocol change is not allowed while collecting.",
                    hint="Stop collection, change the protocol, then start again.",
                )
        name = self._resolve_protocol(protocol)
        self._check_parser_source(name, parser_source)

        with self._lock:
            self._session = dataclasses.replace(self._session, protocol=name, parser_source=parser_source)
            live = collecting and self._collect_source is Source.SERIAL

        if live:
            self._ensure_worker().post(UpdateActiveParserCommand(name, parser_source))
            return ParserStatus(str(protocol), name.value, True, "Parser update sent to worker.")

        # Validate now so a bad custom parser is reported before start.
        _, status = build_codec(name, parser_source, proto=self._proto, logger=self._log)
        self.bus.emit(ev.PARSER_STATUS, status)
        return status

    def update_sim_config(self, sim_config: Optional[SimConfig] = None, **kwargs: Any) -> SimConfig:
        """Change simulation parameters; a running simulation picks them up on its next tick."""
        self._require_not_faulted()
        with self._lock:
            cfg = sim_config or dataclasses.replace(self._session.sim_params, **kwargs)
            self._session = dataclasses.replace(self._session, sim_params=cfg)
            live = self._collect_source is Source.SIMULATED
        if live:
            self._ensure_worker().post(UpdateSimConfigCommand(cfg))
        return cfg

    # ---------------- Aresplot control plane ----------------
    def _client(self) -> AresplotClient:
        with self._lock:
            link = self._link
            state = self._state
            session = self._session
        if link is None or state not in (ConnectionState.CONNECTED, ConnectionState.COLLECTING):
            raise InvalidStateError(
                "Aresplot requests need a connected device.",
                hint="Connect to a serial port first.",
            )
        # ACKs are only decoded by a running aresplot read loop.
        if (
            state is not ConnectionState.COLLECTING
            or session.source is not Source.SERIAL
            or session.protocol is not ProtocolName.ARESPLOT
        ):
            raise InvalidStateError(
                "Aresplot requests need an active aresplot session.",
                hint="Start serial collection with the aresplot protocol first.",
            )
        return link.client(poll=self._poll_inline)

    def _poll_inline(self) -> None:
        if self._dispatcher is None or threading.current_thread() is self._dispatcher:
            self.dispatch(timeout=0)

    def _mcu_request(self, what: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except ProtocolError as e:
            details: dict = {"request": what}
            hint = None
            if isinstance(e, CommandFailed):
                details.update(status_code=e.status_code, status_name=e.status_name)
                hint = f"MCU answered {e.status_name}."
            elif isinstance(e, CommandTimeout):
                details["timeout_s"] = e.timeout_s
                hint = "No ACK from the MCU. Check the firmware and the selected protocol."
            err = McuRequestError(f"{what} failed: {e}", hint=hint, details=details)
            self._record_error(err)
            raise err from None
        except ValueError as e:
            raise ConfigurationError(f"{what}: {e}") from None

    def subscribe_variables(self, subscriptions: Iterable[Subscription]) -> List[str]:
        """Push the full monitored set to the MCU (START_MONITOR). Returns channel names."""
        self._require_not_faulted()
        new_set = SubscriptionSet(subscriptions, limit=self._proto.max_monitor_vars)
        client = self._client()
        self._mcu_request("START_MONITOR", lambda: client.start_monitor(list(new_set)))
        self.subscriptions = new_set
        self._log.info("MONITOR_SET count=%d", len(new_set))
        return new_set.channel_names()

    def clear_subscriptions(self) -> None:
        self._require_not_faulted()
        client = self._client()
        self._mcu_request("START_MONITOR", client.stop_monitor)
        self.subscriptions = SubscriptionSet()

    def write_variable(self, address: int, var_type: "int | str", value: float) -> None:
        self._require_not_faulted()
        client = self._client()
        self._mcu_request("SET_VARIABLE", lambda: client.set_variable(address, var_type, value))

    def set_sample_rate(self, rate_hz: int) -> None:
        self._require_not_faulted()
        client = self._client()
        self._mcu_request("SET_SAMPLE_RATE", lambda: client.set_sample_rate(rate_hz))

    # ---------------- Worker messages ----------------
    def start_dispatcher(self) -> None:
        if self._dispatcher is not None:
            return
        self._dispatcher = _Dispatcher(self)
        self._dispatcher.start()

    def stop_dispatcher(self) -> None:
        d, self._dispatcher = self._dispatcher, None
        if d is None:
            return
        d.stop()
        if d is not threading.current_thread():
            d.join(timeout=1.0)

    def dispatch(self, timeout: float = 0.0) -> int:
        """
        Deliver pending worker messages to the event bus and sinks.

        Waits up to timeout for the first message. Returns the number handled.
        """
        handled = 0
        with self._dispatch_lock:
            try:
                msg = self._outbox.get(timeout=timeout) if timeout > 0 else self._outbox.get_nowait()
            except queue.Empty:
                msg = None
            while msg is not None:
                self._handle_message(msg)
                handled += 1
                try:
                    msg = self._outbox.get_nowait()
                except queue.Empty:
                    msg = None

            link = self._link
            if link is not None:
                try:
                    link.engine.expire_pending()
                except InvalidStateError:
                    pass
        return handled

    def _handle_message(self, msg: WorkerMessage) -> None:
        payload = msg.payload
        if msg.type is MessageType.DATA_BATCH:
            self._on_batch(payload)
        elif msg.type is MessageType.STATUS:
            self._log.debug("WORKER_STATUS %s", payload)
            self.bus.emit(ev.STATUS, str(payload))
        elif msg.type is MessageType.ERROR:
            self._on_worker_error(payload)
        elif msg.type is MessageType.WARN:
            self._log.warning("WORKER_WARN %s", payload)
            self.bus.emit(ev.STATUS, f"Warning: {payload}")
        elif msg.type is MessageType.INFO:
            self._on_info(payload)
        else:
            self._log.warning("WORKER_UNKNOWN_MESSAGE type=%r", msg.type)

    def _on_batch(self, batch: Batch) -> None:
        self.data_buffer.add_batch(batch, self._clock())
        self.bus.emit(ev.DATA_BATCH, batch)
        with self._lock:
            sinks = list(self._sinks)
        for s in sinks:
            try:
                s.on_batch(batch)
            except Exception:
                self._log.exception("SINK_ON_BATCH_ERROR sink=%s", type(s).__name__)

    def _on_info(self, payload: Any) -> None:
        if isinstance(payload, SessionEnded):
            self._on_session_ended(payload)
        elif isinstance(payload, ParserStatus):
            self.bus.emit(ev.PARSER_STATUS, payload)
        elif isinstance(payload, AresAck):
            link = self._link
            if link is not None:
                try:
                    link.engine.handle_frame(payload)
                except InvalidStateError:
                    pass
            self.bus.emit(ev.ACK_RECEIVED, payload)
        elif isinstance(payload, AresError):
            self._log.warning("MCU_ERROR_REPORT code=0x%02X msg=%r", payload.code, payload.text)
            self.bus.emit(ev.MCU_ERROR, payload)
        elif isinstance(payload, Notice):
            self._log.info("WORKER_INFO source=%s %s", payload.source, payload.message)
            self.bus.emit(ev.STATUS, payload.message)
        else:
            self._log.debug("WORKER_INFO %r", payload)

    def _on_worker_error(self, err: Any) -> None:
        if not isinstance(err, SerialPlotError):
            err = SerialPlotError(str(err))
        self._record_error(err)
        if isinstance(err, WorkerFaultError):
            with self._lock:
                self._fault = err
            self._set_state(ConnectionState.FAULTED)
        elif isinstance(err, StreamFaultError):
            self._log.warning("STREAM_FAULT %s", err.message)

    def _on_session_ended(self, ended: SessionEnded) -> None:
        with self._lock:
            if ended.source is Source.SERIAL:
                self._readable_in_worker = False
            state = self._state
            own = ended.source is not None and ended.source is self._collect_source
        self._log.info(
            "SESSION_ENDED source=%s reason=%s released=%s",
            ended.source.value if ended.source else None, ended.reason, ended.released,
        )
        if own:
            self._session_ended.set()

        # Only sessions that ended on their own need a transition here;
        # stop() finishes its own.
        if state is not ConnectionState.COLLECTING or not own or ended.reason in ("stopped", "restarted"):
            return

        self._set_state(ConnectionState.STOPPING)
        link = self._link
        if ended.source is Source.SERIAL and (link is None or not link.is_open):
            self._finish_session(ended.reason)
            self.handle_external_disconnect()
            return
        self._finish_session(ended.reason)

    def _record_error(self, err: SerialPlotError) -> None:
        with self._lock:
            self._last_error = err.message
        self._log.warning("ERROR code=%s msg=%s", err.code, err.message)
        self.bus.emit(ev.ERROR, err)

    # ---------------- Export / teardown ----------------
    def channel_names(self) -> Optional[List[str]]:
        with self._lock:
            protocol = self._session.protocol
        if protocol is ProtocolName.ARESPLOT and len(self.subscriptions):
            return self.subscriptions.channel_names()
        return None

    def export_csv(self, path: "str | Path") -> Path:
        return self.data_buffer.export_csv(path, self.channel_names())

    def close(self) -> None:
        try:
            self.stop()
        except Exception:
            self._log.exception("CLOSE_STOP_ERROR")
        try:
            self.disconnect()
        except Exception:
            self._log.exception("CLOSE_DISCONNECT_ERROR")

        with self._lock:
            worker, self._worker = self._worker, None
        if worker is not None:
            try:
                worker.shutdown(timeout=self._config.stop_timeout_s)
            except Exception:
                self._log.exception("WORKER_SHUTDOWN_ERROR")

        self.stop_dispatcher()
        # Deliver whatever the worker posted while shutting down.
        self.dispatch(timeout=0)

        with self._lock:
            sinks, self._sinks = list(self._sinks), []
        for s in sinks:
            try:
                s.close()
            except Exception:
                self._log.exception("SINK_CLOSE_ERROR")

    def __enter__(self) -> "Coordinator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

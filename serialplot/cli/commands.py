# serialplot/cli/commands.py
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from serialplot.app.config import SerialPlotConfig
from serialplot.app.coordinator import Coordinator
from serialplot.app.sinks import CommandTraceLogger, TerminalSink
from serialplot.core.errors import ConfigurationError, InvalidStateError, SerialPlotError
from serialplot.model.session import ProtocolName, SimConfig, Source
from serialplot.model.subscription import Subscription
from serialplot.runtime import event_bus as ev
from serialplot.runtime.state import ConnectionState, PipelineStatus
from serialplot.transport.options import SerialOptions
from serialplot.transport.ports import list_serial_ports
from serialplot.utils.timeutil import format_seconds_hms

STATUS_PERIOD_S = 1.0

log = logging.getLogger(__name__)


# ---------------- Logging ----------------

def configure_file_logging(app_log_path: Path) -> None:
    """
    Add a file handler to the root logger (idempotent).
    Kept in CLI (presentation-layer concern).
    """
    root = logging.getLogger()
    app_log_path.parent.mkdir(parents=True, exist_ok=True)
    target = str(app_log_path.resolve())

    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target:
            return

    fh = logging.FileHandler(app_log_path, encoding="utf-8", delay=True)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(fh)

    if root.level > logging.INFO:
        root.setLevel(logging.INFO)


def configure_console_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------- Printing ----------------

def format_status_line(st: PipelineStatus) -> str:
    est = st.estimate
    total = format_seconds_hms(est.total_s if est else None)
    remaining = format_seconds_hms(est.remaining_s if est else None)
    return (
        f"[{st.state.value}] rate={st.rate_hz:.1f} Hz "
        f"buffer={st.buffered_points}/{st.max_points} "
        f"total={total} remaining={remaining}"
    )


def _print_event(prefix: str) -> Callable[[object], None]:
    def _print(payload: object) -> None:
        msg = getattr(payload, "message", None) or str(payload)
        print(f"{prefix}: {msg}")

    return _print


def _attach_console(coord: Coordinator, *, raw_view: Optional[TerminalSink]) -> None:
    coord.subscribe(ev.ERROR, _print_event("ERROR"))
    coord.subscribe(ev.PARSER_STATUS, _print_event("PARSER"))
    coord.subscribe(ev.MCU_ERROR, lambda e: print(f"MCU ERROR 0x{e.code:02X}: {e.text}"))
    coord.subscribe(ev.DISCONNECTED, lambda d: print("DISCONNECTED" + (" (external)" if d.get("external") else "")))
    if raw_view is not None:
        coord.add_sink(raw_view)


def _run_for(coord: Coordinator, secs: Optional[float]) -> None:
    """Pump worker messages until secs elapsed, the session ended, or Ctrl+C."""
    t0 = time.monotonic()
    next_status = t0 + STATUS_PERIOD_S
    try:
        while secs is None or time.monotonic() - t0 < secs:
            coord.dispatch(timeout=0.05)
            if coord.state is not ConnectionState.COLLECTING:
                break
            now = time.monotonic()
            if now >= next_status:
                print(format_status_line(coord.status()))
                next_status = now + STATUS_PERIOD_S
    except KeyboardInterrupt:
        print("Interrupted.")


def _finish(coord: Coordinator, csv_path: Optional[str]) -> None:
    coord.stop()
    print(format_status_line(coord.status()))
    if csv_path:
        try:
            out = coord.export_csv(csv_path)
        except InvalidStateError as e:
            print(f"CSV: {e.message}")
        else:
            print(f"CSV: {out} ({len(coord.data_buffer)} rows)")


def _serial_options(args) -> SerialOptions:
    return SerialOptions(
        baud_rate=args.baud,
        data_bits=args.data_bits,
        stop_bits=args.stop_bits,
        parity=args.parity,
        flow_control=args.flow_control,
    )


def _coordinator(config: SerialPlotConfig) -> Coordinator:
    return Coordinator(config, cmd_sink=CommandTraceLogger(logging.getLogger("serialplot.ares")))


# ---------------- Commands ----------------

def cmd_ports() -> int:
    ports = list_serial_ports()
    if not ports:
        print("No serial ports found.")
        return 0
    print("Serial ports:")
    for p in ports:
        print(f"  {p.device:<16} {p.description}  [{p.hwid}]")
    return 0


def cmd_simulate(args, *, config: SerialPlotConfig) -> int:
    sim = SimConfig(num_channels=args.channels, frequency=args.frequency, amplitude=args.amplitude)
    with _coordinator(config) as coord:
        _attach_console(coord, raw_view=None if args.quiet else TerminalSink())
        coord.start(source=Source.SIMULATED, sim_config=sim)
        print(f"Simulating {sim.num_channels} channels at {sim.frequency:g} Hz (Ctrl+C to stop).")
        _run_for(coord, args.secs)
        _finish(coord, args.csv)
    return 0


def _read_parser_file(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Parser file not found: {p}")
    return p.read_text(encoding="utf-8")


def cmd_capture(args, *, config: SerialPlotConfig) -> int:
    parser_source = _read_parser_file(args.parser_file)
    with _coordinator(config) as coord:
        _attach_console(coord, raw_view=None if args.quiet else TerminalSink(hex_mode=args.hex))
        coord.connect(args.port, _serial_options(args))
        coord.start(source=Source.SERIAL, protocol=args.protocol, parser_source=parser_source)
        print(f"Capturing {args.port} @ {args.baud} ({coord.session.protocol.value}) (Ctrl+C to stop).")
        _run_for(coord, args.secs)
        _finish(coord, args.csv)
    return 0


def cmd_monitor(args, *, config: SerialPlotConfig) -> int:
    subs = [Subscription(addr, var_type, name) for addr, var_type, name in args.var]
    with _coordinator(config) as coord:
        _attach_console(coord, raw_view=None)
        coord.connect(args.port, _serial_options(args))
        coord.start(source=Source.SERIAL, protocol=ProtocolName.ARESPLOT)

        names = coord.subscribe_variables(subs)
        print(f"Monitoring: {', '.join(names)}")
        if args.rate_hz is not None:
            coord.set_sample_rate(args.rate_hz)
            print(f"Sample rate: {args.rate_hz} Hz")

        _run_for(coord, args.secs)

        try:
            coord.clear_subscriptions()
        except SerialPlotError as e:
            log.warning("MONITOR_CLEAR_FAILED %s", e.message)
        _finish(coord, args.csv)
    return 0


def cmd_set_var(args, *, config: SerialPlotConfig) -> int:
    with _coordinator(config) as coord:
        _attach_console(coord, raw_view=None)
        coord.connect(args.port, _serial_options(args))
        coord.start(source=Source.SERIAL, protocol=ProtocolName.ARESPLOT)
        coord.write_variable(args.address, args.var_type, args.value)
        print(f"SET_VARIABLE 0x{args.address:08X} ({args.var_type}) = {args.value:g}: OK")
        coord.stop()
    return 0

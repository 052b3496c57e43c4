# serialplot/cli/args.py
from __future__ import annotations

import argparse
from typing import List, Optional, Tuple

from serialplot.model.session import ProtocolName
from serialplot.transport.options import DEFAULT_BAUD_RATE


def parse_int(value: str) -> int:
    """Decimal or 0x-prefixed integer."""
    try:
        return int(str(value), 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'") from None


def parse_var(value: str) -> Tuple[int, str, Optional[str]]:
    """
    Parse a --var spec: ADDRESS:TYPE[:NAME], e.g. 0x20000010:float32:speed.
    """
    parts = str(value).split(":", 2)
    if len(parts) < 2 or not parts[1]:
        raise argparse.ArgumentTypeError(f"Invalid variable '{value}' (use ADDRESS:TYPE[:NAME])")
    address = parse_int(parts[0])
    name = parts[2] if len(parts) == 3 and parts[2] else None
    return address, parts[1], name


# ---------------- argparse ----------------

def _add_serial_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("--port", required=True, help="Serial port (see: serialplot ports).")
    p.add_argument("--baud", type=int, default=DEFAULT_BAUD_RATE)
    p.add_argument("--data-bits", type=int, default=8, choices=(7, 8))
    p.add_argument("--stop-bits", type=int, default=1, choices=(1, 2))
    p.add_argument("--parity", default="none", choices=("none", "even", "odd"))
    p.add_argument("--flow-control", default="none", choices=("none", "hardware"))


def _add_run_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("--secs", type=float, default=None, help="Stop after this many seconds (default: until Ctrl+C).")
    p.add_argument("--csv", default=None, help="Export the collected data to this CSV file (or directory) on exit.")
    p.add_argument("--quiet", action="store_true", help="Only print the periodic rate line.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="serialplot")
    parser.add_argument("--config", default=None, help="YAML file with pipeline tunables.")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Console log level (default from config, INFO).",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("ports", help="List serial ports.")

    ps = sub.add_parser("simulate", help="Run the signal simulator.")
    ps.add_argument("--channels", type=int, default=4)
    ps.add_argument("--frequency", type=float, default=1000.0, help="Points per second.")
    ps.add_argument("--amplitude", type=float, default=1.0)
    _add_run_flags(ps)

    pc = sub.add_parser("capture", help="Read and parse a serial stream.")
    _add_serial_flags(pc)
    pc.add_argument("--protocol", default=ProtocolName.DEFAULT.value, help=f"One of {[p.value for p in ProtocolName]}.")
    pc.add_argument("--parser-file", default=None, help="Python source of a custom parser (protocol 'custom').")
    pc.add_argument("--hex", action="store_true", help="Show raw bytes as hex.")
    _add_run_flags(pc)

    pm = sub.add_parser("monitor", help="Subscribe to MCU variables over Aresplot.")
    _add_serial_flags(pm)
    pm.add_argument(
        "--var",
        type=parse_var,
        action="append",
        required=True,
        help="ADDRESS:TYPE[:NAME], repeatable (at most 10).",
    )
    pm.add_argument("--rate-hz", type=int, default=None, help="Ask the MCU for this sample rate (0 = MCU default).")
    _add_run_flags(pm)

    pv = sub.add_parser("set-var", help="Write one MCU variable over Aresplot.")
    _add_serial_flags(pv)
    pv.add_argument("--address", type=parse_int, required=True)
    pv.add_argument("--type", dest="var_type", required=True, help="Original C type, e.g. float32 or uint16.")
    pv.add_argument("--value", type=float, required=True)

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)

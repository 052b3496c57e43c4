# serialplot/cli/main.py
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from serialplot.app.config import SerialPlotConfig, load_config
from serialplot.core.errors import SerialPlotError

from serialplot.cli.args import parse_args
from serialplot.cli.commands import (
    cmd_capture,
    cmd_monitor,
    cmd_ports,
    cmd_set_var,
    cmd_simulate,
    configure_console_logging,
    configure_file_logging,
)


def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = parse_args(argv)
        config = load_config(args.config) if args.config else SerialPlotConfig()

        configure_console_logging(args.log_level or config.log_level)
        if args.log_file:
            configure_file_logging(Path(args.log_file))

        if args.cmd == "ports":
            return cmd_ports()
        if args.cmd == "simulate":
            return cmd_simulate(args, config=config)
        if args.cmd == "capture":
            return cmd_capture(args, config=config)
        if args.cmd == "monitor":
            return cmd_monitor(args, config=config)
        if args.cmd == "set-var":
            return cmd_set_var(args, config=config)

        return 2
    except SerialPlotError as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

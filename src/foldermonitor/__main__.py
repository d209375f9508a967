"""Command-line entry point for the folder monitor."""
from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path
from typing import List, Optional

from .config import ConfigError, load_config, write_example_config
from .monitor import DEFAULT_TICK_INTERVAL, DuplicateIDError, MonitorSet

EXIT_NOTHING_TO_DO = 1
EXIT_CONFIG_ERROR = 2
EXIT_NO_USABLE_PATHS = 3

_STARTUP_TIMEOUT = 10.0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a command when watched folders change")
    parser.add_argument(
        "--config",
        default="foldermonitor.yaml",
        help="Path to the YAML configuration file (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also append log output to this file",
    )
    parser.add_argument(
        "--tick",
        type=float,
        default=DEFAULT_TICK_INTERVAL,
        help="Seconds between debounce checks (default: %(default)s)",
    )
    args = parser.parse_args(argv)

    _configure_logging(args.log_level, args.log_file)

    config_path = Path(args.config)
    try:
        configs = load_config(config_path)
    except ConfigError as exc:
        logging.error("%s", exc)
        return EXIT_CONFIG_ERROR

    if not configs:
        logging.error("Nothing to do!")
        example_path = config_path.with_name(f"{config_path.stem}.example.yaml")
        write_example_config(example_path)
        return EXIT_NOTHING_TO_DO

    monitors = MonitorSet(tick_interval=args.tick)
    for cfg in configs:
        try:
            monitors.add_path(cfg)
        except DuplicateIDError as exc:
            logging.error("%s; skipping", exc)

    monitors.start_all()
    if monitors.wait_started(_STARTUP_TIMEOUT) == 0:
        logging.error("None of the %s configured path(s) could be monitored", len(monitors))
        monitors.stop_all()
        return EXIT_NO_USABLE_PATHS

    stop_requested = threading.Event()
    _install_signal_handlers(stop_requested)
    _wait_for_shutdown(stop_requested)

    logging.info("Shutting down")
    monitors.stop_all()
    return 0


def _configure_logging(level_name: str, log_file: Optional[str]) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=handlers,
    )


def _install_signal_handlers(stop_requested: threading.Event) -> None:
    def _handle(signum, _frame) -> None:
        logging.info("Received signal %s", signum)
        stop_requested.set()

    signal.signal(signal.SIGINT, _handle)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle)


def _wait_for_shutdown(stop_requested: threading.Event) -> None:
    while not stop_requested.wait(0.5):
        pass


if __name__ == "__main__":
    raise SystemExit(main())

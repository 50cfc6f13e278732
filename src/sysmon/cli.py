"""Command-line entry point for sysmon."""

import argparse
import logging
import signal
import sys
from importlib.metadata import PackageNotFoundError, version

from sysmon.collector import Collector
from sysmon.config import Config, ConfigError, load_config, merge_overrides, parse_duration
from sysmon.metrics_log import FileMetricsLogger
from sysmon.monitor import Sink, SystemMonitor
from sysmon.native import new_stats_source
from sysmon.render import JSONRenderer
from sysmon.stats import SourceUnavailableError

logger = logging.getLogger(__name__)


def _version() -> str:
    try:
        return version("sysmon")
    except PackageNotFoundError:
        return "unknown"


def _duration(text: str) -> float:
    try:
        return parse_duration(text)
    except ConfigError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser. Options left unset are None so config values survive."""
    parser = argparse.ArgumentParser(
        prog="sysmon",
        description=(
            "Real-time system metrics: CPU, memory, disk and network I/O, "
            "shown interactively or streamed as JSON lines."
        ),
    )
    parser.add_argument("--config", metavar="PATH", help="config file path (JSON)")
    parser.add_argument(
        "--interval", type=_duration, metavar="DURATION", help="refresh interval (e.g. 1s, 500ms, 2m)"
    )
    parser.add_argument(
        "--json", dest="json_mode", action="store_true", default=None, help="output metrics as JSON"
    )
    parser.add_argument("--log-file", metavar="PATH", help="append metrics to this file as JSON lines")
    parser.add_argument("--cpu-threshold", type=float, metavar="N", help="CPU usage alert threshold (0-100)")
    parser.add_argument("--mem-threshold", type=float, metavar="N", help="memory usage alert threshold (0-100)")
    parser.add_argument("--disk-threshold", type=float, metavar="N", help="disk usage alert threshold (0-100)")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="diagnostics level (default: WARNING)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_version()}")
    return parser


def resolve_config(args: argparse.Namespace) -> Config:
    """Load the config file and apply the flags that were given."""
    return merge_overrides(
        load_config(args.config),
        interval=args.interval,
        json_mode=args.json_mode,
        log_file=args.log_file,
        cpu_threshold=args.cpu_threshold,
        mem_threshold=args.mem_threshold,
        disk_threshold=args.disk_threshold,
    )


def configure_logging(level: str, interactive: bool) -> None:
    if interactive:
        # The TUI owns the terminal; route diagnostics to the textual console
        from textual.logging import TextualHandler

        handlers: list[logging.Handler] = [TextualHandler()]
    else:
        handlers = [logging.StreamHandler(sys.stderr)]
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


def open_metrics_log(path: str | None) -> FileMetricsLogger | None:
    if not path:
        return None
    try:
        return FileMetricsLogger(path)
    except OSError as exc:
        logger.warning("Failed to open metrics log %s: %s", path, exc)
        return None


def run_json(monitor: SystemMonitor, sinks: list[Sink]) -> None:
    """Stream snapshots to the sinks until SIGINT/SIGTERM."""

    def request_stop(signum, frame) -> None:
        monitor.stop(timeout=0)

    previous = {sig: signal.signal(sig, request_stop) for sig in (signal.SIGINT, signal.SIGTERM)}
    monitor.start()
    try:
        monitor.dispatch(sinks)
    finally:
        monitor.stop()
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the sysmon command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = resolve_config(args)
    except ConfigError as exc:
        print(f"sysmon: invalid configuration: {exc}", file=sys.stderr)
        return 2

    configure_logging(args.log_level, interactive=not config.json_mode)

    try:
        source = new_stats_source()
    except SourceUnavailableError as exc:
        print(f"sysmon: failed to create stats source: {exc}", file=sys.stderr)
        return 1

    monitor = SystemMonitor(Collector(source), interval=config.interval)
    metrics_logger = open_metrics_log(config.log_file)

    try:
        if config.json_mode:
            sinks: list[Sink] = [JSONRenderer(sys.stdout)]
            if metrics_logger is not None:
                sinks.append(metrics_logger)
            run_json(monitor, sinks)
        else:
            from sysmon.app import SysmonApp

            SysmonApp(monitor, config.thresholds, metrics_logger).run()
            monitor.stop()
    finally:
        if metrics_logger is not None:
            metrics_logger.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

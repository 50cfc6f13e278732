"""sysmon - Interactive textual dashboard."""

import logging
from queue import Empty
from typing import Any

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from sysmon.collector import Collector
from sysmon.conduit import ConduitClosed
from sysmon.config import Thresholds
from sysmon.metrics_log import FileMetricsLogger
from sysmon.models import DiskStats, NetworkStats, Snapshot
from sysmon.monitor import SystemMonitor
from sysmon.native import new_stats_source
from sysmon.render import Level, alerts, evaluate, format_bytes, format_rate

logger = logging.getLogger(__name__)

LEVEL_COLORS = {Level.OK: "green", Level.WARN: "yellow", Level.ALERT: "red"}

BAR_WIDTH = 20


def usage_bar(percent: float, threshold: float) -> str:
    """Render a percentage as a markup bar colored by its threshold level."""
    filled = min(int(percent / (100 / BAR_WIDTH)), BAR_WIDTH)
    color = LEVEL_COLORS[evaluate(percent, threshold)]
    bar = f"[{color}]" + "█" * filled + f"[/{color}]" + "[dim]░[/dim]" * (BAR_WIDTH - filled)
    # Escaped bracket so markup does not eat the bar container
    return f"\\[{bar}] [{color}]{percent:5.1f}%[/{color}]"


class HeaderStats(Static):
    """Header widget showing CPU and memory statistics."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, thresholds: Thresholds, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._thresholds = thresholds
        self._snapshot: Snapshot | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    @property
    def snapshot(self) -> Snapshot | None:
        return self._snapshot

    def update_stats(self, snapshot: Snapshot) -> None:
        """Update the statistics from a snapshot."""
        self._snapshot = snapshot
        try:
            self.query_one("#cpu-info", Static).update(self._get_cpu_info())
            self.query_one("#mem-info", Static).update(self._get_mem_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_cpu_info(self) -> str:
        """Get CPU info display."""
        if self._snapshot is None:
            return "Loading CPU info..."
        cpu = self._snapshot.cpu
        if not cpu.per_core:
            return "CPU: no data"
        threshold = self._thresholds.cpu
        lines = [f"CPU   {usage_bar(cpu.overall, threshold)}"]
        for i, usage in enumerate(cpu.per_core):
            lines.append(f"CPU{i:<2} {usage_bar(usage, threshold)}")
        return "\n".join(lines)

    def _get_mem_info(self) -> str:
        """Get memory info display."""
        if self._snapshot is None:
            return "Loading memory info..."
        mem = self._snapshot.memory
        if mem.total == 0:
            return "Memory: no data"

        lines = [
            f"Mem {usage_bar(mem.percent, self._thresholds.memory)}",
            f"Used {format_bytes(mem.used)} / {format_bytes(mem.total)}"
            f" (available {format_bytes(mem.available)})",
            f"Updated: {self._snapshot.timestamp.astimezone():%H:%M:%S}",
        ]
        for alert in alerts(self._snapshot, self._thresholds):
            lines.append(f"[red]⚠ {alert}[/red]")
        return "\n".join(lines)


class KeyedTable(Container):
    """
    Data table whose rows are keyed by an identity string.

    Rows are updated in place with update_cell, added for new identities and
    removed when an identity disappears from the latest snapshot.
    """

    DEFAULT_CSS = """
    KeyedTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    CAPTION = ""
    COLUMNS: list[tuple[str, str, int | None]] = []

    def __init__(self, thresholds: Thresholds, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._thresholds = thresholds
        self._current_keys: set[str] = set()

    @property
    def current_keys(self) -> set[str]:
        return self._current_keys

    def compose(self) -> ComposeResult:
        yield Static(self.CAPTION, classes="table-title")
        yield DataTable()

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        for label, key, width in self.COLUMNS:
            table.add_column(label, key=key, width=width)

    def row_key(self, item: Any) -> str:
        """Identity of an item's row. Subclasses must override."""
        raise NotImplementedError(f"{type(self).__name__} must define row_key")

    def row_values(self, item: Any) -> list[str]:
        """Cell values for an item, in COLUMNS order. Subclasses must override."""
        raise NotImplementedError(f"{type(self).__name__} must define row_values")

    def update_rows(self, items: tuple[Any, ...]) -> None:
        """Update the table with the items of a new snapshot."""
        table = self.query_one(DataTable)
        title = self.query_one(".table-title", Static)
        title.update(self.CAPTION if items else f"{self.CAPTION}: no data")

        new_keys = {self.row_key(item) for item in items}

        for key in self._current_keys - new_keys:
            try:
                table.remove_row(key)
            except Exception:
                pass  # Row may not exist

        written: set[str] = set()
        for item in items:
            key = self.row_key(item)
            try:
                values = self.row_values(item)
                if key in self._current_keys:
                    for (_, column, _), value in zip(self.COLUMNS, values):
                        table.update_cell(key, column, value)
                else:
                    table.add_row(*values, key=key)
            except Exception as exc:
                logger.debug("Failed to write row %s: %s", key, exc)
                if key not in self._current_keys:
                    continue  # Never added; retried on the next snapshot
            written.add(key)

        self._current_keys = written


class DiskTable(KeyedTable):
    """Per-filesystem usage, keyed by mountpoint."""

    CAPTION = "Disks"
    COLUMNS = [
        ("Mountpoint", "mountpoint", None),
        ("Total", "total", 12),
        ("Used", "used", 12),
        ("Available", "available", 12),
        ("Use%", "percent", 8),
    ]

    def row_key(self, item: DiskStats) -> str:
        return item.mountpoint

    def row_values(self, item: DiskStats) -> list[str]:
        color = LEVEL_COLORS[evaluate(item.percent, self._thresholds.disk)]
        return [
            item.mountpoint,
            format_bytes(item.total),
            format_bytes(item.used),
            format_bytes(item.available),
            f"[{color}]{item.percent:5.1f}[/{color}]",
        ]


class NetworkTable(KeyedTable):
    """Per-interface I/O, keyed by interface name."""

    CAPTION = "Network"
    COLUMNS = [
        ("Interface", "interface", None),
        ("Sent", "sent", 12),
        ("Received", "recv", 12),
        ("Send rate", "send_rate", 14),
        ("Recv rate", "recv_rate", 14),
    ]

    def row_key(self, item: NetworkStats) -> str:
        return item.interface

    def row_values(self, item: NetworkStats) -> list[str]:
        return [
            item.interface,
            format_bytes(item.bytes_sent),
            format_bytes(item.bytes_recv),
            format_rate(item.send_rate),
            format_rate(item.recv_rate),
        ]


class SysmonApp(App):
    """Main sysmon application."""

    TITLE = "sysmon"
    SUB_TITLE = "System Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }

    .table-title {
        text-style: bold;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        monitor: SystemMonitor | None = None,
        thresholds: Thresholds | None = None,
        metrics_logger: FileMetricsLogger | None = None,
    ) -> None:
        """
        Initialize the SysmonApp.

        Args:
            monitor: Monitor to consume; defaults to the native source at 1s.
            thresholds: Alert thresholds for coloring.
            metrics_logger: Receives every snapshot the app consumes.
        """
        super().__init__()
        self._monitor = monitor or SystemMonitor(Collector(new_stats_source()), interval=1.0)
        self._thresholds = thresholds or Thresholds()
        self._metrics_logger = metrics_logger
        self.snapshots_received = 0

    @property
    def monitor(self) -> SystemMonitor:
        return self._monitor

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(self._thresholds, id="header-stats")
        yield DiskTable(self._thresholds, id="disk-table")
        yield NetworkTable(self._thresholds, id="network-table")
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        self._monitor.start()
        # Poll at least twice per collection interval
        self.set_interval(min(0.5, self._monitor.interval / 2), self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the conduit and show the most recent snapshot."""
        snapshot = None
        while True:
            try:
                received = self._monitor.conduit.get_nowait()
            except (Empty, ConduitClosed):
                break
            self.snapshots_received += 1
            self._log_snapshot(received)
            snapshot = received

        if snapshot is not None:
            self._update_ui(snapshot)

    def _log_snapshot(self, snapshot: Snapshot) -> None:
        if self._metrics_logger is None:
            return
        try:
            self._metrics_logger.log_metrics(snapshot)
        except OSError as exc:
            logger.warning("Metrics log write failed: %s", exc)

    def _update_ui(self, snapshot: Snapshot) -> None:
        """Update the UI with the new snapshot."""
        try:
            self.query_one("#header-stats", HeaderStats).update_stats(snapshot)
            self.query_one(DiskTable).update_rows(snapshot.disk)
            self.query_one(NetworkTable).update_rows(snapshot.network)
        except Exception:
            # A rendering hiccup must not take the dashboard down
            logger.exception("Failed to update display")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()

"""Monitoring lifecycle: collector thread plus snapshot dispatch."""

import logging
import threading
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from sysmon.collector import Collector, StopReason, validate_interval
from sysmon.conduit import SnapshotConduit
from sysmon.models import Snapshot

logger = logging.getLogger(__name__)


@runtime_checkable
class Sink(Protocol):
    """Anything that consumes snapshots: renderers, metrics logs."""

    def render(self, snapshot: Snapshot) -> None: ...


class SystemMonitor:
    """
    Runs a Collector in a separate daemon thread.

    Snapshots arrive through ``conduit``; the consumer either polls it (the
    textual app) or calls ``dispatch`` to fan them out to sinks. Stopping sets
    the cancellation event, after which the collector closes the conduit.
    """

    def __init__(
        self,
        collector: Collector,
        interval: float = 1.0,
        capacity: int = 1,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            collector: Collector that owns the stats source.
            interval: Seconds between snapshots. Default 1.0s.
            capacity: Snapshots that may be buffered ahead of the consumer.

        Raises:
            ValueError: interval is out of range.
        """
        validate_interval(interval)
        self._collector = collector
        self._interval = interval
        self._conduit = SnapshotConduit(capacity)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.stop_reason: StopReason | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def conduit(self) -> SnapshotConduit:
        return self._conduit

    @property
    def is_running(self) -> bool:
        """Check if the collector thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the collector thread."""
        if self._thread is not None:
            return

        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the collector thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        self.stop_reason = self._collector.run(self._interval, self._conduit, self._stop_event)
        logger.debug("Collector stopped: %s", self.stop_reason.value)

    def dispatch(self, sinks: Iterable[Sink]) -> int:
        """
        Hand every snapshot to each sink until the conduit closes.

        A failing sink does not stop the others; the failure is logged and
        passed to every other sink that has a ``log_error`` method.

        Returns:
            Number of snapshots dispatched.
        """
        sinks = list(sinks)
        count = 0
        for snapshot in self._conduit:
            count += 1
            for sink in sinks:
                try:
                    sink.render(snapshot)
                except Exception as exc:
                    logger.warning("%s failed: %s", type(sink).__name__, exc)
                    for other in sinks:
                        log_error = getattr(other, "log_error", None)
                        if other is sink or log_error is None:
                            continue
                        try:
                            log_error(exc)
                        except Exception as log_exc:
                            logger.warning("%s failed to log error: %s", type(other).__name__, log_exc)
        return count

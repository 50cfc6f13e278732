"""Snapshot collection: one-shot sampling, network rates and the periodic loop."""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TypeVar

from sysmon.conduit import ConduitClosed, SnapshotConduit
from sysmon.models import CPUStats, MemoryStats, NetworkStats, Snapshot
from sysmon.stats import StatsSource

logger = logging.getLogger(__name__)

MAX_INTERVAL = 3600.0  # seconds

T = TypeVar("T")


class StopReason(Enum):
    """Why the periodic loop returned."""

    CANCELLED = "cancelled"
    CLOSED = "closed"  # The consumer closed the conduit


@dataclass(slots=True)
class RateState:
    """Network sample from the last successful network query."""

    previous_network: tuple[NetworkStats, ...] | None = None
    previous_timestamp: datetime | None = None


def _rate(current: int, previous: int, elapsed: float) -> float:
    # Counter reset or wrap: report 0 rather than a negative rate
    if current < previous:
        return 0.0
    return (current - previous) / elapsed


def compute_network_rates(
    previous: Sequence[NetworkStats],
    previous_timestamp: datetime,
    current: Sequence[NetworkStats],
    timestamp: datetime,
) -> tuple[NetworkStats, ...]:
    """
    Derive per-interface send/receive rates (bytes/s) between two samples.

    Interfaces absent from ``previous`` get rate 0, as does every interface
    when no time has elapsed. A counter that went backwards (interface reset,
    32-bit wrap) yields 0 for that direction; wraps are not reconstructed.
    """
    elapsed = (timestamp - previous_timestamp).total_seconds()
    if elapsed <= 0:
        return tuple(replace(net, send_rate=0.0, recv_rate=0.0) for net in current)

    by_name = {net.interface: net for net in previous}
    result = []
    for net in current:
        prev = by_name.get(net.interface)
        if prev is None:
            result.append(replace(net, send_rate=0.0, recv_rate=0.0))
            continue
        result.append(
            replace(
                net,
                send_rate=_rate(net.bytes_sent, prev.bytes_sent, elapsed),
                recv_rate=_rate(net.bytes_recv, prev.bytes_recv, elapsed),
            )
        )
    return tuple(result)


def validate_interval(interval: float) -> None:
    if not 0 < interval <= MAX_INTERVAL:
        raise ValueError(f"interval must be in (0, {MAX_INTERVAL:g}] seconds, got {interval!r}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Collector:
    """
    Samples a stats source into snapshots.

    The collector exclusively owns its source and its network rate state.
    Rate state is only replaced after a successful network query, so a failed
    cycle makes the next rate span the whole gap instead of being truncated.
    """

    def __init__(
        self,
        source: StatsSource,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the Collector.

        Args:
            source: Stats source to poll.
            clock: Returns the cycle timestamp. Defaults to the current UTC time.
        """
        self._source = source
        self._clock = clock or _utcnow
        self._rates = RateState()

    def collect_once(self) -> Snapshot:
        """Collect one snapshot. Subsystem failures leave that section empty."""
        timestamp = self._clock()
        cpu = self._query("CPU", self._source.query_cpu, CPUStats())
        memory = self._query("Memory", self._source.query_memory, MemoryStats())
        disk = self._query("Disk", self._source.query_disk, [])
        network = self._query("Network", self._source.query_network, None)

        if network is None:
            rated: tuple[NetworkStats, ...] = ()
        else:
            rated = self._update_rates(network, timestamp)

        return Snapshot(
            timestamp=timestamp,
            cpu=cpu,
            memory=memory,
            disk=tuple(disk),
            network=rated,
        )

    def _query(self, name: str, query: Callable[[], T], default: T) -> T:
        try:
            return query()
        except Exception as exc:
            logger.warning("%s collection failed: %s", name, exc)
            return default

    def _update_rates(
        self, network: Sequence[NetworkStats], timestamp: datetime
    ) -> tuple[NetworkStats, ...]:
        state = self._rates
        if state.previous_network is None or state.previous_timestamp is None:
            rated = tuple(replace(net, send_rate=0.0, recv_rate=0.0) for net in network)
        else:
            rated = compute_network_rates(
                state.previous_network, state.previous_timestamp, network, timestamp
            )
        state.previous_network = tuple(network)
        state.previous_timestamp = timestamp
        return rated

    def run(
        self,
        interval: float,
        output: SnapshotConduit,
        cancel: threading.Event,
    ) -> StopReason:
        """
        Collect and publish snapshots until cancelled.

        The first snapshot is collected immediately; later ones follow a fixed
        schedule of ``interval`` seconds that does not drift with collection
        time. Ticks missed while collecting or publishing collapse into a
        single tick handled right away. ``output`` is closed on return.

        Args:
            interval: Seconds between collections.
            output: Conduit to publish into; blocks while the consumer is behind.
            cancel: Stops the loop when set, whichever wait is pending.

        Raises:
            ValueError: ``interval`` is not in (0, MAX_INTERVAL].
        """
        validate_interval(interval)
        try:
            next_tick = time.monotonic()
            while True:
                if cancel.is_set():
                    return StopReason.CANCELLED
                snapshot = self.collect_once()
                try:
                    if not output.put(snapshot, cancel):
                        return StopReason.CANCELLED
                except ConduitClosed:
                    return StopReason.CLOSED

                next_tick += interval
                now = time.monotonic()
                if next_tick <= now:
                    missed = int((now - next_tick) // interval)
                    next_tick += missed * interval
                if cancel.wait(timeout=max(0.0, next_tick - now)):
                    return StopReason.CANCELLED
        finally:
            output.close()

"""Stats source interface shared by the native and mock sources."""

from abc import ABC, abstractmethod

from sysmon.models import CPUStats, DiskStats, MemoryStats, NetworkStats


class StatsSourceError(Exception):
    """A single subsystem query failed."""

    def __init__(self, subsystem: str, message: str) -> None:
        super().__init__(f"{subsystem}: {message}")
        self.subsystem = subsystem


class SourceUnavailableError(Exception):
    """No stats source can be constructed on this host."""


class StatsSource(ABC):
    """
    Capability interface over the four subsystem queries.

    Each query is independent: a failure (``StatsSourceError``) in one must not
    prevent calling the others. Implementations may keep private state between
    calls, e.g. the previous CPU tick counts needed to compute percentages.
    """

    @abstractmethod
    def query_cpu(self) -> CPUStats:
        """Return CPU utilisation. Without a prior baseline all values are 0.0."""

    @abstractmethod
    def query_memory(self) -> MemoryStats:
        """Return physical memory usage."""

    @abstractmethod
    def query_disk(self) -> list[DiskStats]:
        """Return usage per real filesystem, one entry per mountpoint."""

    @abstractmethod
    def query_network(self) -> list[NetworkStats]:
        """Return cumulative counters per non-loopback interface, rates at 0."""

"""Deterministic stats source for tests and demos."""

from collections import Counter

from sysmon.models import CPUStats, DiskStats, MemoryStats, NetworkStats
from sysmon.stats import StatsSource

GIB = 1024**3
MIB = 1024**2


class MockStatsSource(StatsSource):
    """
    Stats source returning fixed, mutable data.

    Setting ``cpu_error``, ``memory_error``, ``disk_error`` or ``network_error``
    to an exception makes only that query raise it.
    """

    def __init__(
        self,
        cpu: CPUStats | None = None,
        memory: MemoryStats | None = None,
        disk: list[DiskStats] | None = None,
        network: list[NetworkStats] | None = None,
    ) -> None:
        self.cpu = cpu if cpu is not None else CPUStats(overall=25.5, per_core=(20.0, 30.0, 25.0, 28.0))
        self.memory = memory if memory is not None else MemoryStats.from_used(16 * GIB, 8 * GIB)
        self.disk = disk if disk is not None else [DiskStats.from_used("/", 500 * GIB, 300 * GIB)]
        self.network = (
            network
            if network is not None
            else [NetworkStats(interface="eth0", bytes_sent=100 * MIB, bytes_recv=200 * MIB)]
        )
        self.cpu_error: Exception | None = None
        self.memory_error: Exception | None = None
        self.disk_error: Exception | None = None
        self.network_error: Exception | None = None
        self.calls: Counter[str] = Counter()

    def query_cpu(self) -> CPUStats:
        self.calls["cpu"] += 1
        if self.cpu_error is not None:
            raise self.cpu_error
        return self.cpu

    def query_memory(self) -> MemoryStats:
        self.calls["memory"] += 1
        if self.memory_error is not None:
            raise self.memory_error
        return self.memory

    def query_disk(self) -> list[DiskStats]:
        self.calls["disk"] += 1
        if self.disk_error is not None:
            raise self.disk_error
        return list(self.disk)

    def query_network(self) -> list[NetworkStats]:
        self.calls["network"] += 1
        if self.network_error is not None:
            raise self.network_error
        return list(self.network)

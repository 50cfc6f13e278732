"""Data models for sysmon."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def percentage(used: int, total: int) -> float:
    """Return ``used`` as a percentage of ``total``, or 0.0 when total is 0."""
    if total == 0:
        return 0.0
    return used / total * 100.0


def _clamp(value: int, total: int) -> int:
    return min(max(value, 0), total)


@dataclass(slots=True, frozen=True)
class CPUStats:
    """CPU utilisation. All values are percentages in [0, 100]."""

    overall: float = 0.0
    per_core: tuple[float, ...] = ()  # Index = logical core index


@dataclass(slots=True, frozen=True)
class MemoryStats:
    """Physical memory usage in bytes. ``total == used + available`` always holds."""

    total: int = 0
    used: int = 0
    available: int = 0
    percent: float = 0.0

    def __post_init__(self) -> None:
        if self.total != self.used + self.available:
            raise ValueError(
                f"memory total {self.total} != used {self.used} + available {self.available}"
            )

    @classmethod
    def from_used(cls, total: int, used: int) -> "MemoryStats":
        used = _clamp(used, total)
        return cls(total=total, used=used, available=total - used, percent=percentage(used, total))

    @classmethod
    def from_available(cls, total: int, available: int) -> "MemoryStats":
        return cls.from_used(total, total - _clamp(available, total))


@dataclass(slots=True, frozen=True)
class DiskStats:
    """Usage of one mounted filesystem, identified by its mountpoint."""

    mountpoint: str
    total: int
    used: int
    available: int
    percent: float

    def __post_init__(self) -> None:
        if self.total != self.used + self.available:
            raise ValueError(
                f"{self.mountpoint}: total {self.total} != "
                f"used {self.used} + available {self.available}"
            )

    @classmethod
    def from_used(cls, mountpoint: str, total: int, used: int) -> "DiskStats":
        used = _clamp(used, total)
        return cls(
            mountpoint=mountpoint,
            total=total,
            used=used,
            available=total - used,
            percent=percentage(used, total),
        )


@dataclass(slots=True, frozen=True)
class NetworkStats:
    """Cumulative I/O counters of one interface plus derived rates (bytes/s)."""

    interface: str
    bytes_sent: int
    bytes_recv: int
    send_rate: float = 0.0
    recv_rate: float = 0.0


@dataclass(slots=True, frozen=True)
class Snapshot:
    """One timestamped measurement of every subsystem.

    A section whose query failed keeps its zero value: ``CPUStats()``,
    ``MemoryStats()`` or an empty tuple.
    """

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cpu: CPUStats = field(default_factory=CPUStats)
    memory: MemoryStats = field(default_factory=MemoryStats)
    disk: tuple[DiskStats, ...] = ()
    network: tuple[NetworkStats, ...] = ()


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    """Convert a snapshot into a JSON-serialisable mapping."""
    return {
        "timestamp": snapshot.timestamp.isoformat(),
        "cpu": {
            "overall": snapshot.cpu.overall,
            "per_core": list(snapshot.cpu.per_core),
        },
        "memory": asdict(snapshot.memory),
        "disk": [asdict(disk) for disk in snapshot.disk],
        "network": [asdict(net) for net in snapshot.network],
    }

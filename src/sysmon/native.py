"""psutil-backed stats source for the running host."""

import logging
from typing import Any

import psutil

from sysmon.models import CPUStats, DiskStats, MemoryStats, NetworkStats
from sysmon.stats import SourceUnavailableError, StatsSource, StatsSourceError

logger = logging.getLogger(__name__)

# Virtual/pseudo filesystems that carry no real storage
PSEUDO_FILESYSTEMS = frozenset(
    {
        "autofs",
        "binfmt_misc",
        "bpf",
        "cgroup",
        "cgroup2",
        "configfs",
        "debugfs",
        "devfs",
        "devpts",
        "devtmpfs",
        "efivarfs",
        "fusectl",
        "hugetlbfs",
        "mqueue",
        "nsfs",
        "overlay",
        "proc",
        "pstore",
        "securityfs",
        "squashfs",
        "sysfs",
        "tmpfs",
        "tracefs",
    }
)

LOOPBACK_INTERFACES = frozenset({"lo", "lo0"})


def is_pseudo_filesystem(fstype: str) -> bool:
    """Check whether a filesystem type is virtual (proc, tmpfs, cgroup, ...)."""
    fstype = fstype.lower()
    return fstype in PSEUDO_FILESYSTEMS or fstype.startswith(("cgroup", "fuse."))


def is_loopback(interface: str) -> bool:
    """Check whether an interface name denotes the loopback device."""
    return interface in LOOPBACK_INTERFACES or interface.startswith("Loopback Pseudo-Interface")


def _tick_totals(times: Any) -> tuple[float, float]:
    """Return (total, idle) seconds for one psutil cpu_times entry."""
    total = sum(times)
    # guest time is already accounted for in user/nice on Linux
    total -= getattr(times, "guest", 0.0) + getattr(times, "guest_nice", 0.0)
    idle = times.idle + getattr(times, "iowait", 0.0)
    return total, idle


def busy_percent(previous: Any, current: Any) -> float:
    """Busy share of the ticks elapsed between two cpu_times samples, in [0, 100]."""
    prev_total, prev_idle = _tick_totals(previous)
    curr_total, curr_idle = _tick_totals(current)
    total_delta = curr_total - prev_total
    if total_delta <= 0:
        return 0.0
    busy_delta = total_delta - (curr_idle - prev_idle)
    return min(max(busy_delta / total_delta * 100.0, 0.0), 100.0)


class PsutilStatsSource(StatsSource):
    """
    Native stats source using psutil.

    psutil hides the per-OS counter plumbing (procfs on Linux, sysctl/mach on
    macOS, PDH on Windows). CPU percentages are computed from this instance's
    own tick baseline, so two sources never disturb each other.
    """

    def __init__(self) -> None:
        self._prev_total: Any = None
        self._prev_per_cpu: list[Any] | None = None

    def query_cpu(self) -> CPUStats:
        try:
            total = psutil.cpu_times()
            per_cpu = psutil.cpu_times(percpu=True)
        except (OSError, psutil.Error) as exc:
            raise StatsSourceError("cpu", str(exc)) from exc

        if self._prev_per_cpu is None or len(self._prev_per_cpu) != len(per_cpu):
            # No baseline yet (or CPUs went on/offline)
            stats = CPUStats(overall=0.0, per_core=tuple(0.0 for _ in per_cpu))
        else:
            stats = CPUStats(
                overall=busy_percent(self._prev_total, total),
                per_core=tuple(
                    busy_percent(prev, curr) for prev, curr in zip(self._prev_per_cpu, per_cpu)
                ),
            )

        self._prev_total = total
        self._prev_per_cpu = per_cpu
        return stats

    def query_memory(self) -> MemoryStats:
        try:
            mem = psutil.virtual_memory()
        except (OSError, psutil.Error) as exc:
            raise StatsSourceError("memory", str(exc)) from exc
        # Platforms report overlapping categories; used is the complement of available
        return MemoryStats.from_available(mem.total, mem.available)

    def query_disk(self) -> list[DiskStats]:
        try:
            partitions = psutil.disk_partitions(all=False)
        except (OSError, psutil.Error) as exc:
            raise StatsSourceError("disk", str(exc)) from exc

        disks: list[DiskStats] = []
        seen: set[str] = set()
        for part in partitions:
            if is_pseudo_filesystem(part.fstype) or part.mountpoint in seen:
                continue
            seen.add(part.mountpoint)
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except (OSError, psutil.Error) as exc:
                logger.debug("Skipping %s: %s", part.mountpoint, exc)
                continue
            # free excludes root-reserved blocks, so used + free is the user-visible total
            disks.append(DiskStats.from_used(part.mountpoint, usage.used + usage.free, usage.used))
        return disks

    def query_network(self) -> list[NetworkStats]:
        try:
            counters = psutil.net_io_counters(pernic=True)
        except (OSError, psutil.Error) as exc:
            raise StatsSourceError("network", str(exc)) from exc

        return [
            NetworkStats(interface=name, bytes_sent=io.bytes_sent, bytes_recv=io.bytes_recv)
            for name, io in counters.items()
            if not is_loopback(name)
        ]


def new_stats_source() -> StatsSource:
    """
    Create the native stats source for the running platform.

    Raises:
        SourceUnavailableError: psutil does not support this platform or its
            counters cannot be read at all.
    """
    if not (psutil.LINUX or psutil.MACOS or psutil.WINDOWS or psutil.BSD):
        raise SourceUnavailableError("unsupported operating system")
    source = PsutilStatsSource()
    try:
        # Prime the CPU baseline; also proves the counters are readable
        source.query_cpu()
    except StatsSourceError as exc:
        raise SourceUnavailableError(f"cannot read CPU counters: {exc}") from exc
    return source

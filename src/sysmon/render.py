"""Rendering helpers: threshold evaluation, byte formatting and JSON output."""

import json
from enum import Enum
from typing import TextIO

from sysmon.config import Thresholds
from sysmon.models import Snapshot, snapshot_to_dict

# Values above this share of a threshold are shown as a warning
WARN_RATIO = 0.8


class Level(Enum):
    """Display level of a percentage relative to its threshold."""

    OK = "ok"
    WARN = "warn"
    ALERT = "alert"


def evaluate(value: float, threshold: float) -> Level:
    """Classify a percentage against its alert threshold."""
    if value > threshold:
        return Level.ALERT
    if value > threshold * WARN_RATIO:
        return Level.WARN
    return Level.OK


def alerts(snapshot: Snapshot, thresholds: Thresholds) -> list[str]:
    """List the sections of a snapshot that exceed their thresholds."""
    found = []
    if snapshot.cpu.overall > thresholds.cpu:
        found.append(f"CPU {snapshot.cpu.overall:.1f}% > {thresholds.cpu:g}%")
    if snapshot.memory.percent > thresholds.memory:
        found.append(f"Memory {snapshot.memory.percent:.1f}% > {thresholds.memory:g}%")
    for disk in snapshot.disk:
        if disk.percent > thresholds.disk:
            found.append(f"Disk {disk.mountpoint} {disk.percent:.1f}% > {thresholds.disk:g}%")
    return found


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    if size < 1024:
        return f"{int(size)} B"
    for unit in ["K", "M", "G", "T", "P"]:
        size = size / 1024
        if size < 1024:
            return f"{size:.2f} {unit}B"
    return f"{size:.2f} PB"


def format_rate(rate: float) -> str:
    """Format a byte rate as human-readable string."""
    return f"{format_bytes(rate)}/s"


class JSONRenderer:
    """Writes one JSON object per snapshot, one per line."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def render(self, snapshot: Snapshot) -> None:
        self._stream.write(json.dumps(snapshot_to_dict(snapshot)) + "\n")
        self._stream.flush()

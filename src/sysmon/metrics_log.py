"""Append-only JSON-lines log of collected snapshots."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sysmon.models import Snapshot, snapshot_to_dict


class FileMetricsLogger:
    """
    Appends every snapshot (and sink errors) to a file as JSON lines.

    Entries look like ``{"timestamp": ..., "metrics": {...}}`` or
    ``{"timestamp": ..., "error": "..."}``.
    """

    def __init__(self, path: str | Path) -> None:
        """
        Open the log file for appending.

        Raises:
            OSError: The file cannot be opened.
        """
        self.path = Path(path)
        self._file = self.path.open("a", encoding="utf-8")

    def _write(self, entry: dict[str, Any]) -> None:
        self._file.write(json.dumps(entry) + "\n")
        self._file.flush()

    def log_metrics(self, snapshot: Snapshot) -> None:
        self._write(
            {
                "timestamp": snapshot.timestamp.isoformat(timespec="seconds"),
                "metrics": snapshot_to_dict(snapshot),
            }
        )

    # Dispatch sink interface
    render = log_metrics

    def log_error(self, error: BaseException) -> None:
        self._write(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
                "error": str(error),
            }
        )

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

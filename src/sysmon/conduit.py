"""Bounded, closeable hand-off between the collector thread and its consumer."""

import threading
import time
from collections import deque
from collections.abc import Iterator
from queue import Empty

from sysmon.models import Snapshot

# How often a blocked put() re-checks its cancellation event
CANCEL_CHECK_INTERVAL = 0.05


class ConduitClosed(Exception):
    """The conduit was closed; no more snapshots will arrive."""


class SnapshotConduit:
    """
    Single-producer/single-consumer channel with a fixed capacity.

    ``put`` blocks while the buffer is full, which is how a slow consumer
    applies backpressure to the producer. After ``close`` the consumer still
    drains buffered snapshots before ``get`` raises ``ConduitClosed``.
    """

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._items: deque[Snapshot] = deque()
        self._closed = False
        self._cond = threading.Condition()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def put(self, snapshot: Snapshot, cancel: threading.Event | None = None) -> bool:
        """
        Publish a snapshot, waiting for buffer space.

        Args:
            snapshot: The snapshot to hand off.
            cancel: Abandon the wait as soon as this event is set.

        Returns:
            True if published, False if cancelled while waiting.

        Raises:
            ConduitClosed: The conduit was closed.
        """
        with self._cond:
            while True:
                if self._closed:
                    raise ConduitClosed("put on closed conduit")
                if cancel is not None and cancel.is_set():
                    return False
                if len(self._items) < self._capacity:
                    break
                self._cond.wait(timeout=CANCEL_CHECK_INTERVAL if cancel is not None else None)
            self._items.append(snapshot)
            self._cond.notify_all()
            return True

    def get(self, timeout: float | None = None) -> Snapshot:
        """
        Receive the oldest buffered snapshot.

        Raises:
            Empty: Nothing arrived within ``timeout`` seconds.
            ConduitClosed: The conduit is closed and drained.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._items:
                if self._closed:
                    raise ConduitClosed("conduit closed")
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise Empty
                self._cond.wait(timeout=remaining)
            snapshot = self._items.popleft()
            self._cond.notify_all()
            return snapshot

    def get_nowait(self) -> Snapshot:
        return self.get(timeout=0)

    def close(self) -> None:
        """Close the conduit and wake every waiter. Closing twice is a no-op."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[Snapshot]:
        while True:
            try:
                yield self.get()
            except ConduitClosed:
                return

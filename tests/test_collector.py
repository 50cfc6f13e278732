"""Tests for the Collector class and network rate computation."""

import itertools
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from sysmon.collector import MAX_INTERVAL, Collector, StopReason, compute_network_rates
from sysmon.conduit import ConduitClosed, SnapshotConduit
from sysmon.models import CPUStats, MemoryStats, NetworkStats
from sysmon.stats import StatsSourceError

SUBSYSTEMS = ("cpu", "memory", "disk", "network")

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def net(interface: str, sent: int, recv: int) -> NetworkStats:
    return NetworkStats(interface=interface, bytes_sent=sent, bytes_recv=recv)


class TestCollectOnce:
    """Tests for Collector.collect_once."""

    def test_concrete_scenario(self, source, clock):
        """Test CPU and memory values flow into the snapshot."""
        source.memory = MemoryStats.from_used(16_000_000_000, 8_000_000_000)
        snapshot = Collector(source, clock=clock).collect_once()

        assert snapshot.timestamp == clock.now
        assert snapshot.cpu.overall == 25.5
        assert snapshot.cpu.per_core == (20.0, 30.0, 25.0, 28.0)
        assert snapshot.memory.percent == 50.0
        assert [d.mountpoint for d in snapshot.disk] == ["/"]
        assert [n.interface for n in snapshot.network] == ["eth0"]

    def test_sequences_are_tuples(self, source):
        """Test published sequences cannot be mutated by consumers."""
        snapshot = Collector(source).collect_once()
        assert isinstance(snapshot.disk, tuple)
        assert isinstance(snapshot.network, tuple)

    def test_default_clock_is_utc(self, source):
        """Test the default clock produces timezone-aware UTC timestamps."""
        snapshot = Collector(source).collect_once()
        assert snapshot.timestamp.tzinfo is not None
        assert snapshot.timestamp.utcoffset() == timedelta(0)

    @pytest.mark.parametrize(
        "failing",
        [
            combo
            for size in range(1, len(SUBSYSTEMS) + 1)
            for combo in itertools.combinations(SUBSYSTEMS, size)
        ],
        ids=lambda combo: "+".join(combo),
    )
    def test_partial_failure(self, source, failing):
        """Test failing subsystems are zeroed while the others are populated."""
        for name in failing:
            setattr(source, f"{name}_error", StatsSourceError(name, "permission denied"))

        snapshot = Collector(source).collect_once()

        expected_cpu = CPUStats() if "cpu" in failing else source.cpu
        expected_memory = MemoryStats() if "memory" in failing else source.memory
        assert snapshot.cpu == expected_cpu
        assert snapshot.memory == expected_memory
        assert snapshot.disk == (() if "disk" in failing else tuple(source.disk))
        if "network" in failing:
            assert snapshot.network == ()
        else:
            assert [n.interface for n in snapshot.network] == ["eth0"]

    def test_failure_is_logged(self, source, caplog):
        """Test a subsystem failure is reported as a warning diagnostic."""
        source.cpu_error = StatsSourceError("cpu", "permission denied")

        with caplog.at_level("WARNING", logger="sysmon.collector"):
            Collector(source).collect_once()

        assert "CPU collection failed" in caplog.text
        assert "permission denied" in caplog.text

    def test_unexpected_exception_does_not_abort(self, source):
        """Test a non-source exception still only degrades one section."""
        source.memory_error = RuntimeError("boom")

        snapshot = Collector(source).collect_once()

        assert snapshot.memory == MemoryStats()
        assert snapshot.cpu.overall == 25.5

    def test_all_queries_called_despite_failures(self, source):
        """Test every subsystem is queried even when earlier ones fail."""
        source.cpu_error = StatsSourceError("cpu", "x")
        source.memory_error = StatsSourceError("memory", "x")

        Collector(source).collect_once()

        assert all(source.calls[name] == 1 for name in SUBSYSTEMS)


class TestNetworkRates:
    """Tests for network rate derivation across cycles."""

    def test_first_sample_rates_are_zero(self, source):
        """Test the first network collection reports zero rates."""
        source.network = [
            NetworkStats(interface="eth0", bytes_sent=10, bytes_recv=20, send_rate=5.0, recv_rate=7.0),
            net("wlan0", 30, 40),
        ]

        snapshot = Collector(source).collect_once()

        assert all(n.send_rate == 0.0 and n.recv_rate == 0.0 for n in snapshot.network)

    def test_concrete_rate(self, source, clock):
        """Test 100,000 bytes sent over one second gives 100000.0 bytes/s."""
        collector = Collector(source, clock=clock)
        source.network = [net("eth0", 1_000_000, 5_000_000)]
        collector.collect_once()

        clock.advance(1.0)
        source.network = [net("eth0", 1_100_000, 5_250_000)]
        snapshot = collector.collect_once()

        assert snapshot.network[0].send_rate == 100000.0
        assert snapshot.network[0].recv_rate == 250000.0

    def test_failed_cycle_keeps_rate_state(self, source, clock):
        """Test a failed network cycle makes the next rate span the whole gap."""
        collector = Collector(source, clock=clock)
        source.network = [net("eth0", 0, 0)]
        collector.collect_once()

        clock.advance(1.0)
        source.network_error = StatsSourceError("network", "down")
        assert collector.collect_once().network == ()

        clock.advance(1.0)
        source.network_error = None
        source.network = [net("eth0", 4000, 2000)]
        snapshot = collector.collect_once()

        assert snapshot.network[0].send_rate == pytest.approx(2000.0)
        assert snapshot.network[0].recv_rate == pytest.approx(1000.0)

    def test_first_success_after_failures_is_zero(self, source, clock):
        """Test rates stay zero until a baseline exists."""
        collector = Collector(source, clock=clock)
        source.network_error = StatsSourceError("network", "down")
        collector.collect_once()

        clock.advance(1.0)
        source.network_error = None
        snapshot = collector.collect_once()

        assert snapshot.network[0].send_rate == 0.0

    def test_zero_elapsed_time(self, source, clock):
        """Test identical timestamps give zero rates, not NaN or Inf."""
        collector = Collector(source, clock=clock)
        source.network = [net("eth0", 0, 0)]
        collector.collect_once()

        source.network = [net("eth0", 500, 500)]
        snapshot = collector.collect_once()

        assert snapshot.network[0].send_rate == 0.0
        assert snapshot.network[0].recv_rate == 0.0


class TestComputeNetworkRates:
    """Tests for compute_network_rates."""

    @pytest.mark.parametrize(
        "b1,b2,elapsed",
        [(0, 0, 1.0), (1000, 3000, 2.0), (5, 6, 0.25), (10**12, 10**12 + 7, 3.5)],
    )
    def test_rate_law(self, b1, b2, elapsed):
        """Test rate equals (b2 - b1) / elapsed."""
        rated = compute_network_rates(
            [net("eth0", b1, b1)], T0, [net("eth0", b2, b2)], T0 + timedelta(seconds=elapsed)
        )
        assert rated[0].send_rate == pytest.approx((b2 - b1) / elapsed)
        assert rated[0].recv_rate == pytest.approx((b2 - b1) / elapsed)

    def test_counter_regression_clamps_to_zero(self):
        """Test a counter going backwards reports exactly 0."""
        rated = compute_network_rates(
            [net("eth0", 5000, 100)], T0, [net("eth0", 10, 600)], T0 + timedelta(seconds=1)
        )
        assert rated[0].send_rate == 0.0
        assert rated[0].recv_rate == 500.0

    def test_new_interface_gets_zero(self):
        """Test an interface missing from the previous sample gets rate 0."""
        rated = compute_network_rates(
            [net("eth0", 0, 0)],
            T0,
            [net("eth0", 100, 100), net("wg0", 9000, 9000)],
            T0 + timedelta(seconds=1),
        )
        assert [(n.interface, n.send_rate) for n in rated] == [("eth0", 100.0), ("wg0", 0.0)]

    def test_vanished_interface_is_dropped(self):
        """Test only current interfaces are reported."""
        rated = compute_network_rates(
            [net("eth0", 0, 0), net("eth1", 0, 0)], T0, [net("eth1", 10, 10)], T0 + timedelta(seconds=1)
        )
        assert [n.interface for n in rated] == ["eth1"]

    @pytest.mark.parametrize("elapsed", [0.0, -1.0])
    def test_non_positive_elapsed(self, elapsed):
        """Test zero or negative elapsed time yields zero rates."""
        rated = compute_network_rates(
            [net("eth0", 0, 0)], T0, [net("eth0", 100, 100)], T0 + timedelta(seconds=elapsed)
        )
        assert rated[0].send_rate == 0.0
        assert rated[0].recv_rate == 0.0

    def test_preserves_order_and_counters(self):
        """Test output keeps current order and cumulative counters."""
        current = [net("b", 2, 3), net("a", 4, 5)]
        rated = compute_network_rates([], T0, current, T0 + timedelta(seconds=1))
        assert [(n.interface, n.bytes_sent, n.bytes_recv) for n in rated] == [("b", 2, 3), ("a", 4, 5)]


class TestRun:
    """Tests for the periodic Collector.run loop."""

    def _start(self, collector, interval, conduit, cancel):
        result = {}

        def target():
            result["reason"] = collector.run(interval, conduit, cancel)

        thread = threading.Thread(target=target, daemon=True)
        thread.start()
        return thread, result

    @pytest.mark.parametrize("interval", [0, -1.0, MAX_INTERVAL + 1, float("nan")])
    def test_invalid_interval(self, source, interval):
        """Test an out-of-range interval is rejected before collecting."""
        with pytest.raises(ValueError):
            Collector(source).run(interval, SnapshotConduit(), threading.Event())
        assert source.calls["cpu"] == 0

    def test_first_snapshot_is_immediate(self, source):
        """Test the first snapshot is published without waiting for a tick."""
        conduit = SnapshotConduit()
        cancel = threading.Event()
        thread, _ = self._start(Collector(source), 10.0, conduit, cancel)

        try:
            snapshot = conduit.get(timeout=2.0)
            assert snapshot.cpu.overall == 25.5
        finally:
            cancel.set()
            thread.join(timeout=2.0)

    def test_periodicity(self, source):
        """Test about five snapshots arrive over five intervals, evenly spaced."""
        interval = 0.1
        conduit = SnapshotConduit()
        cancel = threading.Event()
        timer = threading.Timer(interval * 4.5, cancel.set)
        thread, result = self._start(Collector(source), interval, conduit, cancel)
        timer.start()

        snapshots = list(conduit)
        thread.join(timeout=2.0)
        timer.cancel()

        assert result["reason"] is StopReason.CANCELLED
        assert 4 <= len(snapshots) <= 6
        timestamps = [s.timestamp for s in snapshots]
        assert timestamps == sorted(timestamps)
        for earlier, later in zip(timestamps, timestamps[1:]):
            gap = (later - earlier).total_seconds()
            assert gap == pytest.approx(interval, abs=interval * 0.5)

    def test_cancel_while_blocked_on_publish(self, source):
        """Test cancellation interrupts a publish blocked by a slow consumer."""
        conduit = SnapshotConduit(capacity=1)
        cancel = threading.Event()
        thread, result = self._start(Collector(source), 0.01, conduit, cancel)

        # The first snapshot fills the buffer; the next put blocks
        deadline = time.monotonic() + 2.0
        while source.calls["cpu"] < 2 and time.monotonic() < deadline:
            time.sleep(0.01)

        cancel.set()
        thread.join(timeout=1.0)

        assert not thread.is_alive()
        assert result["reason"] is StopReason.CANCELLED
        assert conduit.closed
        conduit.get(timeout=0)  # The buffered snapshot is still delivered
        with pytest.raises(ConduitClosed):
            conduit.get(timeout=0)

    def test_cancel_while_waiting_for_tick(self, source):
        """Test cancellation interrupts the wait for the next tick."""
        conduit = SnapshotConduit()
        cancel = threading.Event()
        thread, result = self._start(Collector(source), 60.0, conduit, cancel)

        conduit.get(timeout=2.0)
        start = time.monotonic()
        cancel.set()
        thread.join(timeout=2.0)

        assert not thread.is_alive()
        assert time.monotonic() - start < 1.0
        assert result["reason"] is StopReason.CANCELLED
        assert list(conduit) == []

    def test_already_cancelled(self, source):
        """Test a pre-set cancellation publishes nothing and closes the conduit."""
        conduit = SnapshotConduit()
        cancel = threading.Event()
        cancel.set()

        reason = Collector(source).run(1.0, conduit, cancel)

        assert reason is StopReason.CANCELLED
        assert conduit.closed
        assert len(conduit) == 0

    def test_consumer_closed_conduit(self, source):
        """Test the loop stops when the consumer closes the conduit."""
        conduit = SnapshotConduit()
        conduit.close()

        reason = Collector(source).run(1.0, conduit, threading.Event())

        assert reason is StopReason.CLOSED

    def test_survives_failing_subsystems(self, source):
        """Test the loop keeps publishing while every subsystem fails."""
        for name in SUBSYSTEMS:
            setattr(source, f"{name}_error", StatsSourceError(name, "gone"))
        conduit = SnapshotConduit()
        cancel = threading.Event()
        thread, _ = self._start(Collector(source), 0.02, conduit, cancel)

        try:
            first = conduit.get(timeout=2.0)
            second = conduit.get(timeout=2.0)
            assert first.network == () and second.network == ()
            assert second.timestamp > first.timestamp
        finally:
            cancel.set()
            thread.join(timeout=2.0)

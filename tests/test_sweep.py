"""Tests for subnet sweeps."""

import asyncio

import pytest

from netscan._types import ProbeResult, ScanProgress
from netscan.sweep import SubnetSweeper, sweep_concurrency

HOSTS = [f"10.0.0.{i}" for i in range(1, 6)]


def probe_for(alive: set, calls: list):
    async def probe(ip):
        calls.append(ip)
        if ip in alive:
            return ProbeResult(alive=True, rtt_millis=1.0)
        return ProbeResult.dead()
    return probe


class TestSweepConcurrency:
    """Tests for worker pool sizing."""

    @pytest.mark.parametrize(
        "total,expected",
        [(2, 64), (254, 64), (256, 64), (257, 32), (1022, 32), (1024, 32), (1025, 16), (65534, 16)],
    )
    def test_tiers(self, total, expected):
        """Should scale concurrency with subnet size."""
        assert sweep_concurrency(total) == expected


class TestSubnetSweeper:
    """Tests for SubnetSweeper.run."""

    @pytest.mark.asyncio
    async def test_streams_alive_hosts(self):
        """Should report alive hosts and count skipped ones as scanned."""
        calls, found, updates = [], [], []
        sweeper = SubnetSweeper(on_progress=updates.append)

        async def on_alive(ip, result):
            found.append(ip)

        alive = await sweeper.run(
            "test",
            HOSTS,
            probe_for({"10.0.0.2", "10.0.0.4"}, calls),
            on_alive,
            skip=lambda ip: ip == "10.0.0.1",
        )

        assert alive == 2
        assert sorted(found) == ["10.0.0.2", "10.0.0.4"]
        assert "10.0.0.1" not in calls
        assert len(calls) == 4
        assert sweeper.progress == ScanProgress(phase="test", scanned=5, total=5)
        assert updates[0] == ScanProgress(phase="test", scanned=0, total=5)
        assert len(updates) == 6

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        """Should probe nothing once cancelled."""
        calls = []
        event = asyncio.Event()
        event.set()
        sweeper = SubnetSweeper(cancel_event=event)

        alive = await sweeper.run("test", HOSTS, probe_for(set(HOSTS), calls), _noop)

        assert alive == 0
        assert calls == []
        assert sweeper.progress.scanned == 0

    @pytest.mark.asyncio
    async def test_cancel_event_stops_workers(self):
        """Workers check the cancel event before each host."""
        event = asyncio.Event()
        calls = []

        async def probe(ip):
            calls.append(ip)
            event.set()
            return ProbeResult.dead()

        sweeper = SubnetSweeper(cancel_event=event)
        await sweeper.run("test", HOSTS, probe, _noop, concurrency=1)

        assert calls == ["10.0.0.1"]

    @pytest.mark.asyncio
    async def test_probe_failure_does_not_abort(self):
        """Should continue after a probe raises."""
        calls = []

        async def probe(ip):
            calls.append(ip)
            if ip == "10.0.0.3":
                raise RuntimeError("boom")
            return ProbeResult(alive=True)

        sweeper = SubnetSweeper()
        alive = await sweeper.run("test", HOSTS, probe, _noop)

        assert alive == 4
        assert len(calls) == 5
        assert sweeper.progress.scanned == 5

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self):
        """Should propagate task cancellation."""
        async def probe(ip):
            await asyncio.sleep(10)
            return ProbeResult.dead()

        sweeper = SubnetSweeper()
        task = asyncio.create_task(sweeper.run("test", HOSTS, probe, _noop))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_empty_host_list(self):
        sweeper = SubnetSweeper()
        assert await sweeper.run("test", [], probe_for(set(), []), _noop) == 0
        assert sweeper.progress == ScanProgress(phase="test", scanned=0, total=0)


class FakeTCPProber:
    def __init__(self, alive):
        self.alive = alive
        self.calls = []

    async def probe_any(self, ip, ports, timeout=None):
        self.calls.append((ip, tuple(ports), timeout))
        return ProbeResult(alive=ip in self.alive, rtt_millis=2.0 if ip in self.alive else None)


class FakeICMPProber:
    def __init__(self, alive):
        self.alive = alive
        self.calls = []

    async def probe(self, ip, timeout=None):
        self.calls.append(ip)
        return ProbeResult(alive=ip in self.alive)


class TestPhases:
    """Tests for the TCP and ICMP sweep phases."""

    @pytest.mark.asyncio
    async def test_tcp_sweep(self):
        prober = FakeTCPProber({"10.0.0.3"})
        found = []

        async def on_alive(ip, result):
            found.append((ip, result.rtt_millis))

        sweeper = SubnetSweeper()
        await sweeper.tcp_sweep(HOSTS, prober, [80, 443], on_alive, timeout=0.2)

        assert found == [("10.0.0.3", 2.0)]
        assert ("10.0.0.1", (80, 443), 0.2) in prober.calls
        assert sweeper.progress.phase == "tcp_sweep"

    @pytest.mark.asyncio
    async def test_icmp_sweep_skips(self):
        """Should skip hosts in the ICMP phase too."""
        prober = FakeICMPProber({"10.0.0.5"})
        found = []

        async def on_alive(ip, result):
            found.append(ip)

        sweeper = SubnetSweeper()
        await sweeper.icmp_sweep(HOSTS, prober, on_alive, skip=lambda ip: ip != "10.0.0.5")

        assert prober.calls == ["10.0.0.5"]
        assert found == ["10.0.0.5"]
        assert sweeper.progress == ScanProgress(phase="icmp_sweep", scanned=5, total=5)


async def _noop(ip, result):
    return None

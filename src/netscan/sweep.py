"""
Subnet-wide liveness sweeps.

A fixed pool of worker tasks drains a queue of host addresses. Each alive
host is handed to the caller as soon as it is found, so discovery results
stream into the registry instead of arriving in one batch at the end.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ._types import ProbeResult, ScanProgress
from .liveness import ICMPProber, TCPProber

logger = logging.getLogger(__name__)

ICMP_CONCURRENCY = 16

ProbeFn = Callable[[str], Awaitable[ProbeResult]]
AliveCallback = Callable[[str, ProbeResult], Awaitable[None]]
ProgressCallback = Callable[[ScanProgress], None]
SkipFn = Callable[[str], bool]


def sweep_concurrency(total: int) -> int:
    """Worker count for a sweep over `total` hosts."""
    if total <= 256:
        return 64
    if total <= 1024:
        return 32
    return 16


class SubnetSweeper:
    """Runs probe sweeps over a host list with a bounded worker pool."""

    def __init__(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.cancel_event = cancel_event or asyncio.Event()
        self.on_progress = on_progress
        self.progress: Optional[ScanProgress] = None

    def _report(self, phase: str, scanned: int, total: int) -> None:
        self.progress = ScanProgress(phase=phase, scanned=scanned, total=total)
        if self.on_progress:
            self.on_progress(self.progress)

    async def run(
        self,
        phase: str,
        hosts: list[str],
        probe: ProbeFn,
        on_alive: AliveCallback,
        skip: Optional[SkipFn] = None,
        concurrency: Optional[int] = None,
    ) -> int:
        """
        Probe every host not skipped. Returns the number found alive.

        Skipped hosts still count as scanned. Cancellation is checked before
        each host; a failure probing one host is logged and the sweep goes on.
        """
        total = len(hosts)
        concurrency = concurrency or sweep_concurrency(total)
        queue: asyncio.Queue[str] = asyncio.Queue()
        for host in hosts:
            queue.put_nowait(host)

        scanned = 0
        alive = 0
        self._report(phase, scanned, total)

        async def worker() -> None:
            nonlocal scanned, alive
            while not self.cancel_event.is_set():
                try:
                    ip = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    if skip is None or not skip(ip):
                        result = await probe(ip)
                        if result.alive:
                            alive += 1
                            await on_alive(ip, result)
                except Exception as e:
                    logger.warning(f"{phase}: probing {ip} failed: {e}")
                scanned += 1
                self._report(phase, scanned, total)

        workers = [asyncio.create_task(worker()) for _ in range(min(concurrency, total))]
        try:
            await asyncio.gather(*workers)
        except asyncio.CancelledError:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        logger.info(f"{phase} sweep: {alive} alive, {scanned}/{total} scanned")
        return alive

    async def tcp_sweep(
        self,
        hosts: list[str],
        prober: TCPProber,
        ports: list[int],
        on_alive: AliveCallback,
        skip: Optional[SkipFn] = None,
        timeout: Optional[float] = None,
    ) -> int:
        return await self.run(
            "tcp_sweep",
            hosts,
            lambda ip: prober.probe_any(ip, ports, timeout),
            on_alive,
            skip=skip,
        )

    async def icmp_sweep(
        self,
        hosts: list[str],
        prober: ICMPProber,
        on_alive: AliveCallback,
        skip: Optional[SkipFn] = None,
        concurrency: int = ICMP_CONCURRENCY,
    ) -> int:
        return await self.run(
            "icmp_sweep",
            hosts,
            prober.probe,
            on_alive,
            skip=skip,
            concurrency=concurrency,
        )

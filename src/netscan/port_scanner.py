"""
TCP connect port scanner.

Probes a short curated port list on one host. Only a completed connect
counts as open; a refusal is a closed port here, not a live-host signal.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Optional, Protocol

from ._types import Port, PortStatus, Service, ServiceType
from .services import PORT_NAMES, entry_for_port, service_for_port

logger = logging.getLogger(__name__)

COMMON_PORTS = [21, 22, 23, 25, 53, 80, 110, 143, 443, 993, 995]

DEFAULT_TIMEOUT = 0.75
DEFAULT_CONCURRENCY = 8


class PortScanning(Protocol):
    """Anything that can scan one host and report its open ports."""

    async def scan(self) -> list[Port]:
        ...


PortScannerFactory = Callable[[str], PortScanning]


def describe_port(number: int) -> Port:
    """Open Port record with its curated name and description."""
    entry = entry_for_port(number)
    name = PORT_NAMES.get(number) or (entry.display_name.lower() if entry else "unknown")
    return Port(
        number=number,
        service_name=name,
        description=entry.description if entry else "",
        status=PortStatus.OPEN,
    )


def services_for_ports(ports: Iterable[Port]) -> list[Service]:
    """Services implied by open ports; ports with no known service are skipped."""
    services = []
    for port in ports:
        service = service_for_port(port.number, port.service_name)
        if service.type != ServiceType.UNKNOWN:
            services.append(service)
    return services


class PortScanner:
    """Bounded-concurrency TCP connect scan of a single host."""

    def __init__(
        self,
        host: str,
        ports: Optional[list[int]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        self.host = host
        self.ports = list(COMMON_PORTS if ports is None else ports)
        self.timeout = timeout
        self.concurrency = max(1, concurrency)

    async def _check(self, port: int) -> Optional[Port]:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, port), self.timeout
            )
        except (OSError, asyncio.TimeoutError):
            return None

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return describe_port(port)

    async def scan(self) -> list[Port]:
        """Return open ports sorted by number."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(port: int) -> Optional[Port]:
            async with semaphore:
                return await self._check(port)

        results = await asyncio.gather(*(bounded(p) for p in self.ports))
        open_ports = sorted((p for p in results if p is not None), key=lambda p: p.number)

        logger.debug(f"{self.host}: {len(open_ports)} open of {len(self.ports)} probed")
        return open_ports

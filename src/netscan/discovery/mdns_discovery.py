"""
Multicast DNS (Bonjour) discovery.

Browses DNS-SD service types with zeroconf's asyncio API, resolves every
instance and reports the IPv4 hosts behind them together with the services
they advertise.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from zeroconf import (
    BadTypeInNameException,
    Error as ZeroconfError,
    IPVersion,
    ServiceStateChange,
    service_type_name,
)
from zeroconf.asyncio import (
    AsyncServiceBrowser,
    AsyncServiceInfo,
    AsyncZeroconf,
    AsyncZeroconfServiceTypes,
)

from .. import addressing
from .._types import DiscoverySource, Service, ServiceType
from ..services import service_type_for_mdns
from .base import DiscoveredHost, DiscoveryMethod

logger = logging.getLogger(__name__)

# Used when the DNS-SD meta query finds nothing
SEED_SERVICE_TYPES = [
    "_http._tcp.local.",
    "_https._tcp.local.",
    "_ssh._tcp.local.",
    "_sftp-ssh._tcp.local.",
    "_smb._tcp.local.",
    "_afpovertcp._tcp.local.",
    "_device-info._tcp.local.",
    "_airplay._tcp.local.",
    "_raop._tcp.local.",
    "_ipp._tcp.local.",
    "_ipps._tcp.local.",
    "_printer._tcp.local.",
    "_pdl-datastream._tcp.local.",
    "_googlecast._tcp.local.",
    "_hap._tcp.local.",
    "_ftp._tcp.local.",
    "_workstation._tcp.local.",
    "_rfb._tcp.local.",
    "_companion-link._tcp.local.",
    "_sleep-proxy._udp.local.",
]


def instance_label(name: str, service_type: str) -> str:
    """'Office Printer._ipp._tcp.local.' -> 'Office Printer'."""
    suffix = "." + service_type
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name


def clean_hostname(server: Optional[str]) -> Optional[str]:
    if not server:
        return None
    return server.rstrip(".") or None


def valid_service_types(service_types) -> list[str]:
    """Drop names zeroconf would reject when browsing."""
    valid = []
    for service_type in service_types:
        try:
            service_type_name(service_type, strict=False)
        except BadTypeInNameException:
            logger.debug(f"Ignoring malformed service type {service_type!r}")
            continue
        valid.append(service_type)
    return valid


class ResolvedHosts:
    """Accumulates resolved instances into per-IP hostname and services."""

    def __init__(self):
        self.hostnames: dict[str, Optional[str]] = {}
        self.services: dict[str, dict[tuple, Service]] = {}

    def add(
        self,
        addresses: list[str],
        server: Optional[str],
        service_type: str,
        instance: str,
        port: Optional[int],
    ) -> None:
        """
        Record one resolved instance.

        Service types with no canonical mapping are dropped, but the host
        itself is still recorded.
        """
        mapped = service_type_for_mdns(service_type)
        hostname = clean_hostname(server)

        for ip in addresses:
            if addressing.parse(ip) is None:
                continue
            if not self.hostnames.get(ip):
                self.hostnames[ip] = hostname
            bucket = self.services.setdefault(ip, {})
            if mapped == ServiceType.UNKNOWN:
                continue
            service = Service(name=instance_label(instance, service_type), type=mapped, port=port)
            bucket.setdefault(service.key, service)

    def hosts(self) -> list[DiscoveredHost]:
        return [
            DiscoveredHost(
                ip_address=ip,
                source=DiscoverySource.MDNS,
                hostname=self.hostnames.get(ip),
                services=list(self.services.get(ip, {}).values()),
            )
            for ip in self.hostnames
        ]


class MulticastServiceBrowser(DiscoveryMethod):
    """Discover hosts advertising services over multicast DNS."""

    def __init__(
        self,
        timeout: float = 4.0,
        type_discovery_timeout: float = 1.0,
        resolve_timeout: float = 3.0,
        service_types: Optional[list[str]] = None,
        zeroconf_factory: Optional[Callable[[], AsyncZeroconf]] = None,
    ):
        """
        Args:
            timeout: Browse window (seconds)
            type_discovery_timeout: Window for the DNS-SD meta query
            resolve_timeout: Per-instance resolution timeout
            service_types: Fixed type list; skips type discovery when given
            zeroconf_factory: Builds the AsyncZeroconf instance
        """
        self.browse_timeout = timeout
        self.type_discovery_timeout = type_discovery_timeout
        self.resolve_timeout = resolve_timeout
        self.service_types = service_types
        self._zeroconf_factory = zeroconf_factory or (
            lambda: AsyncZeroconf(ip_version=IPVersion.V4Only)
        )
        self.timeout = type_discovery_timeout + timeout + resolve_timeout

    @property
    def name(self) -> str:
        return "mdns"

    @property
    def source(self) -> DiscoverySource:
        return DiscoverySource.MDNS

    async def discover_service_types(self, aiozc: AsyncZeroconf) -> list[str]:
        """Enumerate advertised service types, falling back to the seed list."""
        if self.service_types:
            return valid_service_types(self.service_types)

        try:
            found = await AsyncZeroconfServiceTypes.async_find(
                aiozc=aiozc, timeout=self.type_discovery_timeout
            )
        except (OSError, ZeroconfError) as e:
            logger.warning(f"mDNS type discovery failed: {e}")
            found = ()
        found = valid_service_types(found)

        if not found:
            logger.debug("No service types advertised, using seed list")
            return list(SEED_SERVICE_TYPES)

        logger.debug(f"mDNS advertised {len(found)} service types")
        return sorted(found)

    async def _resolve(
        self,
        aiozc: AsyncZeroconf,
        service_type: str,
        name: str,
        results: ResolvedHosts,
    ) -> None:
        try:
            info = AsyncServiceInfo(service_type, name)
            resolved = await info.async_request(aiozc.zeroconf, int(self.resolve_timeout * 1000))
        except (OSError, ZeroconfError) as e:
            logger.debug(f"Failed to resolve {name}: {e}")
            return
        if not resolved:
            logger.debug(f"No answer resolving {name}")
            return

        results.add(
            addresses=info.parsed_addresses(IPVersion.V4Only),
            server=info.server,
            service_type=service_type,
            instance=name,
            port=info.port,
        )

    async def discover(self) -> list[DiscoveredHost]:
        results = ResolvedHosts()
        pending: set[asyncio.Task] = set()

        try:
            aiozc = self._zeroconf_factory()
        except OSError as e:
            logger.error(f"Cannot start mDNS: {e}")
            return []

        try:
            service_types = await self.discover_service_types(aiozc)

            def on_service_state_change(zeroconf, service_type, name, state_change):
                if state_change not in (ServiceStateChange.Added, ServiceStateChange.Updated):
                    return
                task = asyncio.ensure_future(self._resolve(aiozc, service_type, name, results))
                pending.add(task)
                task.add_done_callback(pending.discard)

            browser = AsyncServiceBrowser(
                aiozc.zeroconf, service_types, handlers=[on_service_state_change]
            )
            try:
                await asyncio.sleep(self.browse_timeout)
                if pending:
                    await asyncio.wait(list(pending), timeout=self.resolve_timeout)
            finally:
                await browser.async_cancel()
                for task in list(pending):
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        except (OSError, ZeroconfError) as e:
            logger.error(f"mDNS browse failed: {e}")
        finally:
            await aiozc.async_close()

        hosts = results.hosts()
        logger.info(f"mDNS discovery found {len(hosts)} hosts")
        return hosts

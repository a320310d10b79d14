"""
SSDP (UPnP) discovery.

Multicasts M-SEARCH requests and reports the host of every LOCATION header
that comes back.
"""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable, Optional

from .. import addressing
from .._types import DiscoverySource
from ._multicast import Reply, send_and_collect
from .base import DiscoveredHost, DiscoveryMethod

logger = logging.getLogger(__name__)

SSDP_ADDR = "239.255.255.250"
SSDP_PORT = 1900
SSDP_MX = 3

DEFAULT_SEARCH_TARGETS = ["ssdp:all", "upnp:rootdevice"]

# Host part of scheme://host[:port]/..., bracketed or not
_URL_HOST = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://(\[[^\]]*\]|[^/:?#\s]+)")

Collector = Callable[[str, int, list[bytes], float], Awaitable[list[Reply]]]


def build_msearch(search_target: str, mx: int = SSDP_MX) -> bytes:
    return (
        "M-SEARCH * HTTP/1.1\r\n"
        f"HOST: {SSDP_ADDR}:{SSDP_PORT}\r\n"
        'MAN: "ssdp:discover"\r\n'
        f"MX: {mx}\r\n"
        f"ST: {search_target}\r\n"
        "\r\n"
    ).encode()


def strip_zone(host: str) -> str:
    """Drop an interface zone suffix ('192.168.1.5%en0' -> '192.168.1.5')."""
    return host.split("%", 1)[0]


def host_from_url(url: str) -> Optional[str]:
    """IPv4 host of a URL, or None."""
    match = _URL_HOST.match(url.strip())
    if not match:
        return None
    host = strip_zone(match.group(1).strip("[]"))
    return host if addressing.parse(host) is not None else None


def parse_location_host(response: str) -> Optional[str]:
    """Host of the LOCATION header of an SSDP response (name is case-insensitive)."""
    for line in response.splitlines():
        name, sep, value = line.partition(":")
        if not sep:
            continue
        if name.strip().lower() == "location":
            return host_from_url(value)
    return None


class SSDPProbe(DiscoveryMethod):
    """Discover UPnP devices with SSDP M-SEARCH."""

    def __init__(
        self,
        timeout: float = 3.5,
        search_targets: Optional[list[str]] = None,
        collector: Collector = send_and_collect,
    ):
        """
        Args:
            timeout: Listen window after sending (seconds)
            search_targets: ST values, one request each
            collector: Multicast send/collect coroutine
        """
        self.timeout = timeout
        self.search_targets = search_targets or list(DEFAULT_SEARCH_TARGETS)
        self._collect = collector

    @property
    def name(self) -> str:
        return "ssdp"

    @property
    def source(self) -> DiscoverySource:
        return DiscoverySource.SSDP

    async def discover(self) -> list[DiscoveredHost]:
        payloads = [build_msearch(st) for st in self.search_targets]

        try:
            replies = await self._collect(SSDP_ADDR, SSDP_PORT, payloads, self.timeout)
        except OSError as e:
            logger.error(f"SSDP search failed: {e}")
            return []

        seen: dict[str, DiscoveredHost] = {}
        for data, addr in replies:
            host = parse_location_host(data.decode(errors="replace"))
            if host is None:
                logger.debug(f"SSDP reply from {addr[0]} has no usable LOCATION")
                continue
            if host not in seen:
                seen[host] = DiscoveredHost(ip_address=host, source=DiscoverySource.SSDP)

        logger.info(f"SSDP discovery found {len(seen)} hosts")
        return list(seen.values())

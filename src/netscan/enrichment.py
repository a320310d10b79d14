"""
Optional host enrichment run after the discovery phases.

- ReverseDNSResolver: PTR lookup for hosts that never announced a name
- HTTPInfoGatherer: fetch the landing page of a web port and pull out the
  server banner, page title and vendor hints

Both are best effort: any failure yields None and the scan carries on.
"""

from __future__ import annotations

import asyncio
import logging
import re
import socket
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

import aiohttp

if TYPE_CHECKING:
    from .registry import DeviceRegistry

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 64 * 1024

_TITLE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
_MAC = re.compile(r"\b([0-9A-Fa-f]{2}(?:[:-][0-9A-Fa-f]{2}){5})\b")

# Body markers -> (vendor, device kind)
CONTENT_VENDORS = (
    ("Synology", "Synology", "NAS"),
    ("QNAP", "QNAP", "NAS"),
    ("Ubiquiti", "Ubiquiti", "Network Device"),
)


class ReverseDNSResolver:
    """PTR lookups through the system resolver."""

    def __init__(self, timeout: float = 2.0):
        self.timeout = timeout

    async def resolve(self, ip: str) -> Optional[str]:
        loop = asyncio.get_running_loop()
        try:
            host, _ = await asyncio.wait_for(
                loop.getnameinfo((ip, 0), socket.NI_NAMEREQD), self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Reverse lookup failed for {ip}: {e}")
            return None

        host = host.rstrip(".")
        if not host or host == ip:
            return None
        return host


@dataclass
class HTTPInfo:
    """What a device's web interface says about itself."""
    server_header: Optional[str] = None
    powered_by_header: Optional[str] = None
    content_type: Optional[str] = None
    title: Optional[str] = None
    device_info: dict[str, str] = field(default_factory=dict)
    mac_address: Optional[str] = None
    vendor: Optional[str] = None

    def fingerprints(self) -> dict[str, str]:
        result = {}
        if self.server_header:
            result["http_server"] = self.server_header
        if self.powered_by_header:
            result["http_powered_by"] = self.powered_by_header
        if self.title:
            result["http_title"] = self.title
        for key, value in self.device_info.items():
            result.setdefault(f"http_{key}", value)
        return result


def extract_title(html: str) -> Optional[str]:
    match = _TITLE.search(html)
    if not match:
        return None
    return match.group(1).strip() or None


def extract_mac(headers: dict[str, str], body: str) -> Optional[str]:
    for key, value in headers.items():
        lowered = key.lower()
        if "mac" in lowered or "hardware" in lowered:
            match = _MAC.search(value)
            if match:
                return match.group(1).lower().replace("-", ":")
    match = _MAC.search(body)
    return match.group(1).lower().replace("-", ":") if match else None


def build_http_info(headers: dict[str, str], body: str) -> HTTPInfo:
    """Interpret response headers (case-insensitive) and body."""
    lowered = {k.lower(): v for k, v in headers.items()}
    info = HTTPInfo(
        server_header=lowered.get("server"),
        powered_by_header=lowered.get("x-powered-by"),
        content_type=lowered.get("content-type"),
        title=extract_title(body),
        mac_address=extract_mac(headers, body),
    )

    server = info.server_header or ""
    if server:
        info.device_info["server"] = server
    if "RouterOS" in server:
        info.device_info["device_type"] = "MikroTik Router"
        info.vendor = "MikroTik"
    elif "nginx" in server or "Apache" in server:
        info.device_info["web_server"] = server
    elif "lighttpd" in server:
        info.device_info["web_server"] = "lighttpd"

    for marker, vendor, kind in CONTENT_VENDORS:
        if marker in body:
            info.device_info.setdefault("device_type", kind)
            info.vendor = info.vendor or vendor
            break

    return info


class HTTPInfoGatherer:
    """Fetches a device's landing page with aiohttp."""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    @staticmethod
    def url_for(host: str, port: int = 80, use_https: bool = False) -> str:
        scheme = "https" if use_https else "http"
        default = 443 if use_https else 80
        return f"{scheme}://{host}" if port == default else f"{scheme}://{host}:{port}"

    async def gather(self, host: str, port: int = 80, use_https: bool = False) -> Optional[HTTPInfo]:
        url = self.url_for(host, port, use_https)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                # Embedded devices ship self-signed certificates
                async with session.get(url, ssl=False) as response:
                    raw = await response.content.read(MAX_BODY_BYTES)
                    headers = dict(response.headers)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug(f"HTTP probe of {url} failed: {e}")
            return None

        info = build_http_info(headers, raw.decode("utf-8", errors="replace"))
        logger.debug(
            f"Gathered HTTP info for {host}:{port}: server={info.server_header}, vendor={info.vendor}"
        )
        return info


WEB_PORTS = ((80, False), (8080, False), (443, True), (8443, True))


class HostEnricher:
    """Runs the enrichment lookups over every online device in a registry."""

    def __init__(
        self,
        resolver: Optional[ReverseDNSResolver] = None,
        http_gatherer: Optional[HTTPInfoGatherer] = None,
        concurrency: int = 8,
    ):
        self.resolver = resolver
        self.http_gatherer = http_gatherer
        self.concurrency = max(1, concurrency)

    async def _enrich_one(self, registry: "DeviceRegistry", ip: str) -> None:
        device = registry.get(ip)
        if device is None:
            return

        hostname = None
        if self.resolver is not None and not device.hostname:
            hostname = await self.resolver.resolve(ip)

        manufacturer = None
        mac_address = None
        fingerprints: dict[str, str] = {}
        if self.http_gatherer is not None:
            for port, use_https in WEB_PORTS:
                if port not in device.open_ports:
                    continue
                info = await self.http_gatherer.gather(ip, port, use_https)
                if info is None:
                    continue
                fingerprints.update(info.fingerprints())
                manufacturer = manufacturer or info.vendor
                mac_address = info.mac_address
                break

        if hostname or manufacturer or mac_address or fingerprints:
            await registry.annotate(
                ip,
                hostname=hostname,
                manufacturer=manufacturer,
                fingerprints=fingerprints,
                mac_address=mac_address,
            )

    async def enrich(self, registry: "DeviceRegistry") -> None:
        targets = sorted(registry.online_ips())
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(ip: str) -> None:
            async with semaphore:
                try:
                    await self._enrich_one(registry, ip)
                except Exception as e:
                    logger.warning(f"Enrichment of {ip} failed: {e}")

        await asyncio.gather(*(bounded(ip) for ip in targets))
        logger.info(f"Enriched {len(targets)} online hosts")

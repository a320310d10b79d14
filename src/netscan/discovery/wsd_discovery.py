"""
WS-Discovery.

Multicasts a SOAP Probe and collects the transport addresses (XAddrs) from
every ProbeMatch. Printers, scanners and Windows hosts answer this even when
they stay silent on mDNS and SSDP.
"""

from __future__ import annotations

import logging
import re
import uuid
import xml.etree.ElementTree as ET
from typing import Optional

from .._types import DiscoverySource
from ._multicast import send_and_collect
from .base import DiscoveredHost, DiscoveryMethod
from .ssdp_discovery import Collector, host_from_url

logger = logging.getLogger(__name__)

WSD_ADDR = "239.255.255.250"
WSD_PORT = 3702

PROBE_TEMPLATE = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<e:Envelope xmlns:e="http://www.w3.org/2003/05/soap-envelope" '
    'xmlns:w="http://schemas.xmlsoap.org/ws/2004/08/addressing" '
    'xmlns:d="http://schemas.xmlsoap.org/ws/2005/04/discovery">'
    "<e:Header>"
    "<w:MessageID>{message_id}</w:MessageID>"
    "<w:To>urn:schemas-xmlsoap-org:ws:2005:04:discovery</w:To>"
    "<w:Action>http://schemas.xmlsoap.org/ws/2005/04/discovery/Probe</w:Action>"
    "</e:Header>"
    "<e:Body><d:Probe><d:Types/></d:Probe></e:Body>"
    "</e:Envelope>"
)

_XADDRS_TEXT = re.compile(r"<(?:[\w.-]+:)?XAddrs\s*>(.*?)</(?:[\w.-]+:)?XAddrs\s*>", re.DOTALL)


def build_probe(message_id: Optional[str] = None) -> bytes:
    """SOAP 1.2 Probe envelope with a fresh uuid: MessageID."""
    message_id = message_id or f"uuid:{uuid.uuid4()}"
    return PROBE_TEMPLATE.format(message_id=message_id).encode("utf-8")


def _xaddrs_values(payload: str) -> list[str]:
    try:
        root = ET.fromstring(payload)
    except ET.ParseError:
        # Some stacks send slightly broken XML; scan the text instead
        return [m.group(1) for m in _XADDRS_TEXT.finditer(payload)]

    values = []
    for element in root.iter():
        tag = element.tag
        local = tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""
        if local == "XAddrs" and element.text:
            values.append(element.text)
    return values


def parse_xaddrs_hosts(payload: bytes | str) -> list[str]:
    """IPv4 hosts of every XAddrs URL in a ProbeMatch, in order, deduplicated."""
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")

    hosts: list[str] = []
    for value in _xaddrs_values(payload):
        for url in value.split():
            host = host_from_url(url)
            if host and host not in hosts:
                hosts.append(host)
    return hosts


class WSDiscoveryProbe(DiscoveryMethod):
    """Discover devices that answer WS-Discovery probes."""

    def __init__(self, timeout: float = 2.5, collector: Collector = send_and_collect):
        self.timeout = timeout
        self._collect = collector

    @property
    def name(self) -> str:
        return "ws-discovery"

    @property
    def source(self) -> DiscoverySource:
        return DiscoverySource.WS_DISCOVERY

    async def discover(self) -> list[DiscoveredHost]:
        try:
            replies = await self._collect(WSD_ADDR, WSD_PORT, [build_probe()], self.timeout)
        except OSError as e:
            logger.error(f"WS-Discovery probe failed: {e}")
            return []

        seen: dict[str, DiscoveredHost] = {}
        for data, addr in replies:
            hosts = parse_xaddrs_hosts(data)
            if not hosts:
                logger.debug(f"Dropping WS-Discovery reply from {addr[0]}")
                continue
            for host in hosts:
                seen.setdefault(
                    host, DiscoveredHost(ip_address=host, source=DiscoverySource.WS_DISCOVERY)
                )

        logger.info(f"WS-Discovery found {len(seen)} hosts")
        return list(seen.values())

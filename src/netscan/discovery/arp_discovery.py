"""
ARP neighbor table discovery.

Reads the local ARP cache to find recently-seen hosts on the network.
Fast but limited to hosts that have communicated recently.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .. import addressing
from .._types import ARPEntry, DiscoverySource
from ..vendor import normalize_mac
from .base import DiscoveredHost, DiscoveryMethod

logger = logging.getLogger(__name__)

ARP_COMMAND = ("arp", "-an")


def parse_arp_line(line: str) -> Optional[ARPEntry]:
    """
    Parse one `arp -an` line.

    Linux: ? (192.168.1.1) at aa:bb:cc:dd:ee:ff [ether] on eth0
    macOS: ? (192.168.1.1) at 0:50:56:c0:0:8 on en0 ifscope [ethernet]

    Lines without an IP, a valid MAC or an interface yield None.
    """
    tokens = line.split()
    ip_address = None
    mac_address = None
    interface = None

    for i, token in enumerate(tokens):
        if token.startswith("(") and token.endswith(")") and ip_address is None:
            ip_address = token[1:-1]
        elif token == "at" and i + 1 < len(tokens):
            mac_address = normalize_mac(tokens[i + 1])
        elif token == "on" and i + 1 < len(tokens):
            interface = tokens[i + 1]

    if not ip_address or addressing.parse(ip_address) is None:
        return None
    if not mac_address or not interface:
        return None

    return ARPEntry(ip_address=ip_address, mac_address=mac_address, interface=interface)


def parse_arp_output(output: str) -> list[ARPEntry]:
    entries = []
    for line in output.splitlines():
        if not line.strip():
            continue
        entry = parse_arp_line(line)
        if entry is None:
            logger.debug(f"Dropping ARP line: {line!r}")
            continue
        entries.append(entry)
    return entries


class NeighborTableReader(DiscoveryMethod):
    """
    Discover hosts from the ARP cache.

    This is a fast, passive discovery method that finds hosts
    that have communicated with this machine recently.
    """

    def __init__(self, timeout: float = 5.0):
        """
        Args:
            timeout: Ceiling for the arp subprocess (seconds)
        """
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "arp"

    @property
    def source(self) -> DiscoverySource:
        return DiscoverySource.ARP

    async def is_available(self) -> bool:
        """Check if the arp command is available."""
        try:
            result = await asyncio.create_subprocess_exec(
                "which", "arp",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            await result.wait()
            return result.returncode == 0
        except OSError:
            return False

    async def read_table(self) -> list[ARPEntry]:
        """Run `arp -an` and parse every valid row."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *ARP_COMMAND,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Cannot run arp: {e}")
            return []

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"arp did not finish within {self.timeout}s")
            return []
        except asyncio.CancelledError:
            proc.kill()
            raise

        if proc.returncode != 0:
            logger.error(f"ARP command failed: {stderr.decode(errors='replace').strip()}")
            return []

        return parse_arp_output(stdout.decode(errors="replace"))

    async def mac_for(self, ip: str) -> Optional[str]:
        """MAC address currently cached for ip, if any."""
        for entry in await self.read_table():
            if entry.ip_address == ip:
                return entry.mac_address
        return None

    async def discover(self) -> list[DiscoveredHost]:
        entries = await self.read_table()
        hosts = [
            DiscoveredHost(
                ip_address=entry.ip_address,
                source=DiscoverySource.ARP,
                mac_address=entry.mac_address,
                passive=True,
            )
            for entry in entries
        ]
        logger.info(f"ARP discovery found {len(hosts)} hosts")
        return hosts

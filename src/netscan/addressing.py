"""
IPv4 address arithmetic and local interface detection.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
from typing import Optional

import psutil

from ._types import NetworkInfo

logger = logging.getLogger(__name__)

_ALL_ONES = 0xFFFFFFFF

LOOPBACK_NAMES = frozenset({"localhost", "::1"})

RFC1918_NETWORKS = (
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
)


def parse(text: str) -> Optional[ipaddress.IPv4Address]:
    """Parse a dotted-quad string, returning None when malformed."""
    if not isinstance(text, str):
        return None
    try:
        return ipaddress.IPv4Address(text)
    except ValueError:
        return None


def to_string(address: ipaddress.IPv4Address) -> str:
    return str(address)


def network(ip: ipaddress.IPv4Address, mask: ipaddress.IPv4Address) -> ipaddress.IPv4Address:
    return ipaddress.IPv4Address(int(ip) & int(mask))


def broadcast(ip: ipaddress.IPv4Address, mask: ipaddress.IPv4Address) -> ipaddress.IPv4Address:
    return ipaddress.IPv4Address(int(ip) | (~int(mask) & _ALL_ONES))


def hosts(net: ipaddress.IPv4Address, mask: ipaddress.IPv4Address) -> list[ipaddress.IPv4Address]:
    """
    Usable host range [network+1, broadcast-1].

    Prefix lengths of 31 and 32 have no usable hosts and yield an empty list.
    """
    start = int(net) + 1
    end = (int(net) | (~int(mask) & _ALL_ONES)) - 1
    if end < start:
        return []
    return [ipaddress.IPv4Address(raw) for raw in range(start, end + 1)]


def netmask_prefix(mask: ipaddress.IPv4Address) -> int:
    """Count set bits in the netmask."""
    return bin(int(mask)).count("1")


def contains(net: ipaddress.IPv4Address, mask: ipaddress.IPv4Address, ip: ipaddress.IPv4Address) -> bool:
    return (int(ip) & int(mask)) == int(net)


def is_loopback(ip: str) -> bool:
    if ip in LOOPBACK_NAMES:
        return True
    parsed = parse(ip)
    return parsed is not None and parsed.is_loopback


def is_rfc1918(ip: ipaddress.IPv4Address) -> bool:
    # ipaddress.is_private also covers TEST-NET and benchmarking ranges
    return any(ip in net for net in RFC1918_NETWORKS)


def network_info(ip: str, netmask: str, interface: Optional[str] = None) -> Optional[NetworkInfo]:
    """Build a NetworkInfo snapshot from address strings."""
    parsed_ip = parse(ip)
    parsed_mask = parse(netmask)
    if parsed_ip is None or parsed_mask is None:
        logger.warning(f"Cannot build network info from ip={ip!r} netmask={netmask!r}")
        return None

    return NetworkInfo(
        local_ip=to_string(parsed_ip),
        netmask=to_string(parsed_mask),
        cidr=netmask_prefix(parsed_mask),
        network=to_string(network(parsed_ip, parsed_mask)),
        broadcast=to_string(broadcast(parsed_ip, parsed_mask)),
        interface=interface,
    )


def host_range(info: NetworkInfo) -> list[str]:
    """Usable host addresses of a NetworkInfo as strings."""
    mask = parse(info.netmask)
    net = parse(info.network)
    if mask is None or net is None:
        return []
    return [to_string(a) for a in hosts(net, mask)]


def in_subnet(info: NetworkInfo, ip: str) -> bool:
    parsed = parse(ip)
    net = parse(info.network)
    mask = parse(info.netmask)
    if parsed is None or net is None or mask is None:
        return False
    return contains(net, mask, parsed)


def detect_network_info(interface: Optional[str] = None) -> Optional[NetworkInfo]:
    """
    Detect the active IPv4 interface.

    Skips loopback and down interfaces. Prefers the first RFC1918 address,
    otherwise the first IPv4 interface found.
    """
    try:
        addrs = psutil.net_if_addrs()
        stats = psutil.net_if_stats()
    except (OSError, RuntimeError) as e:
        logger.error(f"Failed to enumerate network interfaces: {e}")
        return None

    candidates: list[NetworkInfo] = []
    for name, entries in addrs.items():
        if interface and name != interface:
            continue
        stat = stats.get(name)
        if stat is not None and not stat.isup:
            continue
        for entry in entries:
            if entry.family != socket.AF_INET or not entry.netmask:
                continue
            parsed = parse(entry.address)
            if parsed is None or parsed.is_loopback or parsed.is_link_local:
                continue
            info = network_info(entry.address, entry.netmask, interface=name)
            if info is None:
                continue
            if is_rfc1918(parsed):
                logger.info(f"Using private interface {name}: {info}")
                return info
            candidates.append(info)

    if candidates:
        logger.info(f"No private interface found, using {candidates[0]}")
        return candidates[0]

    logger.warning("Could not detect an active IPv4 interface")
    return None

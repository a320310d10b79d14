"""
Discovery methods for the network scanner.

Each method discovers hosts through a different mechanism:
- ARP: Read the local neighbor table (fast, recently active hosts)
- mDNS: Browse multicast DNS service advertisements
- SSDP: UPnP M-SEARCH responders
- WS-Discovery: SOAP probe responders (printers, Windows hosts)
"""

from .base import DiscoveredHost, DiscoveryMethod
from .arp_discovery import NeighborTableReader, parse_arp_line, parse_arp_output
from .mdns_discovery import MulticastServiceBrowser
from .ssdp_discovery import SSDPProbe, parse_location_host
from .wsd_discovery import WSDiscoveryProbe, build_probe, parse_xaddrs_hosts

__all__ = [
    "DiscoveredHost",
    "DiscoveryMethod",
    "NeighborTableReader",
    "MulticastServiceBrowser",
    "SSDPProbe",
    "WSDiscoveryProbe",
    "parse_arp_line",
    "parse_arp_output",
    "parse_location_host",
    "build_probe",
    "parse_xaddrs_hosts",
]

"""
netscan - LAN subnet discovery and device classification.

Finds every reachable host on the local IPv4 subnet by combining several
discovery mechanisms, since no single one reaches every device:
    - ARP neighbor table, mDNS/Bonjour, SSDP and WS-Discovery probes
    - TCP connect sweep with an ICMP echo fallback
    - Per-host port scan of a short curated port list

Observations are merged into one record per IP under a source priority
policy, and each record is classified (router, printer, tv, ...) with a
confidence score.
"""

__version__ = "1.0.0"

from ._types import (
    Device,
    DeviceSnapshot,
    DeviceType,
    DiscoverySource,
    NetworkInfo,
    Port,
    ScanProgress,
    ScanReport,
    Service,
    ServiceType,
)
from .config import ScannerConfig
from .orchestrator import ScanOrchestrator
from .registry import DeviceRegistry

__all__ = [
    "__version__",
    "Device",
    "DeviceSnapshot",
    "DeviceType",
    "DiscoverySource",
    "NetworkInfo",
    "Port",
    "ScanProgress",
    "ScanReport",
    "Service",
    "ServiceType",
    "ScannerConfig",
    "ScanOrchestrator",
    "DeviceRegistry",
]

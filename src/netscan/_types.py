"""
Type definitions for the network scanner.

These dataclasses define the core domain model for subnet discovery,
device merging and classification.
"""

from __future__ import annotations

import ipaddress
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def now_utc() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def ip_sort_key(ip: str) -> tuple[int, int, str]:
    """Sort key giving numeric IPv4 order; unparsable strings sort last."""
    try:
        return (0, int(ipaddress.IPv4Address(ip)), "")
    except ValueError:
        return (1, 0, ip)


class DeviceType(str, Enum):
    """Device classification types."""
    ROUTER = "router"
    COMPUTER = "computer"
    LAPTOP = "laptop"
    TV = "tv"
    PRINTER = "printer"
    GAME_CONSOLE = "game_console"
    PLAYSTATION = "playstation"
    PHONE = "phone"
    TABLET = "tablet"
    UNKNOWN = "unknown"


class DiscoverySource(str, Enum):
    """How the device was discovered."""
    MDNS = "mdns"                  # Multicast DNS / Bonjour
    ARP = "arp"                    # Neighbor table
    PING = "ping"                  # TCP sweep or ICMP echo
    SSDP = "ssdp"                  # UPnP M-SEARCH
    WS_DISCOVERY = "ws-discovery"  # WS-Discovery probe
    UNKNOWN = "unknown"


class ServiceType(str, Enum):
    """Canonical service types."""
    HTTP = "http"
    HTTPS = "https"
    SSH = "ssh"
    DNS = "dns"
    DHCP = "dhcp"
    SMB = "smb"
    CHROMECAST = "chromecast"
    FTP = "ftp"
    PRINTER = "printer"
    AIRPLAY = "airplay"
    SSDP = "ssdp"
    MDNS = "mdns"
    UNKNOWN = "unknown"


class PortStatus(str, Enum):
    """State of a probed port."""
    OPEN = "open"
    CLOSED = "closed"
    FILTERED = "filtered"


@dataclass(frozen=True)
class NetworkInfo:
    """Snapshot of the active IPv4 interface, recomputed on each scan."""
    local_ip: str
    netmask: str
    cidr: int
    network: str
    broadcast: str
    interface: Optional[str] = None

    @property
    def key(self) -> str:
        """Snapshot store key for this subnet."""
        return f"{self.network}/{self.cidr}"

    def __str__(self) -> str:
        return f"NetworkInfo(ip={self.local_ip}, network={self.network}/{self.cidr})"


@dataclass(frozen=True)
class Port:
    """A probed TCP port. Identity is the port number."""
    number: int
    service_name: str = "unknown"
    description: str = ""
    status: PortStatus = PortStatus.OPEN


@dataclass(frozen=True)
class Service:
    """
    A service offered by a device.

    Identity is (type, port): HTTP on 80 and HTTP on 8080 are distinct.
    """
    name: str
    type: ServiceType
    port: Optional[int] = None

    @property
    def key(self) -> tuple[ServiceType, Optional[int]]:
        return (self.type, self.port)

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type.value, "port": self.port}

    @classmethod
    def from_dict(cls, data: dict) -> "Service":
        try:
            service_type = ServiceType(data.get("type", "unknown"))
        except ValueError:
            service_type = ServiceType.UNKNOWN
        return cls(
            name=data.get("name", ""),
            type=service_type,
            port=data.get("port"),
        )


@dataclass(frozen=True)
class ARPEntry:
    """A neighbor table row, consumed once per scan."""
    ip_address: str
    mac_address: str
    interface: str


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a liveness probe."""
    alive: bool
    rtt_millis: Optional[float] = None

    @classmethod
    def dead(cls) -> "ProbeResult":
        return cls(alive=False)


@dataclass(frozen=True)
class ScanProgress:
    """Progress of one scan phase."""
    phase: str
    scanned: int
    total: int


@dataclass
class DeviceSnapshot:
    """Persisted view of a device, keyed per subnet in the snapshot store."""
    id: str
    ip: str
    first_seen: datetime
    last_seen: datetime
    mac: Optional[str] = None
    hostname: Optional[str] = None
    vendor: Optional[str] = None
    device_type: Optional[str] = None
    name: Optional[str] = None
    services: list[Service] = field(default_factory=list)
    discovery_source: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ip": self.ip,
            "mac": self.mac,
            "hostname": self.hostname,
            "vendor": self.vendor,
            "device_type": self.device_type,
            "name": self.name,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "services": [s.to_dict() for s in self.services],
            "discovery_source": self.discovery_source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DeviceSnapshot":
        return cls(
            id=data["id"],
            ip=data["ip"],
            mac=data.get("mac"),
            hostname=data.get("hostname"),
            vendor=data.get("vendor"),
            device_type=data.get("device_type"),
            name=data.get("name"),
            first_seen=datetime.fromisoformat(data["first_seen"]),
            last_seen=datetime.fromisoformat(data["last_seen"]),
            services=[Service.from_dict(s) for s in data.get("services", [])],
            discovery_source=data.get("discovery_source"),
        )


@dataclass
class Device:
    """
    A discovered network device.

    During a live scan the id is the IP address. Liveness fields are
    last-writer-wins; hostname, MAC and manufacturer are enrichment fields
    written only while empty; ports and services only ever grow.
    """
    ip_address: str
    id: str = ""
    name: str = ""
    discovery_source: DiscoverySource = DiscoverySource.UNKNOWN
    hostname: Optional[str] = None
    mac_address: Optional[str] = None
    manufacturer: Optional[str] = None
    device_type: DeviceType = DeviceType.UNKNOWN
    is_online: bool = False
    services: dict[tuple[ServiceType, Optional[int]], Service] = field(default_factory=dict)
    open_ports: dict[int, Port] = field(default_factory=dict)
    first_seen: datetime = field(default_factory=now_utc)
    last_seen: datetime = field(default_factory=now_utc)
    confidence: Optional[float] = None
    fingerprints: dict[str, str] = field(default_factory=dict)
    rtt_millis: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.id:
            self.id = self.ip_address
        if not self.name:
            self.name = self.ip_address

    @property
    def port_numbers(self) -> list[int]:
        return sorted(self.open_ports)

    def merge_ports(self, ports) -> bool:
        """Union-merge ports keyed by number. Returns True if any were added."""
        added = False
        for port in ports:
            if port.number not in self.open_ports:
                self.open_ports[port.number] = port
                added = True
        return added

    def merge_services(self, services) -> bool:
        """Union-merge services keyed by (type, port). Returns True if any were added."""
        added = False
        for service in services:
            if service.key not in self.services:
                self.services[service.key] = service
                added = True
        return added

    def display_services(self) -> list[Service]:
        """Discovery services plus port-derived services, deduplicated and ordered."""
        from .services import service_for_port

        merged: dict[tuple[ServiceType, Optional[int]], Service] = {}
        port_derived = [service_for_port(p.number, p.service_name) for p in self.open_ports.values()]
        for service in list(self.services.values()) + port_derived:
            if service.type == ServiceType.UNKNOWN:
                continue
            existing = merged.get(service.key)
            # Prefer the more descriptive name
            if existing is None or len(service.name) > len(existing.name):
                merged[service.key] = service
        return sorted(merged.values(), key=lambda s: (s.type.value, s.port or 0))

    def to_snapshot(self) -> DeviceSnapshot:
        return DeviceSnapshot(
            id=self.id,
            ip=self.ip_address,
            mac=self.mac_address,
            hostname=self.hostname,
            vendor=self.manufacturer,
            device_type=self.device_type.value,
            name=self.name,
            first_seen=self.first_seen,
            last_seen=self.last_seen,
            services=list(self.services.values()),
            discovery_source=self.discovery_source.value,
        )


@dataclass
class ScanReport:
    """Result of a subnet scan."""
    scan_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    network: Optional[str] = None
    started_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None

    # Results
    devices: list[Device] = field(default_factory=list)
    progress: Optional[ScanProgress] = None
    methods_used: list[str] = field(default_factory=list)

    # Status
    status: str = "running"  # running, completed, cancelled, failed
    error_message: Optional[str] = None

    @property
    def devices_found(self) -> int:
        return len(self.devices)

    @property
    def online_count(self) -> int:
        return sum(1 for d in self.devices if d.is_online)

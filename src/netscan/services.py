"""
Service catalog.

Canonical metadata for well-known services and the lookup tables that map
port numbers and multicast DNS service types onto a ServiceType. The same
tables are used by the port scanner, the mDNS browser and the registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ._types import Service, ServiceType


@dataclass(frozen=True)
class CatalogEntry:
    """Metadata for one well-known service."""
    key: ServiceType
    display_name: str
    description: str
    default_ports: tuple[int, ...]


CATALOG: tuple[CatalogEntry, ...] = (
    CatalogEntry(ServiceType.HTTP, "HTTP", "Web Server", (80, 8080, 8008)),
    CatalogEntry(ServiceType.HTTPS, "HTTPS", "Secure Web Server", (443, 8443)),
    CatalogEntry(ServiceType.SSH, "SSH", "Secure Shell", (22,)),
    CatalogEntry(ServiceType.DNS, "DNS", "Domain Name Service", (53,)),
    CatalogEntry(ServiceType.SMB, "SMB", "File Sharing", (445, 139)),
    CatalogEntry(ServiceType.DHCP, "DHCP", "Address Assignment", (67, 68)),
    CatalogEntry(ServiceType.CHROMECAST, "Chromecast", "Media Cast", (8009,)),
    CatalogEntry(ServiceType.FTP, "FTP", "File Transfer Protocol", (21,)),
    CatalogEntry(ServiceType.PRINTER, "IPP", "Printing", (631, 9100, 515)),
)

# Curated names for the port scanner's default list
PORT_NAMES: dict[int, str] = {
    21: "ftp",
    22: "ssh",
    23: "telnet",
    25: "smtp",
    53: "dns",
    80: "http",
    110: "pop3",
    143: "imap",
    443: "https",
    993: "imaps",
    995: "pop3s",
}

# Substring -> type, checked in order (first match wins)
MDNS_TYPE_MAP: tuple[tuple[str, ServiceType], ...] = (
    ("_https._tcp", ServiceType.HTTPS),
    ("_http._tcp", ServiceType.HTTP),
    ("_ssh._tcp", ServiceType.SSH),
    ("_sftp-ssh._tcp", ServiceType.SSH),
    ("_smb._tcp", ServiceType.SMB),
    ("_afpovertcp._tcp", ServiceType.SMB),
    ("_googlecast._tcp", ServiceType.CHROMECAST),
    ("_raop._tcp", ServiceType.AIRPLAY),
    ("_airplay._tcp", ServiceType.AIRPLAY),
    ("_ipp._tcp", ServiceType.PRINTER),
    ("_ipps._tcp", ServiceType.PRINTER),
    ("_printer._tcp", ServiceType.PRINTER),
    ("_pdl-datastream._tcp", ServiceType.PRINTER),
    ("_ftp._tcp", ServiceType.FTP),
    ("_dns", ServiceType.DNS),
)


def entry_for_port(port: int) -> Optional[CatalogEntry]:
    for entry in CATALOG:
        if port in entry.default_ports:
            return entry
    return None


def entry_for_type(service_type: ServiceType) -> Optional[CatalogEntry]:
    for entry in CATALOG:
        if entry.key == service_type:
            return entry
    return None


def service_type_for_port(port: int) -> ServiceType:
    """Map a port number to a canonical service type."""
    entry = entry_for_port(port)
    return entry.key if entry else ServiceType.UNKNOWN


def service_type_for_mdns(service_type: str) -> ServiceType:
    """Map an mDNS type string (e.g. "_http._tcp.local.") to a service type."""
    lowered = service_type.lower()
    for fragment, mapped in MDNS_TYPE_MAP:
        if fragment in lowered:
            return mapped
    return ServiceType.UNKNOWN


def service_for_port(port: int, name: Optional[str] = None) -> Service:
    """Build the Service a responding port implies."""
    service_type = service_type_for_port(port)
    if not name or name == "unknown":
        entry = entry_for_type(service_type)
        name = entry.display_name if entry else PORT_NAMES.get(port, "unknown")
    return Service(name=name, type=service_type, port=port)

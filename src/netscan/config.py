"""
Network scanner configuration.

Defaults suit a typical home network. Values can be overridden from
environment variables (NETSCAN_*) or from a YAML file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_PORT_SCAN_PORTS = [21, 22, 23, 25, 53, 80, 110, 143, 443, 993, 995]

# Ports tried in order by the subnet sweep; first answer wins
DEFAULT_SWEEP_PORTS = [
    80, 443, 22, 445, 139, 53, 3389, 8080,
    8008, 8009, 8443, 5357, 554, 9100, 62078,
]

DEFAULT_SSDP_SEARCH_TARGETS = ["ssdp:all", "upnp:rootdevice"]


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


def _int_list(value: str) -> list[int]:
    return [int(p.strip()) for p in value.split(",") if p.strip()]


@dataclass
class ScannerConfig:
    """Network scanner configuration."""

    # Interface to scan (None = auto-detect)
    interface: Optional[str] = None

    # Discovery methods
    enable_mdns: bool = True
    enable_arp: bool = True
    enable_ssdp: bool = True
    enable_ws_discovery: bool = True
    enable_icmp_fallback: bool = True

    # Per-probe timeouts (seconds)
    mdns_timeout: float = 4.0
    mdns_type_discovery_timeout: float = 1.0
    mdns_resolve_timeout: float = 3.0
    ssdp_timeout: float = 3.5
    ws_discovery_timeout: float = 2.5
    arp_timeout: float = 5.0

    ssdp_search_targets: list[str] = field(
        default_factory=lambda: list(DEFAULT_SSDP_SEARCH_TARGETS)
    )

    # Liveness sweeps
    tcp_probe_timeout: float = 0.4
    sweep_ports: list[int] = field(default_factory=lambda: list(DEFAULT_SWEEP_PORTS))
    icmp_timeout: float = 1.0
    icmp_concurrency: int = 16

    # Port scanning
    port_scan_ports: list[int] = field(default_factory=lambda: list(DEFAULT_PORT_SCAN_PORTS))
    port_scan_timeout: float = 0.75
    port_scan_concurrency: int = 8

    # Discovery source priority table ("default" or "extended")
    source_policy: str = "default"

    # Enrichment
    enable_reverse_dns: bool = True
    reverse_dns_timeout: float = 2.0
    enable_http_info: bool = False
    http_info_timeout: float = 5.0

    # Persistence
    snapshot_db_path: Optional[Path] = None
    oui_csv_path: Optional[Path] = None

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ScannerConfig":
        """Load configuration from environment variables."""
        config = cls()

        config.interface = os.getenv("NETSCAN_INTERFACE") or None

        # Discovery methods
        config.enable_mdns = _env_bool("NETSCAN_ENABLE_MDNS", True)
        config.enable_arp = _env_bool("NETSCAN_ENABLE_ARP", True)
        config.enable_ssdp = _env_bool("NETSCAN_ENABLE_SSDP", True)
        config.enable_ws_discovery = _env_bool("NETSCAN_ENABLE_WSD", True)
        config.enable_icmp_fallback = _env_bool("NETSCAN_ENABLE_ICMP", True)

        # Timeouts
        config.mdns_timeout = float(os.getenv("NETSCAN_MDNS_TIMEOUT", "4.0"))
        config.ssdp_timeout = float(os.getenv("NETSCAN_SSDP_TIMEOUT", "3.5"))
        config.ws_discovery_timeout = float(os.getenv("NETSCAN_WSD_TIMEOUT", "2.5"))
        config.tcp_probe_timeout = float(os.getenv("NETSCAN_TCP_TIMEOUT", "0.4"))
        config.icmp_timeout = float(os.getenv("NETSCAN_ICMP_TIMEOUT", "1.0"))

        if ports := os.getenv("NETSCAN_PORT_SCAN_PORTS"):
            config.port_scan_ports = _int_list(ports)
        if ports := os.getenv("NETSCAN_SWEEP_PORTS"):
            config.sweep_ports = _int_list(ports)

        config.source_policy = os.getenv("NETSCAN_SOURCE_POLICY", "default")

        # Enrichment
        config.enable_reverse_dns = _env_bool("NETSCAN_REVERSE_DNS", True)
        config.enable_http_info = _env_bool("NETSCAN_HTTP_INFO", False)

        # Paths
        if db_path := os.getenv("NETSCAN_DB_PATH"):
            config.snapshot_db_path = Path(db_path)
        if oui_path := os.getenv("NETSCAN_OUI_CSV"):
            config.oui_csv_path = Path(oui_path)

        # Logging
        config.log_level = os.getenv("NETSCAN_LOG_LEVEL", "INFO")

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "ScannerConfig":
        """Load configuration from YAML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        config.interface = data.get("interface")

        if "discovery" in data:
            d = data["discovery"]
            config.enable_mdns = d.get("mdns", True)
            config.enable_arp = d.get("arp", True)
            config.enable_ssdp = d.get("ssdp", True)
            config.enable_ws_discovery = d.get("ws_discovery", True)
            config.enable_icmp_fallback = d.get("icmp_fallback", True)
            if "ssdp_search_targets" in d:
                config.ssdp_search_targets = list(d["ssdp_search_targets"])

        if "timeouts" in data:
            t = data["timeouts"]
            config.mdns_timeout = float(t.get("mdns", config.mdns_timeout))
            config.ssdp_timeout = float(t.get("ssdp", config.ssdp_timeout))
            config.ws_discovery_timeout = float(t.get("ws_discovery", config.ws_discovery_timeout))
            config.arp_timeout = float(t.get("arp", config.arp_timeout))
            config.tcp_probe_timeout = float(t.get("tcp_probe", config.tcp_probe_timeout))
            config.icmp_timeout = float(t.get("icmp", config.icmp_timeout))

        if "sweep" in data:
            s = data["sweep"]
            config.sweep_ports = list(s.get("ports", config.sweep_ports))
            config.icmp_concurrency = int(s.get("icmp_concurrency", config.icmp_concurrency))

        if "port_scan" in data:
            p = data["port_scan"]
            config.port_scan_ports = list(p.get("ports", config.port_scan_ports))
            config.port_scan_timeout = float(p.get("timeout", config.port_scan_timeout))
            config.port_scan_concurrency = int(p.get("concurrency", config.port_scan_concurrency))

        if "enrichment" in data:
            e = data["enrichment"]
            config.enable_reverse_dns = e.get("reverse_dns", True)
            config.enable_http_info = e.get("http_info", False)

        if "paths" in data:
            p = data["paths"]
            if "snapshot_db" in p:
                config.snapshot_db_path = Path(p["snapshot_db"])
            if "oui_csv" in p:
                config.oui_csv_path = Path(p["oui_csv"])

        config.source_policy = data.get("source_policy", "default")
        config.log_level = data.get("log_level", "INFO")

        return config

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        from .policy import POLICIES

        errors = []

        if not self.port_scan_ports:
            errors.append("No ports configured for port scanning")

        if not self.sweep_ports:
            errors.append("No ports configured for the liveness sweep")

        for port in self.port_scan_ports + self.sweep_ports:
            if not 0 < port < 65536:
                errors.append(f"Invalid port: {port}")

        for name in ("mdns_timeout", "ssdp_timeout", "ws_discovery_timeout",
                     "tcp_probe_timeout", "icmp_timeout", "port_scan_timeout"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")

        if self.port_scan_concurrency < 1 or self.icmp_concurrency < 1:
            errors.append("Concurrency limits must be at least 1")

        if self.source_policy not in POLICIES:
            errors.append(f"Unknown source policy: {self.source_policy}")

        return errors


# Example netscan.yaml:
"""
interface: en0

discovery:
  mdns: true
  arp: true
  ssdp: true
  ws_discovery: true
  icmp_fallback: true
  ssdp_search_targets:
    - "ssdp:all"
    - "upnp:rootdevice"

timeouts:
  mdns: 4.0
  ssdp: 3.5
  ws_discovery: 2.5
  tcp_probe: 0.4
  icmp: 1.0

port_scan:
  ports: [21, 22, 23, 25, 53, 80, 110, 143, 443, 993, 995]
  timeout: 0.75
  concurrency: 8

enrichment:
  reverse_dns: true
  http_info: false

paths:
  snapshot_db: "~/.local/share/netscan/snapshots.db"

source_policy: "default"
log_level: "INFO"
"""

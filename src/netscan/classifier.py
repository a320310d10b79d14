"""
Device classification based on hostname, vendor and open ports.

Classification is an ordered cascade: the first matching rule wins, so
hostname hints beat vendor hints, which beat port signatures. Confidence is
scored separately by adding up the evidence that supports the chosen type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from ._types import DeviceType, Port, Service, ServiceType

logger = logging.getLogger(__name__)


class RuleKind(str, Enum):
    """Evidence a rule inspects."""
    HOSTNAME = "hostname"
    VENDOR = "vendor"
    PORTS = "ports"


@dataclass(frozen=True)
class Rule:
    """One step of the classification cascade."""
    kind: RuleKind
    result: DeviceType
    weight: float
    keywords: tuple[str, ...] = ()
    ports: frozenset[int] = frozenset()

    def matches(self, hostname: str, vendor: str, ports: set[int]) -> bool:
        if self.kind == RuleKind.HOSTNAME:
            return bool(hostname) and any(k in hostname for k in self.keywords)
        if self.kind == RuleKind.VENDOR:
            return bool(vendor) and any(k in vendor for k in self.keywords)
        return bool(self.ports & ports)


HOSTNAME_WEIGHT = 0.4
VENDOR_WEIGHT = 0.3
PORT_WEIGHT = 0.2
ROUTER_SERVICE_WEIGHT = 0.1
NO_EVIDENCE_CONFIDENCE = 0.1

# Order matters: earlier rules take precedence
RULES: tuple[Rule, ...] = (
    # Hostname hints
    Rule(RuleKind.HOSTNAME, DeviceType.ROUTER, HOSTNAME_WEIGHT, keywords=("router", "gateway")),
    Rule(RuleKind.HOSTNAME, DeviceType.TV, HOSTNAME_WEIGHT, keywords=("tv", "chromecast")),
    Rule(RuleKind.HOSTNAME, DeviceType.PRINTER, HOSTNAME_WEIGHT, keywords=("printer",)),
    Rule(RuleKind.HOSTNAME, DeviceType.PLAYSTATION, HOSTNAME_WEIGHT,
         keywords=("playstation", "ps4", "ps5")),
    Rule(RuleKind.HOSTNAME, DeviceType.LAPTOP, HOSTNAME_WEIGHT, keywords=("laptop", "macbook")),
    Rule(RuleKind.HOSTNAME, DeviceType.COMPUTER, HOSTNAME_WEIGHT, keywords=("desktop",)),
    Rule(RuleKind.HOSTNAME, DeviceType.PHONE, HOSTNAME_WEIGHT,
         keywords=("phone", "iphone", "android")),
    Rule(RuleKind.HOSTNAME, DeviceType.TABLET, HOSTNAME_WEIGHT, keywords=("ipad", "tablet")),
    # Vendor hints
    Rule(RuleKind.VENDOR, DeviceType.ROUTER, VENDOR_WEIGHT,
         keywords=("netgear", "tp-link", "linksys", "asus")),
    Rule(RuleKind.VENDOR, DeviceType.PLAYSTATION, VENDOR_WEIGHT, keywords=("sony",)),
    Rule(RuleKind.VENDOR, DeviceType.PRINTER, VENDOR_WEIGHT, keywords=("hp", "brother", "epson")),
    Rule(RuleKind.VENDOR, DeviceType.TV, VENDOR_WEIGHT, keywords=("google", "chromecast")),
    Rule(RuleKind.VENDOR, DeviceType.LAPTOP, VENDOR_WEIGHT, keywords=("apple",)),
    # Port signatures
    Rule(RuleKind.PORTS, DeviceType.ROUTER, PORT_WEIGHT, ports=frozenset({53, 67})),
    Rule(RuleKind.PORTS, DeviceType.PRINTER, PORT_WEIGHT, ports=frozenset({631, 9100})),
    Rule(RuleKind.PORTS, DeviceType.TV, PORT_WEIGHT, ports=frozenset({8008, 8009})),
    Rule(RuleKind.PORTS, DeviceType.COMPUTER, PORT_WEIGHT, ports=frozenset({445})),
)

# Vendors that corroborate a type when scoring, beyond the cascade's own hints
VENDOR_EVIDENCE: dict[DeviceType, tuple[str, ...]] = {
    DeviceType.ROUTER: ("cisco",),
    DeviceType.PRINTER: ("canon",),
    DeviceType.TV: ("samsung", "lg", "sony", "vizio"),
}


@dataclass
class ClassificationResult:
    """Result of device classification."""
    device_type: DeviceType
    confidence: float  # 0.0 to 1.0
    reason: str
    fingerprints: dict[str, str] = field(default_factory=dict)


def _port_set(ports: Iterable) -> set[int]:
    return {p.number if isinstance(p, Port) else int(p) for p in ports}


class DeviceClassifier:
    """Rule-cascade device classifier."""

    def __init__(self, rules: tuple[Rule, ...] = RULES):
        self.rules = rules

    def match(
        self,
        hostname: Optional[str],
        vendor: Optional[str],
        ports: Iterable,
    ) -> Optional[Rule]:
        """First rule in the cascade that matches, if any."""
        hostname_lower = (hostname or "").lower()
        vendor_lower = (vendor or "").lower()
        port_set = _port_set(ports)
        for rule in self.rules:
            if rule.matches(hostname_lower, vendor_lower, port_set):
                return rule
        return None

    def classify(
        self,
        hostname: Optional[str],
        vendor: Optional[str],
        ports: Iterable,
    ) -> DeviceType:
        rule = self.match(hostname, vendor, ports)
        return rule.result if rule else DeviceType.UNKNOWN

    def classify_with_confidence(
        self,
        hostname: Optional[str],
        vendor: Optional[str],
        ports: Iterable,
        services: Iterable[Service] = (),
    ) -> ClassificationResult:
        """
        Classify and score the supporting evidence.

        Hostname evidence counts most, then vendor, then ports. A router that
        also offers DNS or DHCP gets a small bonus. With no evidence at all
        the confidence is a low floor rather than zero.
        """
        port_list = list(ports)
        service_list = list(services)
        port_set = _port_set(port_list)
        hostname_lower = (hostname or "").lower()
        vendor_lower = (vendor or "").lower()

        rule = self.match(hostname, vendor, port_list)
        device_type = rule.result if rule else DeviceType.UNKNOWN

        confidence = 0.0
        evidence = []

        if device_type != DeviceType.UNKNOWN:
            if hostname_lower and device_type.value in hostname_lower:
                confidence += HOSTNAME_WEIGHT
                evidence.append("hostname")

            for kind in RuleKind:
                supporting = [
                    r for r in self.rules
                    if r.kind == kind and r.result == device_type
                    and r.matches(hostname_lower, vendor_lower, port_set)
                ]
                if supporting:
                    confidence += supporting[0].weight
                    evidence.append(f"{kind.value} rule")

            extra_vendors = VENDOR_EVIDENCE.get(device_type, ())
            if vendor_lower and "vendor rule" not in evidence and any(v in vendor_lower for v in extra_vendors):
                confidence += VENDOR_WEIGHT
                evidence.append("vendor")

            service_types = {s.type for s in service_list}
            if device_type == DeviceType.ROUTER and service_types & {ServiceType.DNS, ServiceType.DHCP}:
                confidence += ROUTER_SERVICE_WEIGHT

        if evidence:
            confidence = max(0.0, min(confidence, 1.0))
            reason = f"{device_type.value} from {', '.join(evidence)}"
        else:
            confidence = NO_EVIDENCE_CONFIDENCE
            reason = "No clear classification signals"

        return ClassificationResult(
            device_type=device_type,
            confidence=confidence,
            reason=reason,
            fingerprints=self.fingerprint(service_list, port_list),
        )

    def fingerprint(self, services: Iterable[Service], ports: Iterable) -> dict[str, str]:
        """Coarse display hints derived from services and ports. Not used in scoring."""
        service_list = list(services)
        port_set = _port_set(ports)
        fingerprints: dict[str, str] = {}

        def ports_of(service_type: ServiceType) -> str:
            numbers = {s.port for s in service_list if s.type == service_type and s.port}
            return ",".join(str(n) for n in sorted(numbers))

        types = {s.type for s in service_list}

        if ServiceType.HTTP in types or port_set & {80, 8080}:
            fingerprints["http_ports"] = ports_of(ServiceType.HTTP) or ",".join(
                str(p) for p in sorted(port_set & {80, 8080})
            )
        if ServiceType.HTTPS in types or 443 in port_set:
            fingerprints["https_ports"] = ports_of(ServiceType.HTTPS) or (
                "443" if 443 in port_set else ""
            )
        if ServiceType.SMB in types or port_set & {139, 445}:
            fingerprints["smb_present"] = "true"
        if ServiceType.SSH in types or 22 in port_set:
            fingerprints["ssh_present"] = "true"

        return fingerprints

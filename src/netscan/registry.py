"""
Device registry.

Holds one canonical Device per IP and merges observations from every
discovery method, sweep and port scan into it. All mutation is serialized
through a single asyncio.Lock; producers never touch Device records directly.

Merge rules:
- is_online / last_seen: last writer wins; a passive sighting keeps is_online
- hostname / mac_address / manufacturer: first non-empty writer wins
- open_ports / services: set union
- discovery_source: upgraded only as the SourcePolicy allows
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Callable, Iterable, Optional

from . import addressing
from ._types import (
    Device,
    DeviceSnapshot,
    DeviceType,
    DiscoverySource,
    NetworkInfo,
    Port,
    Service,
    ip_sort_key,
    now_utc,
)
from .classifier import DeviceClassifier
from .policy import DEFAULT_POLICY, SourcePolicy
from .vendor import VendorLookup, normalize_mac

logger = logging.getLogger(__name__)

PortScanHook = Callable[[str], None]


def _copy(device: Device) -> Device:
    return dataclasses.replace(
        device,
        services=dict(device.services),
        open_ports=dict(device.open_ports),
        fingerprints=dict(device.fingerprints),
    )


def _parse_enum(enum_cls, value: Optional[str], default):
    try:
        return enum_cls(value) if value else default
    except ValueError:
        return default


class DeviceRegistry:
    """
    Canonical per-IP device records.

    Loopback addresses and the subnet broadcast address are never admitted.
    """

    def __init__(
        self,
        policy: SourcePolicy = DEFAULT_POLICY,
        classifier: Optional[DeviceClassifier] = None,
        vendor_lookup: Optional[VendorLookup] = None,
        network_info: Optional[NetworkInfo] = None,
        on_port_scan_needed: Optional[PortScanHook] = None,
    ):
        self.policy = policy
        self.classifier = classifier or DeviceClassifier()
        self.vendor_lookup = vendor_lookup
        self.on_port_scan_needed = on_port_scan_needed
        self._network_info = network_info

        self._devices: dict[str, Device] = {}
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    @property
    def network_info(self) -> Optional[NetworkInfo]:
        return self._network_info

    @network_info.setter
    def network_info(self, info: Optional[NetworkInfo]) -> None:
        self._network_info = info

    def is_admissible(self, ip: str) -> bool:
        """Whether ip may be stored at all."""
        if addressing.is_loopback(ip):
            return False
        if addressing.parse(ip) is None:
            return False
        if self._network_info is not None and ip == self._network_info.broadcast:
            return False
        return True

    # -------------------------------------------------------------------------
    # Observations
    # -------------------------------------------------------------------------

    async def observe(
        self,
        ip: str,
        source: DiscoverySource,
        is_online: Optional[bool] = True,
        hostname: Optional[str] = None,
        services: Iterable[Service] = (),
        open_ports: Iterable[Port] = (),
        mac_address: Optional[str] = None,
    ) -> Optional[Device]:
        """
        Merge one observation and return a copy of the resulting record.

        is_online=None records a passive sighting: a new device starts online,
        a known device keeps its current liveness.

        Returns None when ip is not admissible.
        """
        if not self.is_admissible(ip):
            logger.debug(f"Ignoring observation of {ip} from {source.value}")
            return None

        async with self._lock:
            now = now_utc()
            device = self._devices.get(ip)
            is_new = device is None
            if device is None:
                device = Device(
                    ip_address=ip,
                    discovery_source=self.policy.initial_source(source),
                    first_seen=now,
                    last_seen=now,
                )
                self._devices[ip] = device
                logger.debug(f"New device {ip} via {source.value}")
            elif self.policy.should_replace(device.discovery_source, source):
                device.discovery_source = source

            if is_online is not None:
                device.is_online = is_online
            elif is_new:
                device.is_online = True
            device.last_seen = now

            changed = is_new
            changed |= device.merge_ports(open_ports)
            changed |= device.merge_services(services)

            if hostname and not device.hostname:
                device.hostname = hostname
                if device.name == device.ip_address:
                    device.name = hostname
                changed = True

            changed |= self._apply_mac(device, mac_address)

            needs_port_scan = device.is_online and not device.open_ports
            result = _copy(device)

        if changed:
            self._schedule_classification(ip)
        if needs_port_scan and self.on_port_scan_needed is not None:
            self.on_port_scan_needed(ip)

        return result

    def _apply_mac(self, device: Device, mac_address: Optional[str]) -> bool:
        """Record a MAC (first writer wins) and fill in its vendor. Returns True if changed."""
        changed = False
        if mac_address and not device.mac_address:
            mac = normalize_mac(mac_address)
            if mac is None:
                logger.debug(f"Dropping malformed MAC {mac_address!r} for {device.ip_address}")
            else:
                device.mac_address = mac
                changed = True
        return self._fill_vendor(device) or changed

    def _fill_vendor(self, device: Device) -> bool:
        if not device.mac_address or device.manufacturer or self.vendor_lookup is None:
            return False
        vendor = self.vendor_lookup.find_vendor(device.mac_address)
        if not vendor:
            return False
        device.manufacturer = vendor
        return True

    async def annotate(
        self,
        ip: str,
        hostname: Optional[str] = None,
        manufacturer: Optional[str] = None,
        fingerprints: Optional[dict[str, str]] = None,
        mac_address: Optional[str] = None,
    ) -> Optional[Device]:
        """
        Attach enrichment data to a known device.

        Hostname, manufacturer and MAC are first-writer-wins. A MAC without a
        known manufacturer triggers the vendor lookup.
        """
        async with self._lock:
            device = self._devices.get(ip)
            if device is None:
                return None

            changed = False
            if hostname and not device.hostname:
                device.hostname = hostname
                if device.name == device.ip_address:
                    device.name = hostname
                changed = True
            if manufacturer and not device.manufacturer:
                device.manufacturer = manufacturer
                changed = True
            changed |= self._apply_mac(device, mac_address)
            if fingerprints:
                device.fingerprints.update(fingerprints)
            result = _copy(device)

        if changed:
            self._schedule_classification(ip)
        return result

    async def record_rtt(self, ip: str, rtt_millis: Optional[float]) -> None:
        if rtt_millis is None:
            return
        async with self._lock:
            device = self._devices.get(ip)
            if device is not None:
                device.rtt_millis = rtt_millis

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def _schedule_classification(self, ip: str) -> None:
        task = asyncio.create_task(self._classify(ip))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _classify(self, ip: str) -> None:
        async with self._lock:
            device = self._devices.get(ip)
            if device is None:
                return
            result = self.classifier.classify_with_confidence(
                hostname=device.hostname,
                vendor=device.manufacturer,
                ports=list(device.open_ports.values()),
                services=device.display_services(),
            )
            device.device_type = result.device_type
            device.confidence = result.confidence
            device.fingerprints.update(result.fingerprints)

        logger.debug(
            f"Classified {ip} as {result.device_type.value} "
            f"({result.confidence:.2f}): {result.reason}"
        )

    async def wait_idle(self) -> None:
        """Wait until every scheduled classification has finished."""
        while self._pending:
            results = await asyncio.gather(*list(self._pending), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Classification failed: {result}")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, ip: str) -> Optional[Device]:
        device = self._devices.get(ip)
        return _copy(device) if device else None

    def devices(self) -> list[Device]:
        """All devices sorted by numeric IP."""
        return [
            _copy(self._devices[ip])
            for ip in sorted(self._devices, key=ip_sort_key)
        ]

    def online_ips(self) -> set[str]:
        return {ip for ip, d in self._devices.items() if d.is_online}

    def is_online(self, ip: str) -> bool:
        device = self._devices.get(ip)
        return device is not None and device.is_online

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, ip: str) -> bool:
        return ip in self._devices

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def clear(self) -> None:
        async with self._lock:
            self._devices.clear()

    async def seed(self, snapshots: Iterable[DeviceSnapshot]) -> int:
        """
        Load devices from a previous scan. They start offline and keep their
        original first_seen. Returns the number seeded.
        """
        seeded = 0
        async with self._lock:
            for snap in snapshots:
                if not self.is_admissible(snap.ip) or snap.ip in self._devices:
                    continue
                device = Device(
                    ip_address=snap.ip,
                    id=snap.id,
                    name=snap.name or "",
                    discovery_source=_parse_enum(
                        DiscoverySource, snap.discovery_source, DiscoverySource.UNKNOWN
                    ),
                    hostname=snap.hostname,
                    mac_address=snap.mac,
                    manufacturer=snap.vendor,
                    device_type=_parse_enum(DeviceType, snap.device_type, DeviceType.UNKNOWN),
                    is_online=False,
                    first_seen=snap.first_seen,
                    last_seen=snap.last_seen,
                )
                device.merge_services(snap.services)
                self._fill_vendor(device)
                self._devices[snap.ip] = device
                seeded += 1

        if seeded:
            logger.info(f"Seeded {seeded} devices from snapshot")
        return seeded

    def snapshots(self) -> list[DeviceSnapshot]:
        return [self._devices[ip].to_snapshot() for ip in sorted(self._devices, key=ip_sort_key)]

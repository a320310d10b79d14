"""Tests for type definitions."""

from datetime import timedelta

from netscan._types import (
    Device,
    DeviceSnapshot,
    DeviceType,
    DiscoverySource,
    NetworkInfo,
    Port,
    ProbeResult,
    ScanReport,
    Service,
    ServiceType,
    ip_sort_key,
    now_utc,
)


class TestDevice:
    """Tests for Device dataclass."""

    def test_defaults(self):
        """Should default id and name to the IP address."""
        device = Device(ip_address="192.168.1.20")

        assert device.id == "192.168.1.20"
        assert device.name == "192.168.1.20"
        assert device.device_type == DeviceType.UNKNOWN
        assert device.discovery_source == DiscoverySource.UNKNOWN
        assert device.is_online is False
        assert device.open_ports == {}

    def test_merge_ports_is_union(self):
        """Should union ports by number and report additions."""
        device = Device(ip_address="192.168.1.20")

        assert device.merge_ports([Port(22, "ssh"), Port(80, "http")]) is True
        assert device.merge_ports([Port(80, "http"), Port(443, "https")]) is True
        assert device.merge_ports([Port(22, "ssh")]) is False

        assert device.port_numbers == [22, 80, 443]

    def test_services_on_different_ports_coexist(self):
        """HTTP on 80 and HTTP on 8080 are distinct services."""
        device = Device(ip_address="192.168.1.20")
        device.merge_services([
            Service("HTTP", ServiceType.HTTP, 80),
            Service("HTTP", ServiceType.HTTP, 8080),
            Service("HTTP", ServiceType.HTTP, 80),
        ])

        assert len(device.services) == 2

    def test_display_services(self):
        """Should combine discovery and port-derived services, dropping unknowns."""
        device = Device(ip_address="192.168.1.20")
        device.merge_services([Service("web", ServiceType.HTTP, 80)])
        device.merge_ports([Port(80, "http"), Port(22, "ssh"), Port(23, "telnet")])

        services = device.display_services()

        assert [(s.type, s.port) for s in services] == [
            (ServiceType.HTTP, 80),
            (ServiceType.SSH, 22),
        ]

    def test_to_snapshot(self):
        """Should convert to a persisted snapshot."""
        device = Device(
            ip_address="192.168.1.20",
            hostname="nas.local",
            mac_address="aa:bb:cc:dd:ee:ff",
            manufacturer="Synology",
            device_type=DeviceType.COMPUTER,
            discovery_source=DiscoverySource.MDNS,
        )
        device.merge_services([Service("files", ServiceType.SMB, 445)])

        snapshot = device.to_snapshot()

        assert snapshot.ip == "192.168.1.20"
        assert snapshot.vendor == "Synology"
        assert snapshot.device_type == "computer"
        assert snapshot.discovery_source == "mdns"
        assert snapshot.services == [Service("files", ServiceType.SMB, 445)]


class TestDeviceSnapshot:
    """Tests for snapshot serialization."""

    def test_dict_round_trip(self):
        """Should survive to_dict/from_dict."""
        first = now_utc() - timedelta(days=2)
        snapshot = DeviceSnapshot(
            id="192.168.1.5",
            ip="192.168.1.5",
            first_seen=first,
            last_seen=now_utc(),
            hostname="printer.lan",
            services=[Service("IPP", ServiceType.PRINTER, 631)],
            discovery_source="arp",
        )

        restored = DeviceSnapshot.from_dict(snapshot.to_dict())

        assert restored == snapshot

    def test_unknown_service_type_degrades(self):
        """Unrecognised service types load as unknown."""
        service = Service.from_dict({"name": "x", "type": "quantum", "port": 1})
        assert service.type == ServiceType.UNKNOWN


class TestHelpers:
    """Tests for small helpers."""

    def test_ip_sort_key_is_numeric(self):
        """Should order addresses numerically, not lexically."""
        ips = ["192.168.1.10", "192.168.1.9", "192.168.1.100", "192.168.1.2"]
        assert sorted(ips, key=ip_sort_key) == [
            "192.168.1.2", "192.168.1.9", "192.168.1.10", "192.168.1.100",
        ]

    def test_ip_sort_key_invalid_last(self):
        """Unparsable strings sort after valid addresses."""
        assert sorted(["bogus", "10.0.0.1"], key=ip_sort_key) == ["10.0.0.1", "bogus"]

    def test_network_info_key(self):
        """Snapshot key is network/cidr."""
        info = NetworkInfo("192.168.1.4", "255.255.255.0", 24, "192.168.1.0", "192.168.1.255")
        assert info.key == "192.168.1.0/24"

    def test_probe_result_dead(self):
        assert ProbeResult.dead() == ProbeResult(alive=False, rtt_millis=None)

    def test_scan_report_counts(self):
        """Should count devices and online devices."""
        online = Device(ip_address="10.0.0.2", is_online=True)
        offline = Device(ip_address="10.0.0.3")
        report = ScanReport(devices=[online, offline])

        assert report.devices_found == 2
        assert report.online_count == 1
        assert report.status == "running"

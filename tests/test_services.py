"""Tests for the service catalog."""

import pytest

from netscan._types import ServiceType
from netscan.services import (
    entry_for_type,
    service_for_port,
    service_type_for_mdns,
    service_type_for_port,
)


class TestPortMapping:
    """Tests for port -> service type mapping."""

    @pytest.mark.parametrize(
        "port,expected",
        [
            (80, ServiceType.HTTP),
            (8080, ServiceType.HTTP),
            (443, ServiceType.HTTPS),
            (22, ServiceType.SSH),
            (53, ServiceType.DNS),
            (445, ServiceType.SMB),
            (8009, ServiceType.CHROMECAST),
            (9100, ServiceType.PRINTER),
            (21, ServiceType.FTP),
            (12345, ServiceType.UNKNOWN),
        ],
    )
    def test_service_type_for_port(self, port, expected):
        """Should map well-known ports to service types."""
        assert service_type_for_port(port) == expected

    def test_service_for_port_uses_catalog_name(self):
        """Should fall back to the catalog display name."""
        service = service_for_port(445)
        assert service.name == "SMB"
        assert service.type == ServiceType.SMB
        assert service.port == 445

    def test_service_for_port_keeps_given_name(self):
        """Should keep an explicit service name."""
        assert service_for_port(22, "ssh").name == "ssh"

    def test_unknown_port_uses_curated_name(self):
        """Should name unknown services from the curated list."""
        service = service_for_port(23)
        assert service.type == ServiceType.UNKNOWN
        assert service.name == "telnet"

    def test_entry_for_type(self):
        """Should find catalog entries by type."""
        assert entry_for_type(ServiceType.PRINTER).display_name == "IPP"
        assert entry_for_type(ServiceType.AIRPLAY) is None


class TestMDNSMapping:
    """Tests for mDNS type string mapping."""

    @pytest.mark.parametrize(
        "mdns_type,expected",
        [
            ("_http._tcp.local.", ServiceType.HTTP),
            ("_https._tcp.local.", ServiceType.HTTPS),
            ("_ssh._tcp.local.", ServiceType.SSH),
            ("_smb._tcp.local.", ServiceType.SMB),
            ("_googlecast._tcp.local.", ServiceType.CHROMECAST),
            ("_airplay._tcp.local.", ServiceType.AIRPLAY),
            ("_ipp._tcp.local.", ServiceType.PRINTER),
            ("_HTTP._TCP.local.", ServiceType.HTTP),
            ("_hap._tcp.local.", ServiceType.UNKNOWN),
        ],
    )
    def test_service_type_for_mdns(self, mdns_type, expected):
        """Should map mDNS types with or without the domain."""
        assert service_type_for_mdns(mdns_type) == expected

"""Tests for the discovery source priority policy."""

import pytest

from netscan._types import DiscoverySource as S
from netscan.policy import DEFAULT_POLICY, EXTENDED_POLICY, get_policy


class TestDefaultPolicy:
    """Tests for the default mdns > arp > ping ordering."""

    @pytest.mark.parametrize(
        "current,incoming,expected",
        [
            (S.PING, S.ARP, True),
            (S.ARP, S.MDNS, True),
            (S.PING, S.MDNS, True),
            (S.MDNS, S.PING, False),
            (S.MDNS, S.ARP, False),
            (S.ARP, S.PING, False),
            (S.ARP, S.ARP, True),
            (S.UNKNOWN, S.PING, True),
            (S.PING, S.UNKNOWN, False),
            (S.PING, S.SSDP, False),
            (S.UNKNOWN, S.WS_DISCOVERY, False),
        ],
    )
    def test_should_replace(self, current, incoming, expected):
        """Should replace only with an equal or higher ranked source."""
        assert DEFAULT_POLICY.should_replace(current, incoming) is expected

    def test_initial_source(self):
        """Non-claimable sources leave a new device with source unknown."""
        assert DEFAULT_POLICY.initial_source(S.ARP) == S.ARP
        assert DEFAULT_POLICY.initial_source(S.SSDP) == S.UNKNOWN
        assert DEFAULT_POLICY.initial_source(S.UNKNOWN) == S.UNKNOWN

    def test_rank_unclaimable(self):
        """Should give unclaimable sources no rank."""
        assert DEFAULT_POLICY.rank(S.SSDP) == -1


class TestExtendedPolicy:
    """Tests for the extended ordering."""

    def test_ssdp_outranks_arp(self):
        """Should rank SSDP above ARP."""
        assert EXTENDED_POLICY.should_replace(S.ARP, S.SSDP) is True
        assert EXTENDED_POLICY.should_replace(S.SSDP, S.ARP) is False

    def test_ws_discovery_between_ping_and_arp(self):
        """Should rank WS-Discovery between ping and ARP."""
        assert EXTENDED_POLICY.should_replace(S.PING, S.WS_DISCOVERY) is True
        assert EXTENDED_POLICY.should_replace(S.ARP, S.WS_DISCOVERY) is False

    def test_mdns_still_highest(self):
        """Should keep mDNS as the highest source."""
        assert EXTENDED_POLICY.should_replace(S.MDNS, S.SSDP) is False


class TestGetPolicy:
    """Tests for policy lookup."""

    def test_known(self):
        """Should return the named policies."""
        assert get_policy("default") is DEFAULT_POLICY
        assert get_policy("extended") is EXTENDED_POLICY

    def test_unknown_raises(self):
        """Should raise for an unknown policy name."""
        with pytest.raises(ValueError, match="Unknown source policy"):
            get_policy("loudest")

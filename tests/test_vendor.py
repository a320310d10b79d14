"""Tests for MAC normalisation and OUI lookup."""

import tempfile
from pathlib import Path

import pytest

from netscan.vendor import OUIVendorLookup, normalize_mac


class TestNormalizeMac:
    """Tests for normalize_mac."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("AA:BB:CC:DD:EE:FF", "aa:bb:cc:dd:ee:ff"),
            ("aa-bb-cc-dd-ee-ff", "aa:bb:cc:dd:ee:ff"),
            ("0:50:56:c0:0:8", "00:50:56:c0:00:08"),
            ("  00:11:32:aa:bb:cc ", "00:11:32:aa:bb:cc"),
        ],
    )
    def test_valid(self, raw, expected):
        """Should normalise separators and case."""
        assert normalize_mac(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        ["(incomplete)", "aa:bb:cc:dd:ee", "aa:bb:cc:dd:ee:ff:00", "zz:bb:cc:dd:ee:ff", ""],
    )
    def test_invalid(self, raw):
        """Should reject malformed MACs."""
        assert normalize_mac(raw) is None


class TestOUIVendorLookup:
    """Tests for OUIVendorLookup."""

    def test_builtin_table(self):
        """Should find vendors in the built-in table."""
        lookup = OUIVendorLookup()
        assert lookup.find_vendor("00:11:32:12:34:56") == "Synology"
        assert lookup.find_vendor("B8-27-EB-00-00-01") == "Raspberry Pi Foundation"

    def test_unknown_prefix(self):
        assert OUIVendorLookup().find_vendor("12:34:56:78:9a:bc") is None

    def test_invalid_mac(self):
        assert OUIVendorLookup().find_vendor("garbage") is None

    def test_custom_table(self):
        """Should load vendors from an IEEE CSV."""
        lookup = OUIVendorLookup(table={"aa:bb:cc": "Acme"})
        assert lookup.find_vendor("aa:bb:cc:00:00:01") == "Acme"
        assert lookup.find_vendor("00:11:32:12:34:56") is None

    def test_csv_extends_table(self):
        """Should load Assignment/Organization Name rows from a CSV export."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "oui.csv"
            path.write_text(
                "Registry,Assignment,Organization Name,Organization Address\n"
                "MA-L,ACDE48,Private Devices Inc,Somewhere\n"
                "MA-L,BAD,Broken Row,Nowhere\n"
            )

            lookup = OUIVendorLookup(csv_path=path)

        assert lookup.find_vendor("ac:de:48:00:11:22") == "Private Devices Inc"
        assert lookup.find_vendor("00:11:32:12:34:56") == "Synology"

    def test_missing_csv_keeps_builtin(self):
        """Should keep the built-in table when the CSV is missing."""
        lookup = OUIVendorLookup(csv_path=Path("/nonexistent/oui.csv"))
        assert lookup.find_vendor("00:11:32:12:34:56") == "Synology"

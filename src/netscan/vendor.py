"""
MAC vendor (OUI) lookup.

The registry only depends on the VendorLookup protocol. OUIVendorLookup is a
small local implementation: a built-in table of common prefixes, optionally
extended from an IEEE-style CSV export.
"""

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

MAC_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}$")

# Common OUI prefixes (first 3 octets)
BUILTIN_OUI: dict[str, str] = {
    "00:50:56": "VMware",
    "00:0c:29": "VMware",
    "00:1c:42": "Parallels",
    "08:00:27": "VirtualBox",
    "52:54:00": "QEMU/KVM",
    "00:15:5d": "Microsoft Hyper-V",
    "d4:be:d9": "Dell",
    "00:1e:67": "HP",
    "3c:d9:2b": "HP",
    "00:1a:a0": "Lenovo",
    "f0:9f:c2": "Apple",
    "3c:22:fb": "Apple",
    "a4:83:e7": "Apple",
    "00:1b:63": "Cisco",
    "a0:40:a0": "Netgear",
    "50:c7:bf": "TP-Link",
    "c0:56:27": "Linksys",
    "04:d9:f5": "ASUS",
    "f4:f5:d8": "Google",
    "00:1b:a9": "Brother",
    "64:eb:8c": "Epson",
    "f8:46:1c": "Sony Interactive Entertainment",
    "b8:27:eb": "Raspberry Pi Foundation",
    "00:11:32": "Synology",
}


class VendorLookup(Protocol):
    """Resolves a MAC address to a vendor name."""

    def find_vendor(self, mac_address: str) -> Optional[str]:
        ...


def normalize_mac(mac: str) -> Optional[str]:
    """
    Normalise a MAC to lower-case colon form.

    Single-digit octets (as printed by BSD arp, e.g. "0:50:56:c0:0:8") are
    zero-padded before the strict 6-octet check. Returns None when invalid.
    """
    parts = re.split(r"[:-]", mac.strip())
    if len(parts) == 6 and all(1 <= len(p) <= 2 for p in parts):
        candidate = ":".join(p.zfill(2) for p in parts)
    else:
        candidate = mac.strip()
    if not MAC_PATTERN.match(candidate):
        return None
    return candidate.lower().replace("-", ":")


class OUIVendorLookup:
    """OUI prefix table lookup."""

    def __init__(
        self,
        table: Optional[dict[str, str]] = None,
        csv_path: Optional[Path] = None,
    ):
        """
        Args:
            table: Prefix -> vendor map (defaults to the built-in table)
            csv_path: Optional IEEE OUI CSV (Registry,Assignment,Organization Name,...)
        """
        self._table = dict(BUILTIN_OUI if table is None else table)
        if csv_path is not None:
            self._load_csv(csv_path)

    def _load_csv(self, path: Path) -> None:
        if not path.exists():
            logger.warning(f"OUI file not found: {path}")
            return

        loaded = 0
        with open(path, newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                assignment = (row.get("Assignment") or "").strip()
                vendor = (row.get("Organization Name") or "").strip()
                if len(assignment) != 6 or not vendor:
                    continue
                prefix = ":".join(assignment[i:i + 2] for i in range(0, 6, 2)).lower()
                self._table[prefix] = vendor
                loaded += 1
        logger.info(f"Loaded {loaded} OUI entries from {path}")

    def find_vendor(self, mac_address: str) -> Optional[str]:
        mac = normalize_mac(mac_address)
        if mac is None:
            return None
        return self._table.get(mac[:8])

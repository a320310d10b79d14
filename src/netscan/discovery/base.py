"""
Base classes for discovery methods.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .._types import DiscoverySource, Port, Service, now_utc


@dataclass
class DiscoveredHost:
    """
    A host reported by a discovery method.

    This is a lightweight observation; the registry merges it into a Device.
    """
    ip_address: str
    source: DiscoverySource
    hostname: Optional[str] = None
    mac_address: Optional[str] = None

    services: list[Service] = field(default_factory=list)
    open_ports: list[Port] = field(default_factory=list)

    # Seen in a cache that can outlive the host; never marks a known device online
    passive: bool = False

    discovered_at: datetime = field(default_factory=now_utc)


class DiscoveryMethod(ABC):
    """Base class for discovery methods."""

    # Seconds the method needs to finish on its own
    timeout: float = 5.0

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this discovery method."""
        pass

    @property
    @abstractmethod
    def source(self) -> DiscoverySource:
        """Discovery source reported for hosts found by this method."""
        pass

    @abstractmethod
    async def discover(self) -> list[DiscoveredHost]:
        """
        Discover hosts using this method.

        Network, parse and subprocess failures are logged and yield
        whatever was collected so far; they are never raised.
        """
        pass

    async def is_available(self) -> bool:
        """Check if this discovery method is available."""
        return True

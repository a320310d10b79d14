"""
Discovery source priority policy.

Only claimable sources may set or overwrite a device's recorded discovery
source, and only when they rank at least as high as the current one (or the
current one is not claimable). The table is a plain value so callers can
swap it per registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ._types import DiscoverySource


@dataclass(frozen=True)
class SourcePolicy:
    """Rank table for claimable discovery sources. Higher rank wins."""
    name: str
    ranks: dict[DiscoverySource, int] = field(default_factory=dict)

    def is_claimable(self, source: DiscoverySource) -> bool:
        return source in self.ranks

    def rank(self, source: DiscoverySource) -> int:
        return self.ranks.get(source, -1)

    def initial_source(self, source: DiscoverySource) -> DiscoverySource:
        """Source recorded on a freshly created device."""
        return source if self.is_claimable(source) else DiscoverySource.UNKNOWN

    def should_replace(self, current: DiscoverySource, incoming: DiscoverySource) -> bool:
        """Whether an observation from `incoming` may overwrite `current`."""
        if not self.is_claimable(incoming):
            return False
        if not self.is_claimable(current):
            return True
        return self.rank(incoming) >= self.rank(current)


DEFAULT_POLICY = SourcePolicy(
    name="default",
    ranks={
        DiscoverySource.PING: 0,
        DiscoverySource.ARP: 1,
        DiscoverySource.MDNS: 2,
    },
)

# Earlier ordering that also lets multicast responders claim a device
EXTENDED_POLICY = SourcePolicy(
    name="extended",
    ranks={
        DiscoverySource.PING: 0,
        DiscoverySource.WS_DISCOVERY: 1,
        DiscoverySource.ARP: 2,
        DiscoverySource.SSDP: 3,
        DiscoverySource.MDNS: 4,
    },
)

POLICIES: dict[str, SourcePolicy] = {
    DEFAULT_POLICY.name: DEFAULT_POLICY,
    EXTENDED_POLICY.name: EXTENDED_POLICY,
}


def get_policy(name: str) -> SourcePolicy:
    """Resolve a policy by name."""
    try:
        return POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown source policy: {name}") from None

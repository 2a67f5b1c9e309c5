"""Region routing: free-text address -> region key -> notification channel."""
from __future__ import annotations

from typing import Iterable, Mapping, Optional


def resolve_region(address: Optional[str], regions: Iterable[str], default: str) -> str:
    """Return the first region whose name occurs in ``address`` (case-insensitive).

    ``regions`` is checked in order, so earlier names win when several match.
    Unmatched or empty text yields ``default``.
    """
    text = (address or "").casefold()
    for region in regions:
        if region.casefold() in text:
            return region
    return default


class DispatchRouter:
    """Maps addresses to regions and regions to broadcast channels."""

    def __init__(self, channels: Mapping[str, str], default_region: str) -> None:
        if default_region not in channels:
            raise ValueError(f"Default region {default_region!r} has no configured channel")
        self._channels = dict(channels)
        self.default_region = default_region

    @property
    def regions(self) -> list[str]:
        return list(self._channels)

    def resolve(self, address: Optional[str]) -> str:
        return resolve_region(address, self._channels, self.default_region)

    def channel_for(self, region: str) -> str:
        return self._channels.get(region, self._channels[self.default_region])

from dataclasses import dataclass
from typing import Dict
from typing import Iterator
from typing import Optional


@dataclass
class CallSiteStats:
    """Running allocation statistics for a single call site.

    The ``total_*`` counters only grow, the ``current_*`` counters follow the
    bytes that are still outstanding and the ``max_*`` counters record the
    high-water marks of the ``current_*`` ones.
    """

    site: str
    total_alloc: int = 0
    total_requested: int = 0
    current_alloc: int = 0
    current_requested: int = 0
    max_alloc: int = 0
    max_requested: int = 0
    alloc_count: int = 0
    free_count: int = 0

    @property
    def waste(self) -> int:
        return self.current_alloc - self.current_requested

    @property
    def max_waste(self) -> int:
        return self.max_alloc - self.max_requested

    def record_allocation(self, requested: int, granted: int) -> None:
        self.alloc_count += 1
        self.total_alloc += granted
        self.total_requested += requested
        self.current_alloc += granted
        self.current_requested += requested
        if self.current_alloc > self.max_alloc:
            self.max_alloc = self.current_alloc
        if self.current_requested > self.max_requested:
            self.max_requested = self.current_requested

    def record_deallocation(self, requested: int, granted: int) -> None:
        self.free_count += 1
        self.current_alloc -= granted
        self.current_requested -= requested


class CallSiteTable:
    """Statistics records indexed by call site.

    Records are created on demand and are never removed, so references
    handed out by :meth:`find_or_create` stay valid for the lifetime of the
    table.
    """

    def __init__(self) -> None:
        self._sites: Dict[str, CallSiteStats] = {}

    def find_or_create(self, site: str) -> CallSiteStats:
        stats = self._sites.get(site)
        if stats is None:
            stats = CallSiteStats(site)
            self._sites[site] = stats
        return stats

    def get(self, site: str) -> Optional[CallSiteStats]:
        return self._sites.get(site)

    def __contains__(self, site: object) -> bool:
        return site in self._sites

    def __iter__(self) -> Iterator[CallSiteStats]:
        return iter(self._sites.values())

    def __len__(self) -> int:
        return len(self._sites)

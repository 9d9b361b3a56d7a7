import logging
from typing import Iterable
from typing import List
from typing import Optional

from ._callsites import CallSiteStats
from ._callsites import CallSiteTable
from ._errors import KmemtraceError
from ._events import ALL_KINDS
from ._events import EventKind
from ._events import KmemEvent
from ._live import LiveAllocationTable
from ._metadata import Metadata
from ._stats import Stats
from .reporters.common import sort_callsites
from .reporters.waste import WasteReporter

logger = logging.getLogger(__name__)


class KmemAggregator:
    """Incrementally aggregate kmem events into per call site statistics.

    Events must be applied in trace order. Every allocation is attributed to
    its call site and remembered by pointer value until a free for the same
    pointer arrives, at which point the bytes are returned to the call site
    that allocated them.

    Frees for pointers that are not live and events of unknown kinds are
    ignored. An allocation for a pointer that is still live replaces the
    previous record without crediting its owner, so the previous owner keeps
    those bytes as outstanding for the rest of the run.
    """

    def __init__(self, kinds: Iterable[EventKind] = ALL_KINDS) -> None:
        self.call_sites = CallSiteTable()
        self.live_allocations = LiveAllocationTable()
        self.kinds = frozenset(kinds)
        self.num_allocs = 0
        self.num_frees = 0
        self.num_lost_frees = 0
        self.num_overwritten = 0
        self.num_ignored = 0
        self._finalized = False

    def apply_event(self, event: KmemEvent) -> None:
        if self._finalized:
            raise KmemtraceError("Cannot apply events to a finalized aggregator")

        kind = EventKind.from_name(event.kind)
        if kind is None or kind not in self.kinds:
            logger.debug("Ignoring %s event", event.kind)
            self.num_ignored += 1
            return

        if kind.is_allocation:
            self._add_allocation(event)
        else:
            self._remove_allocation(event.ptr)

    def apply_events(self, events: Iterable[KmemEvent]) -> None:
        for event in events:
            self.apply_event(event)

    def _add_allocation(self, event: KmemEvent) -> None:
        if event.call_site is None:
            logger.debug("Ignoring %s event without a call site", event.kind)
            self.num_ignored += 1
            return
        self.num_allocs += 1
        owner = self.call_sites.find_or_create(event.call_site)
        owner.record_allocation(event.bytes_req, event.bytes_alloc)
        replaced = self.live_allocations.insert_or_replace(
            event.ptr, owner, event.bytes_req, event.bytes_alloc
        )
        if replaced is not None:
            self.num_overwritten += 1
            logger.debug(
                "Pointer %#x allocated by %s was still live (owned by %s)",
                event.ptr,
                owner.site,
                replaced.owner.site,
            )

    def _remove_allocation(self, ptr: int) -> None:
        self.num_frees += 1
        allocation = self.live_allocations.remove(ptr)
        if allocation is None:
            self.num_lost_frees += 1
            return
        allocation.owner.record_deallocation(allocation.requested, allocation.granted)

    def finalize(self, sort_key: str = "waste") -> List[CallSiteStats]:
        """Stop accepting events and return the call sites in report order."""
        self._finalized = True
        return sort_callsites(self.call_sites, sort_key)

    def finalize_and_report(self, sort_key: str = "waste") -> str:
        return WasteReporter(self.finalize(sort_key)).format_table()

    def stats(self, metadata: Optional[Metadata] = None) -> Stats:
        sites = list(self.call_sites)
        return Stats(
            metadata=metadata,
            num_allocs=self.num_allocs,
            num_frees=self.num_frees,
            num_lost_frees=self.num_lost_frees,
            num_overwritten=self.num_overwritten,
            num_ignored=self.num_ignored,
            num_callsites=len(sites),
            num_live_allocations=len(self.live_allocations),
            current_alloc=sum(site.current_alloc for site in sites),
            current_requested=sum(site.current_requested for site in sites),
            total_alloc=sum(site.total_alloc for site in sites),
            total_requested=sum(site.total_requested for site in sites),
        )

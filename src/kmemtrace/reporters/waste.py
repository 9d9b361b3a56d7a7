from typing import Iterable
from typing import List
from typing import Optional
from typing import TextIO

from kmemtrace._callsites import CallSiteStats
from kmemtrace._metadata import Metadata

from .common import sort_callsites

HEADER = (
    "                Function            \t"
    "Waste\tAlloc\treq\t\tTotAlloc     TotReq\t\tMaxAlloc     MaxReq\t"
    "MaxWaste"
)
SEPARATOR = (
    "                --------            \t"
    "-----\t-----\t---\t\t--------     ------\t\t--------     ------\t"
    "--------"
)
ROW_FORMAT = "%32s\t%d\t%d\t%d\t\t%8d   %8d\t\t%8d   %8d\t%d"


class WasteReporter:
    """Render call sites as the classic fixed-column waste table.

    Rows are printed in the order they are given; use
    :meth:`from_callsites` to have them sorted first.
    """

    def __init__(self, sites: Iterable[CallSiteStats]) -> None:
        self.sites: List[CallSiteStats] = list(sites)

    @classmethod
    def from_callsites(
        cls, sites: Iterable[CallSiteStats], sort_key: str = "waste"
    ) -> "WasteReporter":
        return cls(sort_callsites(sites, sort_key))

    def format_row(self, site: CallSiteStats) -> str:
        return ROW_FORMAT % (
            site.site,
            site.waste,
            site.current_alloc,
            site.current_requested,
            site.total_alloc,
            site.total_requested,
            site.max_alloc,
            site.max_requested,
            site.max_waste,
        )

    def format_table(self) -> str:
        lines = [HEADER, SEPARATOR]
        lines.extend(self.format_row(site) for site in self.sites)
        return "\n".join(lines) + "\n"

    def render(self, outfile: TextIO, metadata: Optional[Metadata] = None) -> None:
        outfile.write(self.format_table())

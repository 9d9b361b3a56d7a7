from typing import Any
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import TextIO

from kmemtrace._callsites import CallSiteStats
from kmemtrace._metadata import Metadata
from kmemtrace._stats import Stats
from kmemtrace.reporters.templates import render_report


class TableReporter:
    def __init__(self, data: List[Dict[str, Any]], *, stats: Optional[Stats] = None):
        self.data = data
        self.stats = stats

    @classmethod
    def from_callsites(
        cls,
        sites: Iterable[CallSiteStats],
        *,
        stats: Optional[Stats] = None,
    ) -> "TableReporter":
        result = [
            {
                "function": site.site,
                "waste": site.waste,
                "current_alloc": site.current_alloc,
                "current_requested": site.current_requested,
                "total_alloc": site.total_alloc,
                "total_requested": site.total_requested,
                "max_alloc": site.max_alloc,
                "max_requested": site.max_requested,
                "max_waste": site.max_waste,
                "alloc_count": site.alloc_count,
                "free_count": site.free_count,
            }
            for site in sites
        ]
        return cls(result, stats=stats)

    def render(self, outfile: TextIO, metadata: Optional[Metadata]) -> None:
        html_code = render_report(
            kind="table",
            data=self.data,
            metadata=metadata,
            stats=self.stats,
        )
        print(html_code, file=outfile)

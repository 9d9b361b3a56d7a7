import json
from dataclasses import asdict
from pathlib import Path
from typing import Any
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

import rich

from kmemtrace._callsites import CallSiteStats
from kmemtrace._stats import Stats

from .common import size_fmt
from .common import sort_callsites


class StatsReporter:
    """Account-style summary of a whole trace.

    Prints the totals of the run followed by the call sites that waste the
    most memory and the ones that allocate the most, or dumps the same
    information as JSON.
    """

    def __init__(
        self, stats: Stats, sites: Iterable[CallSiteStats], num_largest: int
    ):
        self._stats = stats
        self._sites = tuple(sites)
        if num_largest < 1:
            raise ValueError(f"Invalid input num_largest={num_largest}, should be >=1")
        self.num_largest = num_largest

    def render(self, json_output_file: Optional[Path] = None) -> None:
        if json_output_file:
            self._render_to_json(json_output_file)
        else:
            self._render_to_terminal()

    def _top(self, key: str) -> List[CallSiteStats]:
        return sort_callsites(self._sites, key)[: self.num_largest]

    @staticmethod
    def _print_bytes(label: str, value: int) -> None:
        print(f"\t{label + ':':<11}{value:>12} ({size_fmt(value)})")

    def _render_to_terminal(self) -> None:
        stats = self._stats
        rich.print("📦 [bold]Current memory:[/]")
        self._print_bytes("allocated", stats.current_alloc)
        self._print_bytes("requested", stats.current_requested)
        self._print_bytes("wasted", stats.current_waste)

        print()
        rich.print("📏 [bold]Lifetime totals:[/]")
        self._print_bytes("allocated", stats.total_alloc)
        self._print_bytes("requested", stats.total_requested)

        print()
        rich.print("📊 [bold]Events:[/]")
        print(f"\tallocations:         {stats.num_allocs:>10}")
        print(f"\tfrees:               {stats.num_frees:>10}")
        print(f"\tfrees of unknown ptr:{stats.num_lost_frees:>10}")
        print(f"\treused live pointers:{stats.num_overwritten:>10}")
        print(f"\tstill live:          {stats.num_live_allocations:>10}")
        print(f"\tcall sites:          {stats.num_callsites:>10}")
        if stats.metadata is not None and stats.metadata.has_missed_events:
            print(f"\tlost by the tracer:  {stats.metadata.lost_events:>10}")

        print()
        rich.print(f"🗑️  [bold]Top {self.num_largest} call sites by waste:[/]")
        for site in self._top("waste"):
            print(f"\t- {site.site} -> {size_fmt(site.waste)}")

        print()
        rich.print(
            f"🥇 [bold]Top {self.num_largest} call sites"
            " by total allocated memory:[/]"
        )
        for site in self._top("total_alloc"):
            print(
                f"\t- {site.site} -> {size_fmt(site.total_alloc)}"
                f" in {site.alloc_count} allocations"
            )

    def _render_to_json(self, out_path: Path) -> None:
        stats = self._stats
        metadata = asdict(stats.metadata) if stats.metadata is not None else None

        data: Dict[str, Any] = {
            "current_bytes_allocated": stats.current_alloc,
            "current_bytes_requested": stats.current_requested,
            "current_bytes_wasted": stats.current_waste,
            "total_bytes_allocated": stats.total_alloc,
            "total_bytes_requested": stats.total_requested,
            "num_allocations": stats.num_allocs,
            "num_frees": stats.num_frees,
            "num_lost_frees": stats.num_lost_frees,
            "num_overwritten": stats.num_overwritten,
            "num_ignored": stats.num_ignored,
            "num_live_allocations": stats.num_live_allocations,
            "num_callsites": stats.num_callsites,
            "top_callsites_by_waste": [
                {"callsite": site.site, "waste": site.waste}
                for site in self._top("waste")
            ],
            "top_callsites_by_total_allocated": [
                {
                    "callsite": site.site,
                    "total_allocated": site.total_alloc,
                    "count": site.alloc_count,
                }
                for site in self._top("total_alloc")
            ],
            "metadata": metadata,
        }

        with open(out_path, "w") as f:
            json.dump(data, f, indent=2)

import os
from typing import IO
from typing import Iterable
from typing import Optional

from rich import print as rprint
from rich.markup import escape
from rich.table import Column
from rich.table import Table

from kmemtrace._callsites import CallSiteStats

from .common import size_fmt
from .common import sort_callsites

DEFAULT_TERMINAL_LINES = 24


def _get_terminal_lines() -> int:
    try:
        return os.get_terminal_size().lines
    except OSError:
        return DEFAULT_TERMINAL_LINES


def _size_to_color(proportion_of_total: float) -> str:
    if proportion_of_total > 0.6:
        return "red"
    elif proportion_of_total > 0.2:
        return "yellow"
    elif proportion_of_total > 0.05:
        return "green"
    else:
        return "bright_green"


class SummaryReporter:
    COLUMN_TO_SORT_KEY = {
        1: "waste",
        2: "current_alloc",
        3: "total_alloc",
        4: "max_waste",
        5: "alloc_count",
    }

    def __init__(self, sites: Iterable[CallSiteStats]):
        self.sites = tuple(sites)
        self.current_waste = sum(site.waste for site in self.sites)
        self.current_alloc = sum(site.current_alloc for site in self.sites)

    def _proportion(self, value: int, total: int) -> float:
        if total <= 0:
            return 0.0
        return value / total

    def render(
        self,
        sort_key: str = "waste",
        *,
        max_rows: Optional[int] = None,
        file: Optional[IO[str]] = None,
    ) -> None:
        # Leave room for the table borders, the header and a shell prompt.
        max_rows = max_rows or max(_get_terminal_lines() - 5, 10)
        table = Table(
            Column("Call site", ratio=4),
            Column("Waste", ratio=1, justify="right"),
            Column("Current", ratio=1, justify="right"),
            Column("Total", ratio=1, justify="right"),
            Column("Max Waste", ratio=1, justify="right"),
            Column("Allocs/Frees", ratio=1, justify="right"),
            expand=True,
        )
        for index, key in self.COLUMN_TO_SORT_KEY.items():
            if key == sort_key:
                table.columns[index].header = f"<{table.columns[index].header}>"

        for site in sort_callsites(self.sites, sort_key)[:max_rows]:
            waste_color = _size_to_color(
                self._proportion(site.waste, self.current_waste)
            )
            current_color = _size_to_color(
                self._proportion(site.current_alloc, self.current_alloc)
            )
            table.add_row(
                f"[bold magenta]{escape(site.site)}[/]",
                f"[{waste_color}]{size_fmt(site.waste)}[/{waste_color}]",
                f"[{current_color}]{size_fmt(site.current_alloc)}[/{current_color}]",
                size_fmt(site.total_alloc),
                size_fmt(site.max_waste),
                f"{site.alloc_count}/{site.free_count}",
            )

        rprint(table, file=file)

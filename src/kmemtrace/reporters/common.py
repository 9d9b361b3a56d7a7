from typing import Iterable
from typing import List

from kmemtrace._callsites import CallSiteStats

SORT_KEYS = (
    "waste",
    "max_waste",
    "current_alloc",
    "total_alloc",
    "max_alloc",
    "alloc_count",
)


def size_fmt(num: float, suffix: str = "B") -> str:
    for unit in ("", "Ki", "Mi", "Gi", "Ti", "Pi", "Ei", "Zi"):
        if abs(num) < 1024.0:
            return f"{num:5.3f}{unit}{suffix}"
        num /= 1024.0
    return f"{num:.1f}Yi{suffix}"


def sort_callsites(sites: Iterable[CallSiteStats], key: str) -> List[CallSiteStats]:
    if key not in SORT_KEYS:
        raise ValueError(f"Invalid sort key {key!r}, expected one of {SORT_KEYS}")
    return sorted(sites, key=lambda site: getattr(site, key), reverse=True)

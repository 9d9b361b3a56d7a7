from dataclasses import dataclass
from typing import Optional

from ._metadata import Metadata


@dataclass
class Stats:
    metadata: Optional[Metadata]
    num_allocs: int
    num_frees: int
    num_lost_frees: int
    num_overwritten: int
    num_ignored: int
    num_callsites: int
    num_live_allocations: int
    current_alloc: int
    current_requested: int
    total_alloc: int
    total_requested: int

    @property
    def current_waste(self) -> int:
        return self.current_alloc - self.current_requested

    @property
    def total_waste(self) -> int:
        return self.total_alloc - self.total_requested

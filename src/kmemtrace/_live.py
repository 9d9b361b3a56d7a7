from dataclasses import dataclass
from typing import Dict
from typing import Optional

from ._callsites import CallSiteStats


@dataclass(frozen=True)
class LiveAllocation:
    pointer: int
    owner: CallSiteStats
    requested: int
    granted: int


class LiveAllocationTable:
    """Outstanding allocations indexed by pointer value.

    At most one record exists per pointer. Installing a record for a pointer
    that is still live replaces the previous record; the statistics of the
    previous owner are left untouched.
    """

    def __init__(self) -> None:
        self._allocations: Dict[int, LiveAllocation] = {}

    def find(self, pointer: int) -> Optional[LiveAllocation]:
        return self._allocations.get(pointer)

    def insert_or_replace(
        self, pointer: int, owner: CallSiteStats, requested: int, granted: int
    ) -> Optional[LiveAllocation]:
        """Install a record for ``pointer`` and return the one it replaced."""
        previous = self._allocations.get(pointer)
        self._allocations[pointer] = LiveAllocation(pointer, owner, requested, granted)
        return previous

    def remove(self, pointer: int) -> Optional[LiveAllocation]:
        return self._allocations.pop(pointer, None)

    def __contains__(self, pointer: object) -> bool:
        return pointer in self._allocations

    def __len__(self) -> int:
        return len(self._allocations)

"""Resolve kernel call-site addresses to function names.

Symbols are read from a ``System.map`` file or from ``/proc/kallsyms``. Both
use the same layout: one ``address type name [module]`` entry per line.
"""
import bisect
import logging
import os
import re
from pathlib import Path
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple
from typing import Union

logger = logging.getLogger(__name__)

TEXT_SYMBOL_TYPES = frozenset("tTwW")
ADDRESS_RE = re.compile(r"^(?:0x)?[0-9a-fA-F]{8,}$")


class SymbolMap:
    """Map addresses to the nearest text symbol at or below them.

    Every resolution is cached by address, so looking up the same address
    twice returns the very same string object. The aggregator relies on this
    to group allocations from the same call site together.
    """

    def __init__(
        self, symbols: Iterable[Tuple[int, str]] = (), *, with_offset: bool = False
    ) -> None:
        entries = sorted(symbols)
        self._addresses: List[int] = [address for address, _ in entries]
        self._names: List[str] = [name for _, name in entries]
        self.with_offset = with_offset
        self._cache: Dict[int, str] = {}
        self._symbolized: Dict[str, str] = {}

    @classmethod
    def from_file(
        cls, path: Union[str, "os.PathLike[str]"], *, with_offset: bool = False
    ) -> "SymbolMap":
        path = Path(path)
        with open(path) as f:
            symbols = list(parse_symbol_lines(f))
        logger.info("Loaded %d text symbols from %s", len(symbols), path)
        return cls(symbols, with_offset=with_offset)

    def __len__(self) -> int:
        return len(self._addresses)

    def lookup(self, address: int) -> str:
        name = self._cache.get(address)
        if name is None:
            name = self._resolve(address)
            self._cache[address] = name
        return name

    def _resolve(self, address: int) -> str:
        index = bisect.bisect_right(self._addresses, address) - 1
        if index < 0 or address > self._addresses[-1]:
            return f"{address:#x}"

        name = self._names[index]
        if name.startswith("."):
            name = name[1:]
        if self.with_offset:
            return f"{name}+{address - self._addresses[index]:#x}"
        return name

    def lookup_call_site(self, value: str) -> Optional[str]:
        """Resolve a raw ``call_site`` field value.

        Kernels that print call sites as addresses get them resolved through
        the map. Newer kernels already print ``function+0xoff/0xlen``, in
        which case only the function name is kept.
        """
        if ADDRESS_RE.match(value):
            return self.lookup(int(value, 16))
        return self._intern_symbolized(value)

    def _intern_symbolized(self, value: str) -> Optional[str]:
        name, _, offset = value.partition("+")
        if not name:
            return None
        if self.with_offset and offset:
            name = f"{name}+{offset.split('/', 1)[0]}"
        return self._symbolized.setdefault(name, name)


def parse_symbol_lines(lines: Iterable[str]) -> Iterable[Tuple[int, str]]:
    for line in lines:
        parts = line.split()
        if len(parts) < 3:
            continue
        address_str, symbol_type, name = parts[:3]
        if symbol_type not in TEXT_SYMBOL_TYPES:
            continue
        try:
            address = int(address_str, 16)
        except ValueError:
            continue
        # kallsyms read without privileges reports every address as zero
        if address == 0:
            continue
        yield address, name

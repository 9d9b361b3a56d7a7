from ._aggregator import KmemAggregator
from ._callsites import CallSiteStats
from ._callsites import CallSiteTable
from ._errors import KmemtraceError
from ._events import EventKind
from ._events import KmemEvent
from ._live import LiveAllocation
from ._live import LiveAllocationTable
from ._logging import set_log_level
from ._metadata import Metadata
from ._reader import TraceReader
from ._reader import TraceRecord
from ._stats import Stats
from ._symbols import SymbolMap
from ._version import __version__

__all__ = [
    "CallSiteStats",
    "CallSiteTable",
    "EventKind",
    "KmemAggregator",
    "KmemEvent",
    "KmemtraceError",
    "LiveAllocation",
    "LiveAllocationTable",
    "Metadata",
    "Stats",
    "SymbolMap",
    "TraceReader",
    "TraceRecord",
    "__version__",
    "set_log_level",
]

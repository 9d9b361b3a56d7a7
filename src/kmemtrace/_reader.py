"""Read kmem events from ftrace text output.

Both the output of ``trace-cmd report`` and the contents of the tracefs
``trace``/``trace_pipe`` files are understood::

    bash-1234  [001]  5230.123456: kmalloc: call_site=ffffffff8123abcd ptr=...
    bash-1234  [001] d..1. 5230.123456: kfree: call_site=kfree_skb+0x20/0x90 ptr=...
"""
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import ContextManager
from typing import Dict
from typing import Iterable
from typing import Iterator
from typing import Optional
from typing import TextIO
from typing import Union

import rich.progress

from ._errors import KmemtraceError
from ._events import ALL_KINDS
from ._events import EventKind
from ._events import KmemEvent
from ._metadata import Metadata
from ._symbols import SymbolMap

logger = logging.getLogger(__name__)

EVENT_RE = re.compile(
    r"^\s*(?P<comm>.*?)-(?P<pid>\d+)\s+"
    r"(?:\(\s*(?:\d+|-+)\)\s+)?"
    r"\[(?P<cpu>\d+)\]\s+"
    r"(?:(?P<flags>[^\s\d]\S*)\s+)?"
    r"(?P<timestamp>\d+\.\d+):\s+"
    r"(?P<event>\w+):\s*(?P<fields>.*)$"
)
FIELD_RE = re.compile(r"(\w+)=(\S*)")
CPUS_RE = re.compile(r"^\s*cpus=(\d+)\s*$")
LOST_EVENTS_RE = re.compile(r"CPU:\s*(\d+)\s+\[LOST (\d+) EVENTS\]")


@dataclass(frozen=True)
class TraceRecord:
    comm: str
    pid: int
    cpu: int
    timestamp: float
    event: str
    fields: Dict[str, str]


def parse_line(line: str) -> Optional[TraceRecord]:
    match = EVENT_RE.match(line)
    if match is None:
        return None
    return TraceRecord(
        comm=match.group("comm"),
        pid=int(match.group("pid")),
        cpu=int(match.group("cpu")),
        timestamp=float(match.group("timestamp")),
        event=match.group("event"),
        fields=dict(FIELD_RE.findall(match.group("fields"))),
    )


def decode_record(record: TraceRecord, symbols: SymbolMap) -> Optional[KmemEvent]:
    """Turn a trace record into a kmem event.

    Returns ``None`` for records of other tracepoints and for records whose
    fields can't be decoded.
    """
    kind = EventKind.from_name(record.event)
    if kind is None:
        return None

    fields = record.fields
    try:
        ptr = int(fields["ptr"], 16)
        if kind.is_deallocation:
            return KmemEvent(kind=kind.value, ptr=ptr)

        call_site = symbols.lookup_call_site(fields["call_site"])
        if call_site is None:
            raise ValueError(f"invalid call site {fields['call_site']!r}")
        return KmemEvent(
            kind=kind.value,
            ptr=ptr,
            call_site=call_site,
            bytes_req=int(fields["bytes_req"]),
            bytes_alloc=int(fields["bytes_alloc"]),
        )
    except (KeyError, ValueError) as e:
        logger.debug(
            "Skipping malformed %s record at %f: %s", kind.value, record.timestamp, e
        )
        return None


class TraceReader:
    """Stream records out of a trace text file.

    The file is read lazily and only once; :attr:`metadata` describes what
    has been read so far and is complete once the records are exhausted.
    """

    def __init__(
        self,
        file_name: Union[str, "os.PathLike[str]"],
        *,
        symbols: Optional[SymbolMap] = None,
        report_progress: bool = False,
    ) -> None:
        self._path = Path(file_name)
        self.symbols = symbols if symbols is not None else SymbolMap()
        self._report_progress = report_progress
        self._consumed = False
        self._cpus: Optional[int] = None
        self._first_timestamp: Optional[float] = None
        self._last_timestamp: Optional[float] = None
        self._total_records = 0
        self._lost_events = 0
        self._has_missed_events = False

    @property
    def metadata(self) -> Metadata:
        return Metadata(
            trace_file=os.fspath(self._path),
            cpus=self._cpus,
            first_timestamp=self._first_timestamp,
            last_timestamp=self._last_timestamp,
            total_records=self._total_records,
            lost_events=self._lost_events,
            has_missed_events=self._has_missed_events,
        )

    def _open(self) -> ContextManager[TextIO]:
        if self._report_progress:
            return rich.progress.open(
                self._path,
                "r",
                errors="replace",
                description=f"Reading {self._path.name}",
                transient=True,
            )
        return open(self._path, errors="replace")

    def get_records(self) -> Iterator[TraceRecord]:
        if self._consumed:
            raise KmemtraceError(f"{self._path} has already been read")
        self._consumed = True

        with self._open() as f:
            yield from self._parse_lines(f)

        if self._has_missed_events:
            logger.info("%d events were lost while tracing", self._lost_events)

    def _parse_lines(self, lines: Iterable[str]) -> Iterator[TraceRecord]:
        for line in lines:
            if not line.strip() or line.lstrip().startswith("#"):
                continue

            record = parse_line(line)
            if record is not None:
                self._total_records += 1
                if self._first_timestamp is None:
                    self._first_timestamp = record.timestamp
                self._last_timestamp = record.timestamp
                yield record
                continue

            lost = LOST_EVENTS_RE.search(line)
            if lost is not None:
                self._has_missed_events = True
                self._lost_events += int(lost.group(2))
                continue

            cpus = CPUS_RE.match(line)
            if cpus is not None:
                self._cpus = int(cpus.group(1))
                continue

            logger.debug("Skipping unrecognized line: %r", line.rstrip("\n"))

    def get_events(
        self, kinds: Iterable[EventKind] = ALL_KINDS
    ) -> Iterator[KmemEvent]:
        wanted = frozenset(kinds)
        for record in self.get_records():
            kind = EventKind.from_name(record.event)
            if kind is None or kind not in wanted:
                continue
            event = decode_record(record, self.symbols)
            if event is not None:
                yield event

import argparse
import pathlib
import sys
from pathlib import Path
from typing import Iterable
from typing import Optional
from typing import Tuple

from rich import print as pprint

from kmemtrace import KmemAggregator
from kmemtrace import Metadata
from kmemtrace import SymbolMap
from kmemtrace import TraceReader
from kmemtrace._callsites import CallSiteStats
from kmemtrace._errors import KmemtraceCommandError
from kmemtrace._events import ALL_KINDS
from kmemtrace._events import CACHE_KINDS
from kmemtrace._events import KMALLOC_KINDS
from kmemtrace.reporters.common import SORT_KEYS

OUT_OF_MEMORY_EXIT_CODE = 2


def positive_int(value: str) -> int:
    try:
        ivalue = int(value)
    except ValueError:
        ivalue = 0
    if ivalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return ivalue


def add_trace_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-m",
        "--symbol-map",
        help=(
            "System.map or kallsyms file used to resolve call site addresses."
            " Not needed if the trace already contains symbol names"
        ),
        default=None,
    )
    parser.add_argument(
        "--with-offset",
        help="Keep the offset inside the function as part of the call site name",
        action="store_true",
        default=False,
    )
    kinds_group = parser.add_mutually_exclusive_group()
    kinds_group.add_argument(
        "--kmalloc-only",
        help="Only consider kmalloc, kmalloc_node and kfree events",
        action="store_const",
        dest="kinds",
        const=KMALLOC_KINDS,
    )
    kinds_group.add_argument(
        "--cache-only",
        help=(
            "Only consider kmem_cache_alloc, kmem_cache_alloc_node and"
            " kmem_cache_free events"
        ),
        action="store_const",
        dest="kinds",
        const=CACHE_KINDS,
    )
    parser.set_defaults(kinds=ALL_KINDS)
    parser.add_argument(
        "trace", help="Text trace of the kmem events (e.g. from `trace-cmd report`)"
    )


def add_sort_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-s",
        "--sort",
        help="Ranking key used to order call sites. Default is waste",
        choices=SORT_KEYS,
        default="waste",
    )


def load_symbols(symbol_map: Optional[str], with_offset: bool) -> SymbolMap:
    if symbol_map is None:
        return SymbolMap(with_offset=with_offset)
    try:
        return SymbolMap.from_file(symbol_map, with_offset=with_offset)
    except OSError as e:
        raise KmemtraceCommandError(
            f"Failed to read symbol map {symbol_map}\nReason: {e}", exit_code=1
        )


def warn_if_events_were_lost(metadata: Metadata) -> None:
    if not metadata.has_missed_events:
        return
    pprint(
        f":warning: [bold yellow] The tracer lost {metadata.lost_events} events "
        "[/] :warning:\n\n"
        "Allocations and frees may be missing from the trace, so the results "
        "[b]may not be accurate[/]. Consider increasing the trace buffer size "
        "(`trace-cmd record -b`) and recording again.\n",
        file=sys.stderr,
    )


def warn_if_call_sites_unresolved(
    sites: Iterable[CallSiteStats], symbols: SymbolMap
) -> None:
    if len(symbols) or not any(site.site.startswith("0x") for site in sites):
        return
    pprint(
        ":warning: [bold yellow] Call sites could not be resolved to function "
        "names [/] :warning:\n\n"
        "The trace only contains raw addresses. Pass the System.map of the "
        "traced kernel or a copy of its /proc/kallsyms with `--symbol-map`.\n",
        file=sys.stderr,
    )


def aggregate_trace(
    args: argparse.Namespace, *, report_progress: bool = True
) -> Tuple[KmemAggregator, Metadata]:
    """Feed every kmem event of the trace named in ``args`` to an aggregator."""
    trace_path = Path(args.trace)
    if not trace_path.exists() or not trace_path.is_file():
        raise KmemtraceCommandError(f"No such file: {args.trace}", exit_code=1)

    symbols = load_symbols(args.symbol_map, args.with_offset)
    reader = TraceReader(trace_path, symbols=symbols, report_progress=report_progress)
    aggregator = KmemAggregator(kinds=args.kinds)
    try:
        aggregator.apply_events(reader.get_events())
    except BrokenPipeError:
        raise
    except OSError as e:
        raise KmemtraceCommandError(
            f"Failed to read kmem events from {trace_path}\nReason: {e}",
            exit_code=1,
        )
    except MemoryError:
        raise KmemtraceCommandError(
            f"Ran out of memory while aggregating {trace_path}",
            exit_code=OUT_OF_MEMORY_EXIT_CODE,
        )

    metadata = reader.metadata
    warn_if_events_were_lost(metadata)
    warn_if_call_sites_unresolved(aggregator.call_sites, symbols)
    return aggregator, metadata


class OutputFileCommand:
    """Base class for commands that write their report to a file."""

    def __init__(self, reporter_name: str, suffix: str) -> None:
        self.reporter_name = reporter_name
        self.suffix = suffix

    def determine_output_filename(self, trace_file: pathlib.Path) -> pathlib.Path:
        output_name = trace_file.with_suffix(self.suffix).name
        if output_name.startswith("kmemtrace-"):
            output_name = output_name[len("kmemtrace-") :]

        return trace_file.parent / f"kmemtrace-{self.reporter_name}-{output_name}"

    def validate_filenames(
        self, output: Optional[str], trace: str, overwrite: bool = False
    ) -> Tuple[Path, Path]:
        """Ensure that the filenames provided by the user are usable."""
        trace_path = Path(trace)
        if not trace_path.exists() or not trace_path.is_file():
            raise KmemtraceCommandError(f"No such file: {trace}", exit_code=1)

        output_file = Path(
            output
            if output is not None
            else self.determine_output_filename(trace_path)
        )
        if not overwrite and output_file.exists():
            raise KmemtraceCommandError(
                f"File already exists, will not overwrite: {output_file}",
                exit_code=1,
            )
        return trace_path, output_file

    def prepare_parser(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "-o",
            "--output",
            help="Output file name",
            default=None,
        )
        parser.add_argument(
            "-f",
            "--force",
            help="If the output file already exists, overwrite it",
            action="store_true",
            default=False,
        )
        add_trace_arguments(parser)


import argparse
import os
from pathlib import Path

from kmemtrace import TraceReader
from kmemtrace._errors import KmemtraceCommandError

from .common import add_trace_arguments
from .common import load_symbols


class ParseCommand:
    """Debug a trace file by decoding and printing each kmem event in it"""

    def prepare_parser(self, parser: argparse.ArgumentParser) -> None:
        add_trace_arguments(parser)

    def run(self, args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
        if os.isatty(1):
            raise KmemtraceCommandError(
                "You must redirect stdout to a file or shell pipeline.",
                exit_code=1,
            )

        trace_path = Path(args.trace)
        if not trace_path.exists() or not trace_path.is_file():
            raise KmemtraceCommandError(f"No such file: {args.trace}", exit_code=1)

        reader = TraceReader(
            trace_path, symbols=load_symbols(args.symbol_map, args.with_offset)
        )
        try:
            for event in reader.get_events(args.kinds):
                print(event)
        except BrokenPipeError:
            raise
        except OSError as e:
            raise KmemtraceCommandError(
                f"Failed to parse kmem events in {args.trace}\nReason: {e}",
                exit_code=1,
            )

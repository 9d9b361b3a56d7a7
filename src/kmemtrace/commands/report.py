import argparse
import sys
from pathlib import Path

from kmemtrace._errors import KmemtraceCommandError
from kmemtrace.reporters import BaseReporter
from kmemtrace.reporters.waste import WasteReporter

from .common import add_sort_argument
from .common import add_trace_arguments
from .common import aggregate_trace


class ReportCommand:
    """Print the per call site waste table of a kmem trace"""

    def prepare_parser(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "-o",
            "--output",
            help="Write the table to this file instead of standard output",
            default=None,
        )
        parser.add_argument(
            "-f",
            "--force",
            help="If the output file already exists, overwrite it",
            action="store_true",
            default=False,
        )
        add_sort_argument(parser)
        add_trace_arguments(parser)

    def run(self, args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
        output_file = Path(args.output) if args.output is not None else None
        if output_file is not None and not args.force and output_file.exists():
            raise KmemtraceCommandError(
                f"File already exists, will not overwrite: {output_file}",
                exit_code=1,
            )

        aggregator, metadata = aggregate_trace(args)
        reporter: BaseReporter = WasteReporter(aggregator.finalize(args.sort))

        if output_file is None:
            reporter.render(outfile=sys.stdout, metadata=metadata)
            return
        with open(output_file.expanduser(), "w") as f:
            reporter.render(outfile=f, metadata=metadata)
        print(f"Wrote {output_file}")

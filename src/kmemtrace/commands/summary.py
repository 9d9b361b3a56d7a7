import argparse

from kmemtrace.reporters.summary import SummaryReporter

from .common import add_sort_argument
from .common import add_trace_arguments
from .common import aggregate_trace
from .common import positive_int


class SummaryCommand:
    """Show the call sites that waste the most memory as a table in the terminal"""

    def prepare_parser(self, parser: argparse.ArgumentParser) -> None:
        add_sort_argument(parser)
        parser.add_argument(
            "-r",
            "--max-rows",
            help="Maximum number of rows to display. Defaults to fit the terminal",
            type=positive_int,
            default=None,
        )
        add_trace_arguments(parser)

    def run(self, args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
        aggregator, _ = aggregate_trace(args)
        reporter = SummaryReporter(aggregator.finalize(sort_key=args.sort))
        reporter.render(sort_key=args.sort, max_rows=args.max_rows)

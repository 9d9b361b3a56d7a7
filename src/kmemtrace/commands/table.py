import argparse

from ..reporters import BaseReporter
from ..reporters.table import TableReporter
from .common import OutputFileCommand
from .common import add_sort_argument
from .common import aggregate_trace


class TableCommand(OutputFileCommand):
    """Generate an HTML table with the statistics of every call site"""

    def __init__(self) -> None:
        super().__init__(reporter_name="table", suffix=".html")

    def prepare_parser(self, parser: argparse.ArgumentParser) -> None:
        add_sort_argument(parser)
        super().prepare_parser(parser)

    def run(self, args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
        _, output_file = self.validate_filenames(
            output=args.output,
            trace=args.trace,
            overwrite=args.force,
        )

        aggregator, metadata = aggregate_trace(args)
        reporter: BaseReporter = TableReporter.from_callsites(
            aggregator.finalize(sort_key=args.sort),
            stats=aggregator.stats(metadata),
        )
        with open(output_file.expanduser(), "w") as f:
            reporter.render(outfile=f, metadata=metadata)

        print(f"Wrote {output_file}")

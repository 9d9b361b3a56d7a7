import argparse
from pathlib import Path
from typing import Optional

from kmemtrace.reporters.stats import StatsReporter

from .common import OutputFileCommand
from .common import aggregate_trace
from .common import positive_int


class StatsCommand(OutputFileCommand):
    """Generate high level stats of the kernel memory usage in the terminal"""

    def __init__(self) -> None:
        super().__init__(reporter_name="stats", suffix=".json")

    def prepare_parser(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "-n",
            "--num-largest",
            help="Number of call sites listed in each ranking. Default is 5",
            type=positive_int,
            default=5,
        )
        parser.add_argument(
            "--json",
            help=(
                "Write the stats to a JSON file instead of the terminal. The file"
                " is named after the trace unless -o is given"
            ),
            action="store_true",
            default=False,
        )
        super().prepare_parser(parser)

    def run(self, args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
        json_output_file: Optional[Path] = None
        if args.json:
            _, json_output_file = self.validate_filenames(
                output=args.output,
                trace=args.trace,
                overwrite=args.force,
            )

        aggregator, metadata = aggregate_trace(args)
        reporter = StatsReporter(
            aggregator.stats(metadata),
            aggregator.finalize(),
            args.num_largest,
        )
        reporter.render(json_output_file=json_output_file)
        if json_output_file is not None:
            print(f"Wrote {json_output_file}")

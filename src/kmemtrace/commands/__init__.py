import argparse
import logging
import os
import sys
import textwrap
from typing import Dict
from typing import List
from typing import Optional
from typing import Protocol

from kmemtrace._errors import KmemtraceCommandError
from kmemtrace._errors import KmemtraceError
from kmemtrace._logging import set_log_level
from kmemtrace._version import __version__

from .parse import ParseCommand
from .report import ReportCommand
from .stats import StatsCommand
from .summary import SummaryCommand
from .table import TableCommand


class Command(Protocol):
    def prepare_parser(self, parser: argparse.ArgumentParser) -> None:
        ...

    def run(self, args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
        ...


_COMMANDS: Dict[str, Command] = {
    "report": ReportCommand(),
    "summary": SummaryCommand(),
    "stats": StatsCommand(),
    "table": TableCommand(),
    "parse": ParseCommand(),
}

_LOG_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)

_EPILOG = textwrap.dedent(
    """\
    Traces are read in the text format printed by `trace-cmd report` or by
    the tracefs `trace` file, for example after
    `trace-cmd record -e kmem:kmalloc* -e kmem:kfree -e kmem:kmem_cache_*`.
    """
)

_DESCRIPTION = textwrap.dedent(
    """\
    Kernel memory allocation waste analyzer

    Shows, for every call site that allocated kernel memory during a trace,
    how many bytes the allocator granted beyond what was requested.

        Examples:

        $ kmemtrace report -m /boot/System.map-$(uname -r) trace.txt
        $ kmemtrace summary --sort total_alloc trace.txt
        $ kmemtrace stats --json trace.txt
        $ kmemtrace table -o waste.html trace.txt
    """
)


def get_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=_DESCRIPTION,
        prog="kmemtrace",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=_EPILOG,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log what the parser skips. Repeat for more detail (-vv)",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=__version__,
        help="Displays the current version of kmemtrace",
    )

    subparsers = parser.add_subparsers(
        help="Mode of operation",
        dest="command",
        required=True,
    )
    for name, command in _COMMANDS.items():
        command_parser = subparsers.add_parser(
            name, help=command.__doc__, description=command.__doc__, epilog=_EPILOG
        )
        command_parser.set_defaults(entrypoint=command.run)
        command.prepare_parser(command_parser)

    return parser


def log_level_for_verbosity(verbose_level: int) -> int:
    return _LOG_LEVELS[min(verbose_level, len(_LOG_LEVELS) - 1)]


def main(args: Optional[List[str]] = None) -> int:
    parser = get_argument_parser()
    arg_values = parser.parse_args(args=sys.argv[1:] if args is None else args)
    set_log_level(log_level_for_verbosity(arg_values.verbose))

    try:
        arg_values.entrypoint(arg_values, parser)
    except KmemtraceCommandError as e:
        print(e, file=sys.stderr)
        return e.exit_code
    except KmemtraceError as e:
        print(e, file=sys.stderr)
        return 1
    except BrokenPipeError:
        # The reader of a pipeline like `kmemtrace report | head` went away.
        # Point stdout at devnull so the interpreter's final flush is silent.
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        return 1
    return 0

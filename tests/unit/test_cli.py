import argparse
import errno
import io
import json
import logging
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from kmemtrace._events import ALL_KINDS
from kmemtrace._events import CACHE_KINDS
from kmemtrace._events import KMALLOC_KINDS
from kmemtrace.commands import log_level_for_verbosity
from kmemtrace.commands import main
from kmemtrace.commands.common import positive_int
from kmemtrace.commands.report import ReportCommand
from kmemtrace.commands.stats import StatsCommand
from kmemtrace.commands.summary import SummaryCommand
from kmemtrace.commands.table import TableCommand
from kmemtrace.reporters.waste import HEADER
from kmemtrace.reporters.waste import SEPARATOR
from tests.utils import SAMPLE_TRACE
from tests.utils import SYSTEM_MAP


@pytest.fixture
def trace_file(tmp_path):
    path = tmp_path / "trace.txt"
    path.write_text(SAMPLE_TRACE)
    return path


@pytest.fixture
def system_map(tmp_path):
    path = tmp_path / "System.map"
    path.write_text(SYSTEM_MAP)
    return path


class ClosedPipe(io.StringIO):
    """A stdout whose reader has already gone away."""

    def __init__(self, fd):
        super().__init__()
        self._fd = fd

    def write(self, s):
        if s:
            raise BrokenPipeError(errno.EPIPE, "Broken pipe")
        return 0

    def fileno(self):
        return self._fd


@pytest.fixture
def closed_stdout(tmp_path, monkeypatch):
    with open(tmp_path / "stdout", "w") as backing:
        pipe = ClosedPipe(backing.fileno())
        monkeypatch.setattr(sys, "stdout", pipe)
        yield pipe


def test_no_args_passed(capsys):
    with pytest.raises(SystemExit):
        main([])

    captured = capsys.readouterr()
    assert "usage:" in captured.err
    assert "error: the following arguments are required:" in captured.err


def test_version(capsys):
    with pytest.raises(SystemExit):
        main(["-V"])

    captured = capsys.readouterr()
    assert captured.out.strip() == "1.0.0"


class TestReportSubCommand:
    @staticmethod
    def get_prepared_parser():
        parser = argparse.ArgumentParser()
        command = ReportCommand()
        command.prepare_parser(parser)

        return command, parser

    def test_parser_rejects_no_arguments(self):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN / THEN
        with pytest.raises(SystemExit):
            parser.parse_args([])

    def test_parser_accepts_single_argument(self):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN
        namespace = parser.parse_args(["trace.txt"])

        # THEN
        assert namespace.trace == "trace.txt"
        assert namespace.symbol_map is None
        assert namespace.with_offset is False
        assert namespace.kinds == ALL_KINDS
        assert namespace.sort == "waste"
        assert namespace.output is None
        assert namespace.force is False

    def test_parser_accepts_trace_options(self):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN
        namespace = parser.parse_args(
            ["-m", "System.map", "--with-offset", "--cache-only", "trace.txt"]
        )

        # THEN
        assert namespace.symbol_map == "System.map"
        assert namespace.with_offset is True
        assert namespace.kinds == CACHE_KINDS

    def test_parser_rejects_both_kind_filters(self):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN / THEN
        with pytest.raises(SystemExit):
            parser.parse_args(["--kmalloc-only", "--cache-only", "trace.txt"])

    @pytest.mark.parametrize("key", ["total_alloc", "max_waste", "alloc_count"])
    def test_parser_accepts_sort_keys(self, key):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN
        namespace = parser.parse_args(["-s", key, "trace.txt"])

        # THEN
        assert namespace.sort == key

    def test_parser_rejects_unknown_sort_key(self):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN / THEN
        with pytest.raises(SystemExit):
            parser.parse_args(["--sort", "bogus", "trace.txt"])

    def test_report_to_stdout(self, trace_file, system_map, capsys):
        # WHEN
        ret = main(["report", "-m", str(system_map), str(trace_file)])

        # THEN
        assert ret == 0
        captured = capsys.readouterr()
        expected = "\n".join(
            [
                HEADER,
                SEPARATOR,
                "alloc_bar".rjust(32) + "\t56\t256\t200\t\t     256        200\t\t"
                "     256        200\t56",
                "alloc_foo".rjust(32) + "\t14\t64\t50\t\t     192        150\t\t"
                "     192        150\t42",
            ]
        )
        assert captured.out.endswith(expected + "\n")
        assert "The tracer lost 3 events" in captured.err

    def test_report_kmalloc_only(self, trace_file, system_map, capsys):
        # WHEN
        ret = main(
            ["report", "--kmalloc-only", "-m", str(system_map), str(trace_file)]
        )

        # THEN
        assert ret == 0
        captured = capsys.readouterr()
        assert "alloc_foo" in captured.out
        assert "alloc_bar" not in captured.out

    def test_report_without_symbol_map_warns(self, trace_file, capsys):
        # WHEN
        ret = main(["report", str(trace_file)])

        # THEN
        assert ret == 0
        captured = capsys.readouterr()
        assert "0xffffffff81002010".rjust(32) + "\t56" in captured.out
        assert "could not be resolved" in captured.err

    def test_report_to_file(self, tmp_path, trace_file, system_map, capsys):
        # GIVEN
        output = tmp_path / "report.txt"

        # WHEN
        ret = main(
            ["report", "-m", str(system_map), "-o", str(output), str(trace_file)]
        )

        # THEN
        assert ret == 0
        assert output.read_text().startswith(HEADER + "\n" + SEPARATOR + "\n")
        assert f"Wrote {output}" in capsys.readouterr().out

    def test_report_refuses_to_overwrite(self, tmp_path, trace_file, capsys):
        # GIVEN
        output = tmp_path / "report.txt"
        output.write_text("precious")

        # WHEN
        ret = main(["report", "-o", str(output), str(trace_file)])

        # THEN
        assert ret == 1
        assert output.read_text() == "precious"
        assert "File already exists, will not overwrite" in capsys.readouterr().err

    def test_report_overwrites_with_force(self, tmp_path, trace_file):
        # GIVEN
        output = tmp_path / "report.txt"
        output.write_text("precious")

        # WHEN
        ret = main(["report", "-f", "-o", str(output), str(trace_file)])

        # THEN
        assert ret == 0
        assert output.read_text().startswith(HEADER)

    def test_missing_trace(self, tmp_path, capsys):
        # WHEN
        ret = main(["report", str(tmp_path / "missing.txt")])

        # THEN
        assert ret == 1
        assert "No such file" in capsys.readouterr().err

    def test_missing_symbol_map(self, tmp_path, trace_file, capsys):
        # WHEN
        ret = main(["report", "-m", str(tmp_path / "missing"), str(trace_file)])

        # THEN
        assert ret == 1
        assert "Failed to read symbol map" in capsys.readouterr().err

    def test_out_of_memory(self, trace_file, capsys):
        # GIVEN
        with patch(
            "kmemtrace.commands.common.KmemAggregator.apply_events",
            side_effect=MemoryError,
        ):
            # WHEN
            ret = main(["report", str(trace_file)])

        # THEN
        assert ret == 2
        assert "Ran out of memory" in capsys.readouterr().err

    def test_closed_stdout_ends_quietly(
        self, tmp_path, system_map, closed_stdout, capsys
    ):
        # GIVEN
        trace = tmp_path / "complete.txt"
        trace.write_text(SAMPLE_TRACE.replace("CPU:1 [LOST 3 EVENTS]\n", ""))

        # WHEN
        ret = main(["report", "-m", str(system_map), str(trace)])

        # THEN
        assert ret == 1
        assert capsys.readouterr().err == ""


class TestSummarySubCommand:
    @staticmethod
    def get_prepared_parser():
        parser = argparse.ArgumentParser()
        command = SummaryCommand()
        command.prepare_parser(parser)

        return command, parser

    def test_parser_accepts_single_argument(self):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN
        namespace = parser.parse_args(["trace.txt"])

        # THEN
        assert namespace.trace == "trace.txt"
        assert namespace.sort == "waste"
        assert namespace.max_rows is None

    def test_parser_accepts_max_rows_short_form(self):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN
        namespace = parser.parse_args(["-r", "5", "trace.txt"])

        # THEN
        assert namespace.max_rows == 5

    def test_rejects_non_positive_max_rows(self, trace_file, capsys):
        with pytest.raises(SystemExit):
            main(["summary", "-r", "0", str(trace_file)])

        assert "--max-rows" in capsys.readouterr().err

    def test_summary_output(self, trace_file, system_map, capsys):
        # WHEN
        ret = main(["summary", "-m", str(system_map), str(trace_file)])

        # THEN
        assert ret == 0
        out = capsys.readouterr().out
        assert out.index("alloc_bar") < out.index("alloc_foo")


class TestStatsSubCommand:
    @staticmethod
    def get_prepared_parser():
        parser = argparse.ArgumentParser()
        command = StatsCommand()
        command.prepare_parser(parser)

        return command, parser

    def test_parser_accepts_single_argument(self):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN
        namespace = parser.parse_args(["trace.txt"])

        # THEN
        assert namespace.trace == "trace.txt"
        assert namespace.num_largest == 5
        assert namespace.json is False

    def test_parser_rejects_invalid_num_largest(self):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN / THEN
        with pytest.raises(SystemExit):
            parser.parse_args(["-n", "-1", "trace.txt"])

    def test_stats_in_terminal(self, trace_file, system_map, capsys):
        # WHEN
        ret = main(["stats", "-m", str(system_map), str(trace_file)])

        # THEN
        assert ret == 0
        out = capsys.readouterr().out
        assert "Current memory:" in out
        assert "\t- alloc_bar -> 56.000B" in out

    def test_stats_json_default_filename(self, tmp_path, trace_file, system_map):
        # WHEN
        ret = main(["stats", "--json", "-m", str(system_map), str(trace_file)])

        # THEN
        assert ret == 0
        output = tmp_path / "kmemtrace-stats-trace.json"
        data = json.loads(output.read_text())
        assert data["num_allocations"] == 3
        assert data["num_lost_frees"] == 1
        assert data["current_bytes_wasted"] == 70
        assert data["metadata"]["lost_events"] == 3
        assert data["top_callsites_by_waste"][0] == {
            "callsite": "alloc_bar",
            "waste": 56,
        }

    def test_stats_json_refuses_to_overwrite(self, tmp_path, trace_file, capsys):
        # GIVEN
        output = tmp_path / "kmemtrace-stats-trace.json"
        output.write_text("{}")

        # WHEN
        ret = main(["stats", "--json", str(trace_file)])

        # THEN
        assert ret == 1
        assert output.read_text() == "{}"


class TestTableSubCommand:
    @staticmethod
    def get_prepared_parser():
        parser = argparse.ArgumentParser()
        command = TableCommand()
        command.prepare_parser(parser)

        return command, parser

    def test_parser_takes_force_flag(self):
        # GIVEN
        _, parser = self.get_prepared_parser()

        # WHEN
        namespace = parser.parse_args(
            ["trace.txt", "--force", "--output", "output.html"]
        )

        # THEN
        assert namespace.trace == "trace.txt"
        assert namespace.output == "output.html"
        assert namespace.force is True

    def test_table_default_filename(self, tmp_path, trace_file, system_map, capsys):
        # WHEN
        ret = main(["table", "-m", str(system_map), str(trace_file)])

        # THEN
        assert ret == 0
        output = tmp_path / "kmemtrace-table-trace.html"
        html = output.read_text()
        assert "alloc_bar" in html
        assert "alloc_foo" in html
        assert f"Wrote {output}" in capsys.readouterr().out


@pytest.mark.parametrize(
    "input, expected",
    (
        ("trace.txt", "kmemtrace-table-trace.html"),
        ("/tmp/trace.txt", "/tmp/kmemtrace-table-trace.html"),
        ("../my-trace.txt", "../kmemtrace-table-my-trace.html"),
        ("kmemtrace-boot.txt", "kmemtrace-table-boot.html"),
    ),
)
def test_determine_output(input, expected):
    # GIVEN
    command = TableCommand()

    # WHEN/THEN
    assert command.determine_output_filename(Path(input)) == Path(expected)


@patch("kmemtrace.commands.parse.os.isatty", return_value=False)
class TestParseSubCommand:
    def test_prints_every_kmem_event(self, isatty, trace_file, system_map, capsys):
        # WHEN
        ret = main(["parse", "-m", str(system_map), str(trace_file)])

        # THEN
        assert ret == 0
        assert capsys.readouterr().out.splitlines() == [
            "kmalloc call_site=alloc_foo ptr=0xffff888000001000"
            " bytes_req=100 bytes_alloc=128",
            "kmalloc_node call_site=alloc_foo ptr=0xffff888000002000"
            " bytes_req=50 bytes_alloc=64",
            "kmem_cache_alloc call_site=alloc_bar ptr=0xffff888000003000"
            " bytes_req=200 bytes_alloc=256",
            "kfree ptr=0xffff888000001000",
            "kmem_cache_free ptr=0xffff888000009000",
        ]

    def test_filters_by_kind(self, isatty, trace_file, capsys):
        # WHEN
        ret = main(["parse", "--kmalloc-only", str(trace_file)])

        # THEN
        assert ret == 0
        out = capsys.readouterr().out
        assert "kmem_cache" not in out
        assert len(out.splitlines()) == 3

    def test_refuses_to_print_to_a_terminal(self, isatty, trace_file, capsys):
        # GIVEN
        isatty.return_value = True

        # WHEN
        ret = main(["parse", str(trace_file)])

        # THEN
        assert ret == 1
        assert "redirect stdout" in capsys.readouterr().err

    def test_closed_stdout_ends_quietly(
        self, isatty, trace_file, system_map, closed_stdout, capsys
    ):
        # WHEN
        ret = main(["parse", "-m", str(system_map), str(trace_file)])

        # THEN
        assert ret == 1
        assert capsys.readouterr().err == ""


def test_kind_filter_constants_are_disjoint():
    assert not KMALLOC_KINDS & CACHE_KINDS
    assert KMALLOC_KINDS | CACHE_KINDS == ALL_KINDS


@pytest.mark.parametrize(
    "verbosity, level",
    [(0, logging.WARNING), (1, logging.INFO), (2, logging.DEBUG), (5, logging.DEBUG)],
)
def test_log_level_for_verbosity(verbosity, level):
    assert log_level_for_verbosity(verbosity) == level


@pytest.mark.parametrize("value", ["0", "-3", "three", ""])
def test_positive_int_rejects(value):
    with pytest.raises(argparse.ArgumentTypeError):
        positive_int(value)


def test_positive_int_accepts():
    assert positive_int("12") == 12

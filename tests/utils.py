"""Utilities / Helpers for writing tests."""
import textwrap
from dataclasses import asdict
from typing import Dict
from typing import Iterable

from kmemtrace import CallSiteTable
from kmemtrace import KmemEvent


def alloc(site, ptr, req, granted, kind="kmalloc"):
    return KmemEvent(
        kind=kind, ptr=ptr, call_site=site, bytes_req=req, bytes_alloc=granted
    )


def free(ptr, kind="kfree"):
    return KmemEvent(kind=kind, ptr=ptr)


def snapshot(table: CallSiteTable) -> Dict[str, Dict[str, int]]:
    """Copy the statistics of every call site so they can be compared later."""
    return {stats.site: asdict(stats) for stats in table}


def trace_line(
    event: str,
    fields: str,
    *,
    timestamp: float = 100.0,
    cpu: int = 0,
    comm: str = "bash",
    pid: int = 1234,
) -> str:
    """Format an event line the way `trace-cmd report` prints it."""
    prefix = f"{comm:>16}-{pid:<5} [{cpu:03d}] {timestamp:12.6f}:"
    return f"{prefix} {event + ':':<22}{fields}"


def write_trace(path, lines: Iterable[str]):
    path.write_text("\n".join(lines) + "\n")
    return path


SYSTEM_MAP = textwrap.dedent(
    """\
    ffffffff81000000 T _text
    ffffffff81001000 T alloc_foo
    ffffffff81002000 t alloc_bar
    ffffffff81002800 D some_table
    ffffffff81003000 T kfree
    ffffffff81004000 T _etext
    """
)

SAMPLE_TRACE = "\n".join(
    [
        "version = 6",
        "cpus=2",
        trace_line(
            "kmalloc",
            "call_site=ffffffff81001010 ptr=0xffff888000001000"
            " bytes_req=100 bytes_alloc=128 gfp_flags=GFP_KERNEL",
            timestamp=100.000001,
        ),
        trace_line(
            "kmalloc_node",
            "call_site=ffffffff81001020 ptr=0xffff888000002000"
            " bytes_req=50 bytes_alloc=64 gfp_flags=GFP_KERNEL node=0",
            timestamp=100.000002,
        ),
        trace_line(
            "kmem_cache_alloc",
            "call_site=ffffffff81002010 ptr=0xffff888000003000"
            " bytes_req=200 bytes_alloc=256 gfp_flags=GFP_KERNEL",
            timestamp=100.000003,
            cpu=1,
        ),
        trace_line(
            "sched_switch",
            "prev_comm=bash prev_pid=1234 prev_prio=120 next_comm=swapper/1"
            " next_pid=0 next_prio=120",
            timestamp=100.000004,
            cpu=1,
        ),
        trace_line(
            "kfree",
            "call_site=ffffffff81003000 ptr=0xffff888000001000",
            timestamp=100.000005,
        ),
        "CPU:1 [LOST 3 EVENTS]",
        trace_line(
            "kmem_cache_free",
            "call_site=ffffffff81003000 ptr=0xffff888000009000",
            timestamp=100.000006,
            cpu=1,
        ),
    ]
) + "\n"

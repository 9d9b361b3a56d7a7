"""Templates to render reports in HTML."""
from functools import lru_cache
from typing import Any
from typing import Dict
from typing import Iterable
from typing import Optional

import jinja2

from kmemtrace._metadata import Metadata
from kmemtrace._stats import Stats


@lru_cache(maxsize=1)
def get_render_environment() -> jinja2.Environment:
    loader = jinja2.PackageLoader("kmemtrace.reporters")
    env = jinja2.Environment(loader=loader, autoescape=True)
    return env


def get_report_title(*, kind: str, metadata: Optional[Metadata]) -> str:
    parts = [kind, "report"]
    if metadata is not None:
        parts.append(f"for {metadata.trace_file}")
    return " ".join(parts)


def render_report(
    *,
    kind: str,
    data: Iterable[Dict[str, Any]],
    metadata: Optional[Metadata],
    stats: Optional[Stats],
) -> str:
    env = get_render_environment()
    template = env.get_template(kind + ".html")

    pretty_kind = kind.replace("_", " ")
    title = get_report_title(kind=pretty_kind, metadata=metadata)
    return template.render(
        kind=pretty_kind,
        title=title,
        data=data,
        metadata=metadata,
        stats=stats,
    )

from typing import Optional
from typing import Protocol
from typing import TextIO

from kmemtrace._metadata import Metadata


class BaseReporter(Protocol):
    def render(
        self,
        outfile: TextIO,
        metadata: Optional[Metadata],
    ) -> None:
        ...

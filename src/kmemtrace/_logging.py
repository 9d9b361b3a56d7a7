import logging

from rich.console import Console
from rich.logging import RichHandler

_handler = RichHandler(console=Console(stderr=True), show_path=False)


def set_log_level(level: int) -> None:
    """Set the threshold for messages emitted by this package."""
    logger = logging.getLogger("kmemtrace")
    if _handler not in logger.handlers:
        logger.addHandler(_handler)
        logger.propagate = False
    logger.setLevel(level)

import logging

import pytest


@pytest.fixture(autouse=True)
def use_80_columns(monkeypatch):
    """Override the COLUMNS environment variable to 80.

    This matches the assumed terminal width that is hardcoded in the tests.
    """
    monkeypatch.setenv("COLUMNS", "80")


@pytest.fixture(autouse=True)
def restore_package_logger():
    logger = logging.getLogger("kmemtrace")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate

import logging

import pytest

from vtk_scan.scan_core.reporting.formatters import Colors, Emojis


@pytest.fixture(autouse=True)
def reset_scan_logging():
    """Undo handler and terminal state left behind by ``setup_logging``."""
    logger = logging.getLogger("vtk")
    yield
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    Colors.enable()
    Emojis.enable()


@pytest.fixture
def plain_output():
    """Render reports without ANSI colors or emoji."""
    Colors.disable()
    Emojis.disable()
    yield

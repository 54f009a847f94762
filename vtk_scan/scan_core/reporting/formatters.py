"""Terminal output formatters with color and emoji support."""
from __future__ import annotations

import logging
import os
import sys

from vtk_scan.scan_core.models import STATUS_CLEAN, STATUS_INFECTED, STATUS_WARNING


class Colors:
    """ANSI color codes for terminal output."""

    RED = "\033[31m"
    YELLOW = "\033[33m"
    GREEN = "\033[32m"
    BLUE = "\033[34m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    _enabled = True

    @classmethod
    def disable(cls) -> None:
        """Disable all color output."""
        cls._enabled = False

    @classmethod
    def enable(cls) -> None:
        cls._enabled = True

    @classmethod
    def colorize(cls, text: str, color: str) -> str:
        """Apply color to text if colors are enabled."""
        if not cls._enabled or not color:
            return text
        return f"{color}{text}{cls.RESET}"

    @classmethod
    def supports_color(cls) -> bool:
        """Check if the terminal supports color output."""
        # Respect NO_COLOR environment variable (https://no-color.org/)
        if os.environ.get("NO_COLOR"):
            return False
        if not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
            return False
        return True


class Emojis:
    """Emoji indicators for visual scanning results."""

    CRITICAL = "🚨"
    WARNING = "⚠️"
    CLEAN = "✅"
    PACKAGE = "📦"
    WORKFLOW = "⚙️"
    SEARCH = "🔍"

    _enabled = True

    @classmethod
    def disable(cls) -> None:
        """Disable all emoji output."""
        cls._enabled = False

    @classmethod
    def enable(cls) -> None:
        cls._enabled = True

    @classmethod
    def get(cls, emoji: str) -> str:
        """Return emoji followed by a space if enabled, empty string otherwise."""
        return f"{emoji} " if cls._enabled else ""

    @classmethod
    def supports_emoji(cls) -> bool:
        """Check if terminal supports emoji rendering."""
        term = os.environ.get("TERM", "")
        if term == "dumb" or not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
            return False
        return True


def configure_terminal() -> None:
    """Enable colors and emoji only where the terminal can render them."""
    if Colors.supports_color():
        Colors.enable()
    else:
        Colors.disable()
    if Emojis.supports_emoji():
        Emojis.enable()
    else:
        Emojis.disable()


class ColoredFormatter(logging.Formatter):
    """Logging formatter with ANSI color support."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.RED + Colors.BOLD,
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        levelname = record.levelname
        if Colors._enabled:
            record.levelname = Colors.colorize(levelname, self.LEVEL_COLORS.get(record.levelno, ""))
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


STATUS_STYLES = {
    STATUS_CLEAN: (Emojis.CLEAN, Colors.GREEN),
    STATUS_WARNING: (Emojis.WARNING, Colors.YELLOW),
    STATUS_INFECTED: (Emojis.CRITICAL, Colors.RED + Colors.BOLD),
}


def format_status(status: str) -> str:
    """Render a scan status with its emoji and color."""
    emoji, color = STATUS_STYLES[status]
    return Colors.colorize(f"{Emojis.get(emoji)}{status}", color)

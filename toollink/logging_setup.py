"""
ToolLink Logging

Routes the ``toollink`` logger hierarchy to stderr through rich.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

# Log output goes to stderr so it never mixes with command output.
err_console = Console(stderr=True)


def setup_logging(level: int = logging.WARNING) -> logging.Logger:
    """
    Set up logging for ToolLink.

    Args:
        level: Level for console output (default WARNING)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("toollink")
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    handler = RichHandler(
        console=err_console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)

    return logger

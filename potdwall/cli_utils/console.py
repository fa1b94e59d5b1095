"""
potdwall console utilities

This module provides application-wide access to Rich Console objects for writing to stdout
and stderr, and sets up logging so that diagnostics are rendered through Rich as well.
User-facing progress goes through the formatting helpers below; everything else goes through
the logging module.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

potdwall_theme = Theme(
    {"warning": "orange_red1", "fail": "bold red", "confirm": "green", "describe": ""}
)

console = Console(theme=potdwall_theme)
error_console = Console(theme=potdwall_theme, stderr=True)

LOG_LEVELS = {
    "verbose": logging.DEBUG,
    "normal": logging.INFO,
    "quiet": logging.WARNING,
}


def configure_logging(verbosity: str = "normal") -> None:
    """
    Route log records to stderr through a RichHandler. Replaces any handlers already on the
    root logger so repeated invocations (e.g. from tests) don't stack up output.
    """

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(LOG_LEVELS[verbosity])
    root_logger.addHandler(
        RichHandler(console=error_console, show_path=verbosity == "verbose", markup=False)
    )

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


"""
Formatting helpers
"""


def warn(msg: str):
    """
    Format msg and print to stderr.
    """

    error_console.print(f":exclamation_mark-emoji: [bold]warning: [/] {msg}", style="warning")


def describe(msg: str, **kwargs):
    """
    Format descriptive msg and print to stdout.
    """

    console.print(f"{msg}", style="describe", **kwargs)


def confirm_success(msg: str, **kwargs):
    """
    Format confirmation msg and print to stdout. Accept any additional kwargs that console.print from
    rich module exposes.
    """

    console.print(f"{msg}", style="confirm", **kwargs)


def fail(msg: str):
    """
    Format failure msg and print to stderr.
    """

    error_console.print(f":x-emoji: failed. {msg}", style="fail", markup=False)

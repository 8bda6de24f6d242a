"""Logging configuration shared by the CLI and the API."""

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", rich: bool = False) -> None:
    """Set up logging configuration.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        rich: Render records through rich on stderr (CLI) instead of plain
            lines on stdout (API)
    """
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")

    if rich:
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        fmt = "%(name)s | %(message)s"
    else:
        handler = logging.StreamHandler(sys.stdout)
        fmt = LOG_FORMAT

    logging.basicConfig(
        level=numeric,
        format=fmt,
        datefmt=DATE_FORMAT,
        handlers=[handler],
        force=True,
    )
    # The HTTP client logs every request at INFO
    logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))

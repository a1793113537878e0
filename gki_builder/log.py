"""Logging setup for the CLI."""

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: str = "INFO", console: Console | None = None) -> None:
    """Configure root logging with a Rich handler.

    Args:
        level: Logging level name.
        console: Optional console to log to (defaults to stderr).
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


__all__ = ["setup_logging"]

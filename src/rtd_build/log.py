"""Logging setup for rtd-build.

Log records go to stderr; stdout carries CLI output and the MCP stdio
transport.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbose: bool = False) -> None:
    """Install a Rich handler on the root logger.

    Args:
        verbose: Log at DEBUG instead of INFO
    """
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )

    # Suppress verbose MCP logging
    logging.getLogger("mcp").setLevel(logging.WARNING)

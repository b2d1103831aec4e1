"""Logging setup for the CLI entry points."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str = "INFO", rich: bool = True) -> None:
    """
    Configure the root logger once.

    Library modules only ever call ``logging.getLogger(__name__)``; handlers
    are installed here by the CLI.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    if rich:
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric)

    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))

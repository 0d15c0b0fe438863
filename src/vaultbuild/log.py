"""Logging setup for vaultbuild.

Modules log through ``logging.getLogger(__name__)``; nothing here touches the
root logger. Hosts that want console output call ``configure_logging()``.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_PACKAGE_LOGGER = "vaultbuild"


def configure_logging(level: int | str = logging.INFO, console: Console | None = None) -> logging.Logger:
    """Attach a RichHandler to the ``vaultbuild`` logger (idempotent).

    Args:
        level: Logging level for the package logger.
        console: Optional rich Console (defaults to stderr).

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)

    return logger

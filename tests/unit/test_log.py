"""Tests for the rich logging setup."""

from __future__ import annotations

import io
import logging

import pytest
from rich.console import Console
from rich.logging import RichHandler

from vaultbuild.log import configure_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger("vaultbuild")
    saved_handlers, saved_level = list(logger.handlers), logger.level
    logger.handlers = [h for h in logger.handlers if not isinstance(h, RichHandler)]
    yield logger
    logger.handlers = saved_handlers
    logger.setLevel(saved_level)


def test_configure_logging_is_idempotent(package_logger):
    console = Console(file=io.StringIO())
    configure_logging(logging.DEBUG, console=console)
    configure_logging(logging.DEBUG, console=console)

    rich_handlers = [h for h in package_logger.handlers if isinstance(h, RichHandler)]
    assert len(rich_handlers) == 1
    assert package_logger.level == logging.DEBUG


def test_module_loggers_reach_the_console(package_logger):
    buffer = io.StringIO()
    configure_logging(logging.INFO, console=Console(file=buffer, width=200))

    logging.getLogger("vaultbuild.db.snapshot").info("Snapshot built: %s", "content.sqlite")

    assert "Snapshot built: content.sqlite" in buffer.getvalue()

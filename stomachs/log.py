"""Loguru sink setup for entry points."""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger

LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"


def configure_logging(level: str = "INFO", sink: TextIO | None = None) -> None:
    """
    Replace loguru's default handler with a single compact stderr sink.

    Library modules only call ``logger``; this is invoked once by the CLI.
    """
    logger.remove()
    logger.add(sink or sys.stderr, level=level, format=LOG_FORMAT)

"""Logging utilities for lmmscan.

This module provides loguru-based logging configuration and a small
helper that logs the options a scan was run with.
"""

import sys
from pathlib import Path

from loguru import logger


def setup_logging(
    verbose: bool = False,
    log_file: Path | None = None,
) -> None:
    """Configure loguru for lmmscan.

    Sets up console logging with INFO level (or DEBUG if verbose), and
    optional file logging with JSON serialization.

    Args:
        verbose: If True, set console logging to DEBUG level.
        log_file: Optional path to log file. If provided, DEBUG-level
            logs are written with JSON serialization.
    """
    logger.remove()

    level = "DEBUG" if verbose else "INFO"
    logger.add(
        sys.stdout,
        level=level,
        format="{time:HH:mm:ss} | <level>{level: <8}</level> | {message}",
        colorize=True,
    )

    if log_file:
        logger.add(
            log_file,
            serialize=True,
            level="DEBUG",
        )


def log_scan_parameters(kind: str, params: dict) -> None:
    """Log scan parameters as one DEBUG record with structured extras.

    Args:
        kind: Scan entry point name (e.g. "scan", "scan_permutations").
        params: Parameter mapping, typically ``config.as_dict()`` plus shapes.
    """
    rendered = ", ".join(f"{k}={v}" for k, v in params.items())
    logger.bind(scan=kind, **params).debug(f"{kind}: {rendered}")

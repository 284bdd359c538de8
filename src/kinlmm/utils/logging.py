"""Logging utilities for kinlmm.

This module provides loguru-based logging configuration.
"""

import sys
from pathlib import Path

import psutil
from loguru import logger

LOG_FORMAT = "{time:HH:mm:ss} | <level>{level: <8}</level> | {message}"


def setup_logging(
    verbose: bool = False,
    log_file: Path | None = None,
) -> None:
    """Configure loguru for kinlmm.

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
        format=LOG_FORMAT,
        colorize=True,
    )

    if log_file:
        logger.add(
            log_file,
            serialize=True,
            level="DEBUG",
        )


def log_rss_memory(phase: str, checkpoint: str) -> float:
    """Log current RSS memory usage with phase context.

    Uses loguru's bind() for structured logging so memory readings
    can be filtered/searched by phase and checkpoint.

    Args:
        phase: Workflow phase name (e.g., "eigendecomp", "optimize")
        checkpoint: Checkpoint within phase (e.g., "start", "end")

    Returns:
        Current RSS in GB (for chaining/testing).
    """
    rss_gb = psutil.Process().memory_info().rss / 1e9
    logger.bind(phase=phase, checkpoint=checkpoint).debug(
        f"RSS memory: {rss_gb:.2f}GB (phase={phase}, checkpoint={checkpoint})"
    )
    return rss_gb

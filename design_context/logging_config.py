"""Unified logging configuration for the extraction pipeline."""
from __future__ import annotations

import logging
from pathlib import Path

from . import settings

# Prevent duplicate handlers
_configured_loggers: set[str] = set()


def setup_logger(name: str, filename: str) -> logging.Logger:
    """Setup a logger with console and (optionally) file handlers.

    The file handler is only attached when DESIGN_CONTEXT_LOG_DIR is set,
    so importing the library never touches the filesystem.

    Args:
        name: Logger name (e.g., 'design_context.pipeline')
        filename: Log file name (e.g., 'pipeline.log')

    Returns:
        Configured logger instance
    """
    if name in _configured_loggers:
        return logging.getLogger(name)

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.propagate = False  # Prevent duplicate logs

    if settings.LOG_DIR:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / filename, encoding="utf-8")
        fh.setLevel(logging.INFO)
        fh.setFormatter(logging.Formatter(
            "%(asctime)s [%(name)s] [%(levelname)s] %(message)s"
        ))
        logger.addHandler(fh)

    # Console handler
    sh = logging.StreamHandler()
    sh.setLevel(logging.INFO)
    sh.setFormatter(logging.Formatter(
        "%(asctime)s [%(name)s] %(message)s"
    ))
    logger.addHandler(sh)

    _configured_loggers.add(name)
    return logger


# Pre-configured loggers
def get_pipeline_logger() -> logging.Logger:
    """Logger for orchestrator state transitions and stage outcomes."""
    return setup_logger("design_context.pipeline", "pipeline.log")


def get_cache_logger() -> logging.Logger:
    """Logger for bundle cache hits, misses and evictions."""
    return setup_logger("design_context.cache", "cache.log")

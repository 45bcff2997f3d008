"""Logging configuration for Index Rebalancer.

Rebalance calculations are run by hand before a governance transaction is
prepared, so logs go to stdout by default. An optional rotating log file
keeps a record of every calculation run.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    log_format: str | None = None,
    log_file: str | Path | None = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 10,
) -> None:
    """Configure logging for the application.

    Sets up the root logger with the given level and format. Output always
    goes to stdout; when ``log_file`` is set, records are also written to a
    size-rotated file.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom format string. If None, uses default format.
        log_file: Optional path of a rotating log file
        max_bytes: Maximum size of the log file before rotation
        backup_count: Number of rotated files to keep

    Example:
        >>> from index_rebalancer.utils.logging import setup_logging
        >>> setup_logging(level="DEBUG", log_file="logs/rebalance.log")
    """
    if log_format is None:
        log_format = DEFAULT_FORMAT

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=numeric_level,
        format=log_format,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: Any,
) -> None:
    """Log a message with key=value context appended.

    Args:
        logger: Logger instance
        level: Log level (debug, info, warning, error, critical)
        message: Log message
        **context: Additional context fields

    Example:
        >>> log_with_context(
        ...     logger, "info", "Asset capped",
        ...     asset="YFI", allocation=300000000000000000
        ... )
        # Logs: "Asset capped | asset=YFI allocation=300000000000000000"
    """
    log_func = getattr(logger, level.lower())

    if context:
        context_str = " ".join(f"{k}={v}" for k, v in context.items())
        message = f"{message} | {context_str}"

    log_func(message)

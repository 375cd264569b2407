"""
Logging configuration for pairrank.
Routes the 'pairrank' logger hierarchy to stderr and, optionally, a log file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _make_handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logger(
    name: str = "pairrank",
    log_file: Optional[Path] = None,
    level: str = "INFO",
    console: bool = True,
    fmt: str = DEFAULT_FORMAT,
    file_level: str = "DEBUG",
) -> logging.Logger:
    """
    Attach console and file handlers to a pairrank logger.

    Calling it again replaces the handlers installed by the previous call, so
    repeated setup never duplicates records.

    Args:
        name: Logger name
        log_file: Path to log file (None = no file logging); parent dirs are created
        level: Logger and console level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        console: Whether to also log to stderr
        fmt: logging.Formatter format string
        file_level: Level for the file handler, usually lower than the console one

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    console_level = getattr(logging, level.upper())
    logger.setLevel(min(console_level, getattr(logging, file_level.upper())) if log_file else console_level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt, datefmt=DATE_FORMAT)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(_make_handler(
            logging.FileHandler(log_file, mode='a', encoding='utf-8'),
            getattr(logging, file_level.upper()), formatter))

    if console:
        logger.addHandler(_make_handler(logging.StreamHandler(sys.stderr), console_level, formatter))

    return logger


def log_evaluation_results(logger: logging.Logger, layer_type: str, results: dict) -> None:
    """Log the summary of a loss evaluation run."""
    logger.info("-" * 60)
    logger.info(f"RESULTS for {layer_type}:")
    for key, value in results.items():
        if isinstance(value, float):
            logger.info(f"  {key:20s}: {value:.6f}")
        else:
            logger.info(f"  {key:20s}: {value}")
    logger.info("-" * 60)

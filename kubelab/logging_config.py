"""Logging configuration for kubelab.

Console records go through rich so they interleave cleanly with the stage
progress lines the CLI prints. The optional log file always gets everything.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"

# Chatty below WARNING even when kubelab itself runs verbose
NOISY_LOGGERS = ("urllib3", "kubernetes", "tenacity")


def _console_handler(verbose: bool) -> logging.Handler:
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        markup=False,
        rich_tracebacks=verbose,
    )
    # Stage progress already covers INFO, so the console only adds problems
    handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    return handler


def _file_handler(log_file: Path) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(level: str = "INFO", log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure logging for a kubelab run.

    Args:
        level: Root logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a log file that receives every record
        verbose: If True, log DEBUG and above to the console
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else getattr(logging, level.upper()))
    root_logger.handlers.clear()
    root_logger.addHandler(_console_handler(verbose))

    if log_file:
        try:
            root_logger.addHandler(_file_handler(log_file))
        except OSError as e:
            root_logger.warning(f"Cannot write log file {log_file}: {e}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)

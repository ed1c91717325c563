"""
Centralized logging setup.

Every module logs through one named logger so that the CLI can decide,
once, how verbose and how colorful the renewal run output should be.
"""

import logging
import sys
from typing import Optional


DEFAULT_LOGGER_NAME = "LetsEncryptAzure"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colors the level name (and warning/error text).

    Colors are only applied when stdout is a terminal.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str = None, use_colors: bool = True):
        super().__init__(fmt or DEFAULT_FORMAT)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        original_levelname = record.levelname
        original_msg = record.msg
        color = self.COLORS.get(original_levelname, "")

        record.levelname = f"{color}{original_levelname}{self.RESET}"
        if original_levelname in ("WARNING", "ERROR", "CRITICAL"):
            record.msg = f"{color}{record.msg}{self.RESET}"

        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname
            record.msg = original_msg


class StructuredLogger(logging.Logger):
    """Logger with a few helpers for readable CLI output."""

    def section(self, title: str) -> None:
        """Log a section header."""
        self.info("")
        self.info("=" * 60)
        self.info(title)
        self.info("=" * 60)

    def subsection(self, title: str) -> None:
        """Log a subsection header."""
        self.info("")
        self.info(f"--- {title} ---")

    def success(self, message: str) -> None:
        self.info(f"[OK] {message}")

    def failure(self, message: str) -> None:
        self.error(f"[FAIL] {message}")


_logger: Optional[StructuredLogger] = None


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    verbose: bool = False,
    use_colors: bool = True,
    log_file: Optional[str] = None,
) -> StructuredLogger:
    """
    Configure the global logger.

    Args:
        name: Logger name
        verbose: Enable debug-level logging
        use_colors: Enable colored console output
        log_file: Optional file path that receives an uncolored copy of the log

    Returns:
        Configured StructuredLogger instance
    """
    global _logger

    logging.setLoggerClass(StructuredLogger)
    logger = logging.getLogger(name)
    logger.__class__ = StructuredLogger

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        logger.addHandler(file_handler)

    # Azure SDK request logging is far too chatty at INFO
    logging.getLogger("azure").setLevel(logging.DEBUG if verbose else logging.WARNING)

    _logger = logger
    return logger


def get_logger() -> StructuredLogger:
    """
    Get the global logger, creating a default one on first use.

    Returns:
        The configured StructuredLogger instance
    """
    global _logger

    if _logger is None:
        _logger = setup_logger()

    return _logger

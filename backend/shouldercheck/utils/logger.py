"""
Centralized logging configuration for the application
"""

import logging
import sys
import time
from typing import Optional


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for different log levels"""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        # Color a copy so file handlers sharing the record stay plain
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
FILE_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger instance

    Args:
        name: Logger name (usually __name__)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL); defaults to settings.LOG_LEVEL

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Don't add handlers multiple times
    if logger.handlers:
        return logger

    from shouldercheck.config.base import settings

    logger.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper()))

    # Console handler with colors
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    # File handler (without colors)
    if settings.LOG_FILE:
        try:
            file_handler = logging.FileHandler(settings.LOG_FILE)
            file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
            logger.addHandler(file_handler)
        except Exception as e:
            # If file logging fails, just use console
            logger.warning(f"Could not create file handler: {e}")

    return logger


class PerformanceLogger:
    """Logger for per-tick timing and metrics"""

    def __init__(self, name: str, report_every: int = 300):
        self.logger = get_logger(f"perf.{name}")
        self.report_every = report_every
        self._count = 0
        self._total_ms = 0.0
        self._max_ms = 0.0
        self._started: Optional[float] = None

    def start(self):
        """Start timing an operation"""
        self._started = time.perf_counter()

    def end(self) -> Optional[float]:
        """End timing; returns elapsed milliseconds and reports averages periodically"""
        if self._started is None:
            self.logger.warning("end() called without start()")
            return None

        elapsed_ms = (time.perf_counter() - self._started) * 1000.0
        self._started = None
        self._count += 1
        self._total_ms += elapsed_ms
        self._max_ms = max(self._max_ms, elapsed_ms)

        if self._count % self.report_every == 0:
            self.metric("avg_ms", self._total_ms / self._count, "ms")
            self.metric("max_ms", self._max_ms, "ms")
        return elapsed_ms

    def metric(self, name: str, value: float, unit: str = ""):
        """Log a performance metric"""
        unit_str = f" {unit}" if unit else ""
        self.logger.info(f"METRIC | {name}: {value:.2f}{unit_str}")

"""
Logging utilities with rich console output and stage timing.

Provides logging setup for the document scanner with support for different
output formats and a PERFORMANCE level for per-stage durations.
"""

import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional, Union

from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)

PERFORMANCE_LEVEL = 25
logging.addLevelName(PERFORMANCE_LEVEL, "PERFORMANCE")

PERFORMANCE_LOGGER = "doc_scanner.performance"


class ScannerFormatter(logging.Formatter):
    """Formatter that optionally includes module and function names."""

    def __init__(self, include_module: bool = True, include_function: bool = False):
        parts = ["%(asctime)s"]
        if include_module:
            parts.append("%(name)s")
        parts.append("%(levelname)s")
        if include_function:
            parts.append("%(funcName)s")
        parts.append("%(message)s")
        super().__init__(" - ".join(parts), datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(
    level: Union[str, int] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    use_rich: bool = True,
    include_performance: bool = True,
    format_style: str = "detailed"
) -> logging.Logger:
    """
    Set up logging for the document scanner.

    Args:
        level: Logging level
        log_file: Optional log file path
        use_rich: Whether to use rich console output
        include_performance: Whether stage timings are emitted
        format_style: Format style ('simple', 'detailed', 'minimal')

    Returns:
        Configured package logger
    """
    package_logger = logging.getLogger("doc_scanner")
    package_logger.handlers.clear()
    package_logger.propagate = False

    if isinstance(level, str):
        level = getattr(logging, level.upper())
    package_logger.setLevel(min(level, logging.DEBUG) if log_file else level)

    if use_rich:
        console_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=format_style == "detailed",
            markup=False,
            rich_tracebacks=True
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stderr)

        if format_style == "minimal":
            formatter = ScannerFormatter(include_module=False, include_function=False)
        elif format_style == "simple":
            formatter = ScannerFormatter(include_module=True, include_function=False)
        else:
            formatter = ScannerFormatter(include_module=True, include_function=True)

        console_handler.setFormatter(formatter)

    console_handler.setLevel(level)
    package_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setFormatter(ScannerFormatter(include_module=True, include_function=True))
        file_handler.setLevel(logging.DEBUG)
        package_logger.addHandler(file_handler)

    perf_logger = logging.getLogger(PERFORMANCE_LOGGER)
    perf_logger.disabled = not include_performance

    return package_logger


def setup_logging_from_config(logging_config: Any) -> logging.Logger:
    """Set up logging from a ``LoggingConfig`` section.

    OpenCV's native log verbosity is aligned with the configured level.
    """
    level = getattr(logging_config.level, "value", logging_config.level)
    configure_opencv_logging(getattr(logging, level.upper()))
    return setup_logging(
        level=level,
        log_file=logging_config.log_file,
        use_rich=logging_config.use_rich,
        include_performance=logging_config.include_performance,
        format_style=logging_config.format_style,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_performance(message: str, **kwargs: Any) -> None:
    """Emit a PERFORMANCE record with optional key=value metrics."""
    if kwargs:
        extra_info = ", ".join(f"{k}={v}" for k, v in kwargs.items())
        message = f"{message} ({extra_info})"
    logging.getLogger(PERFORMANCE_LOGGER).log(PERFORMANCE_LEVEL, message)


@contextmanager
def log_timing(
    operation: str,
    logger: Optional[logging.Logger] = None,
    level: int = logging.DEBUG
) -> Generator[Dict[str, Any], None, None]:
    """
    Context manager timing one pipeline operation.

    Args:
        operation: Description of the operation
        logger: Logger instance (uses the package logger if None)
        level: Logging level for start/finish messages

    Yields:
        Dictionary for additional statistics, logged with the duration
    """
    if logger is None:
        logger = logging.getLogger("doc_scanner")

    stats: Dict[str, Any] = {}
    start_time = time.perf_counter()
    logger.log(level, f"Starting {operation}")

    try:
        yield stats
    except Exception as e:
        duration = time.perf_counter() - start_time
        logger.error(f"Failed {operation} after {duration:.3f}s: {e}")
        raise

    duration = time.perf_counter() - start_time
    stats["duration"] = duration
    logger.log(level, f"Completed {operation} in {duration * 1000:.1f}ms")
    log_performance(f"{operation} completed", duration_ms=round(duration * 1000, 1), **stats)


def configure_opencv_logging(level: int = logging.WARNING) -> None:
    """Align OpenCV's own log verbosity with the Python logging level."""
    import cv2

    # OpenCV levels: 0=SILENT, 1=FATAL, 2=ERROR, 3=WARN, 4=INFO, 5=DEBUG
    if level <= logging.DEBUG:
        cv2.setLogLevel(5)
    elif level <= logging.INFO:
        cv2.setLogLevel(4)
    elif level <= logging.WARNING:
        cv2.setLogLevel(3)
    else:
        cv2.setLogLevel(2)

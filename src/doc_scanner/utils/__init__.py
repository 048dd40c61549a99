"""Document scanner utility modules."""

from .logging_utils import (
    setup_logging,
    setup_logging_from_config,
    get_logger,
    log_performance,
    log_timing,
    configure_opencv_logging,
    PERFORMANCE_LEVEL,
)

__all__ = [
    'setup_logging',
    'setup_logging_from_config',
    'get_logger',
    'log_performance',
    'log_timing',
    'configure_opencv_logging',
    'PERFORMANCE_LEVEL',
]

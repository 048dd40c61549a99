"""
Configuration system with Pydantic models and validation.

Provides configuration management with type safety, validation, and
support for multiple configuration formats.
"""

from .models import (
    ScannerConfig,
    SmoothingConfig,
    SmoothingMethod,
    EdgeDetectionConfig,
    QuadDetectionConfig,
    FallbackDetectionConfig,
    AutoCropConfig,
    PerspectiveConfig,
    EnhancementConfig,
    OutputConfig,
    OutputFormat,
    CacheConfig,
    DebugConfig,
    LoggingConfig,
    LogLevel,
)
from .loader import (
    load_config,
    load_config_from_dict,
    save_config,
    get_default_config,
    validate_config_file,
)

__all__ = [
    # Configuration models
    "ScannerConfig",
    "SmoothingConfig",
    "SmoothingMethod",
    "EdgeDetectionConfig",
    "QuadDetectionConfig",
    "FallbackDetectionConfig",
    "AutoCropConfig",
    "PerspectiveConfig",
    "EnhancementConfig",
    "OutputConfig",
    "OutputFormat",
    "CacheConfig",
    "DebugConfig",
    "LoggingConfig",
    "LogLevel",
    # Configuration loading
    "load_config",
    "load_config_from_dict",
    "save_config",
    "get_default_config",
    "validate_config_file",
]

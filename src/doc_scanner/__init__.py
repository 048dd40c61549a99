"""Document scanning pipeline: edge-based document detection, perspective correction and enhancement."""

__version__ = "1.0.0"
__author__ = "Document Scanner Team"

from .cache import ScanCache
from .config import ScannerConfig, get_default_config, load_config
from .exceptions import (
    DocumentScanError,
    ConfigurationError,
    InvalidOptionsError,
    ProcessingError,
    SourceUnavailableError,
    ImageEncodeError,
    GeometryDegenerateError,
)
from .parallel_pipeline import BatchScanItem, ParallelScanner
from .pipeline import (
    DocumentScanner,
    apply_filter_to_image,
    detect_crop_bounds,
    scan_document,
    scan_document_async,
)
from .schemas import (
    CropBounds,
    DetectionOutcome,
    PixelBuffer,
    Point,
    ScanFilter,
    ScanOptions,
    ScanResult,
)

__all__ = [
    "DocumentScanner",
    "ParallelScanner",
    "BatchScanItem",
    "ScanCache",
    "scan_document",
    "scan_document_async",
    "detect_crop_bounds",
    "apply_filter_to_image",
    "ScannerConfig",
    "get_default_config",
    "load_config",
    "CropBounds",
    "DetectionOutcome",
    "PixelBuffer",
    "Point",
    "ScanFilter",
    "ScanOptions",
    "ScanResult",
    "DocumentScanError",
    "ConfigurationError",
    "InvalidOptionsError",
    "ProcessingError",
    "SourceUnavailableError",
    "ImageEncodeError",
    "GeometryDegenerateError",
]

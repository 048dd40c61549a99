"""
Custom exceptions for the document scanning pipeline.

Provides a hierarchy of exceptions for the failures that can occur while
loading a source image, validating scan options and processing pixels.
A document that cannot be found is not an error and has no exception here.
"""

from typing import Optional, Any


class DocumentScanError(Exception):
    """Base exception for all document scanning errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} (Details: {details_str})"
        return self.message


class ConfigurationError(DocumentScanError):
    """Raised when there are configuration-related errors."""
    pass


class InvalidOptionsError(DocumentScanError):
    """Raised when scan options are rejected before any pixel work begins."""
    pass


class ProcessingError(DocumentScanError):
    """Raised when image processing operations fail."""

    def __init__(self, message: str, processor: Optional[str] = None,
                 source: Optional[str] = None, **kwargs: Any) -> None:
        details = kwargs
        if processor:
            details["processor"] = processor
        if source:
            details["source"] = source
        super().__init__(message, details)


class SourceUnavailableError(ProcessingError):
    """Raised when the source image cannot be fetched or decoded."""
    pass


class ImageEncodeError(ProcessingError):
    """Raised when a processed raster cannot be encoded."""
    pass


class GeometryDegenerateError(ProcessingError):
    """Raised when a quad would produce a degenerate corrected image."""
    pass

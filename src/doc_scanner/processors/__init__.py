"""Document Scanner Processors Module.

This module provides one image processing component per pipeline stage.
Each processor handles a specific step of the scanning workflow.
"""

# Base processor
from .base import BaseProcessor

# Image I/O
from .image_io import (
    ImageNormalizerProcessor,
    ImageSource,
    LoadedImage,
    NormalizedImage,
    MIME_TYPES,
    decode_image,
    downscale_to_width,
    encode_image,
    fetch_image_bytes,
    load_source,
    load_source_async,
    resolve_output_format,
)

# Grayscale and smoothing
from .smoothing import (
    SmoothingProcessor,
    bilateral_smooth,
    box_blur,
    luminance,
    to_grayscale,
)

# Edge detection
from .edge_detection import (
    EdgeDetectionProcessor,
    detect_edges,
    dilate_edges,
    hysteresis_threshold,
    non_maximum_suppression,
    sobel_gradients,
)

# Quad detection
from .quad_detection import (
    QuadDetectionProcessor,
    area_score,
    aspect_score,
    center_score,
    extreme_corners,
    find_document_quad,
    score_components,
    side_coverage,
    touches_border,
)

# Color-contrast fallback
from .color_fallback import (
    ColorFallbackProcessor,
    detect_by_color_contrast,
    estimate_background,
)

# Perspective correction
from .perspective import (
    PerspectiveProcessor,
    build_warp_maps,
    compute_output_size,
    warp_quad,
)

# Enhancement
from .enhancement import (
    EnhancementProcessor,
    adaptive_threshold,
    apply_color_filter,
    enhance_document,
    remove_shadows,
    sharpen,
    stretch_contrast,
)

__all__ = [
    # Base
    'BaseProcessor',

    # Image I/O
    'ImageNormalizerProcessor',
    'ImageSource',
    'LoadedImage',
    'NormalizedImage',
    'MIME_TYPES',
    'decode_image',
    'downscale_to_width',
    'encode_image',
    'fetch_image_bytes',
    'load_source',
    'load_source_async',
    'resolve_output_format',

    # Smoothing
    'SmoothingProcessor',
    'bilateral_smooth',
    'box_blur',
    'luminance',
    'to_grayscale',

    # Edge detection
    'EdgeDetectionProcessor',
    'detect_edges',
    'dilate_edges',
    'hysteresis_threshold',
    'non_maximum_suppression',
    'sobel_gradients',

    # Quad detection
    'QuadDetectionProcessor',
    'area_score',
    'aspect_score',
    'center_score',
    'extreme_corners',
    'find_document_quad',
    'score_components',
    'side_coverage',
    'touches_border',

    # Fallback
    'ColorFallbackProcessor',
    'detect_by_color_contrast',
    'estimate_background',

    # Perspective
    'PerspectiveProcessor',
    'build_warp_maps',
    'compute_output_size',
    'warp_quad',

    # Enhancement
    'EnhancementProcessor',
    'adaptive_threshold',
    'apply_color_filter',
    'enhance_document',
    'remove_shadows',
    'sharpen',
    'stretch_contrast',
]

"""Color-contrast fallback detection.

Used when the edge path finds nothing: a document usually differs in color
from whatever it is lying on, so the bounding box of pixels that differ
from the sampled corner color is a rough document estimate.
"""

from typing import Optional

import numpy as np

from .base import BaseProcessor
from .quad_detection import (
    area_score,
    aspect_score,
    border_margin,
    center_score,
    touches_border,
)
from ..config import FallbackDetectionConfig, QuadDetectionConfig
from ..geometry import bbox_quad, quad_area
from ..schemas import PixelBuffer, QuadCandidate
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


def estimate_background(image: np.ndarray, patch: int = 10) -> np.ndarray:
    """Mean color of the four corner patches."""
    h, w = image.shape[:2]
    ph = max(1, min(patch, h))
    pw = max(1, min(patch, w))
    corners = [
        image[:ph, :pw],
        image[:ph, w - pw:],
        image[h - ph:, :pw],
        image[h - ph:, w - pw:],
    ]
    samples = np.concatenate([c.reshape(-1, image.shape[2]) for c in corners])
    return samples.astype(np.float32).mean(axis=0)


def detect_by_color_contrast(
    image: np.ndarray,
    params: Optional[FallbackDetectionConfig] = None,
    quad_params: Optional[QuadDetectionConfig] = None,
) -> Optional[QuadCandidate]:
    """Estimate the document region from color difference against the background.

    Args:
        image: BGR working-resolution array
        params: Sampling and confidence settings
        quad_params: Border, area and aspect bands shared with edge detection

    Returns:
        A low-confidence candidate, or None when the region fails rejection
    """
    params = params or FallbackDetectionConfig()
    quad_params = quad_params or QuadDetectionConfig()

    img_h, img_w = image.shape[:2]
    stride = params.sample_stride
    background = estimate_background(image, params.corner_patch)

    sampled = image[::stride, ::stride].astype(np.float32)
    distance = np.linalg.norm(sampled - background, axis=2)
    matches = distance > params.color_distance_threshold

    match_ratio = float(matches.mean())
    if match_ratio < params.min_match_ratio:
        logger.debug(f"Fallback: only {match_ratio:.3f} of samples differ from background")
        return None

    ys, xs = np.nonzero(matches)
    x0 = int(xs.min()) * stride
    y0 = int(ys.min()) * stride
    x1 = min(img_w - 1, int(xs.max()) * stride)
    y1 = min(img_h - 1, int(ys.max()) * stride)
    w = x1 - x0 + 1
    h = y1 - y0 + 1

    margin = border_margin(img_w, img_h, quad_params.border_margin_ratio)
    if touches_border(x0, y0, w, h, img_w, img_h, margin):
        logger.debug("Fallback: region touches border")
        return None

    area_ratio = (w * h) / float(img_w * img_h)
    if not quad_params.min_area_ratio <= area_ratio <= quad_params.max_area_ratio:
        logger.debug(f"Fallback: area ratio {area_ratio:.3f} outside band")
        return None

    aspect = w / h
    if not quad_params.min_aspect_ratio <= aspect <= quad_params.max_aspect_ratio:
        logger.debug(f"Fallback: aspect {aspect:.2f} outside band")
        return None

    c_score = center_score(x0 + (w - 1) / 2.0, y0 + (h - 1) / 2.0, img_w, img_h)
    if c_score < params.min_center_score:
        logger.debug(f"Fallback: center score {c_score:.2f} too low")
        return None

    a_score = area_score(area_ratio, quad_params.target_area_ratio)
    r_score = aspect_score(aspect, quad_params.document_aspect_ratios, quad_params.aspect_tolerance)
    score = 0.5 * c_score + 0.3 * a_score + 0.2 * r_score
    confidence = min(params.max_confidence, params.max_confidence * score)

    quad = bbox_quad(x0, y0, w, h)
    return QuadCandidate(
        quad=quad,
        bbox=(x0, y0, w, h),
        score=score,
        confidence=confidence,
        area_ratio=quad_area(quad) / float(img_w * img_h),
        method="color_fallback",
        details={
            "match_ratio": match_ratio,
            "center_score": c_score,
            "area_score": a_score,
            "aspect_score": r_score,
        },
    )


class ColorFallbackProcessor(BaseProcessor):
    """Processor running the color-contrast detector on the working image."""

    def process(self, image: PixelBuffer, **kwargs) -> Optional[QuadCandidate]:
        self.validate_image(image)
        self.clear_debug_images()

        if not self.config.fallback.enabled:
            return None

        candidate = detect_by_color_contrast(
            image.to_bgr().data, self.config.fallback, self.config.quad_detection
        )
        if candidate is not None:
            logger.debug(
                f"Fallback candidate bbox={candidate.bbox}, confidence={candidate.confidence:.3f}"
            )
        return candidate

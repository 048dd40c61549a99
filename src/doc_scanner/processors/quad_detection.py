"""Connected-component search for the document quadrilateral.

Every component of the dilated edge map is a candidate outline. Candidates
pass a series of rejection rules aimed at the classic false positive (the
table or background read as the document), then get a composite score.
"""

import math
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .base import BaseProcessor
from ..config import QuadDetectionConfig
from ..geometry import quad_area
from ..schemas import PixelBuffer, QuadCandidate
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def border_margin(width: int, height: int, ratio: float) -> int:
    return int(round(min(width, height) * ratio))


def touches_border(x: int, y: int, w: int, h: int, img_w: int, img_h: int, margin: int) -> bool:
    """True when a bbox comes within ``margin`` pixels of any image edge."""
    return (
        x <= margin
        or y <= margin
        or x + w - 1 >= img_w - 1 - margin
        or y + h - 1 >= img_h - 1 - margin
    )


def center_score(cx: float, cy: float, img_w: int, img_h: int) -> float:
    """1 at the frame center, falling to 0 at half the frame diagonal."""
    half_diagonal = math.hypot(img_w, img_h) / 2.0
    distance = math.hypot(cx - img_w / 2.0, cy - img_h / 2.0)
    return _clamp01(1.0 - distance / half_diagonal)


def area_score(area_ratio: float, target: float) -> float:
    return _clamp01(1.0 - abs(area_ratio - target) / target)


def aspect_score(aspect: float, document_ratios: Sequence[float], tolerance: float) -> float:
    """Closeness of width/height to a known paper or card format, either orientation."""
    if aspect <= 0:
        return 0.0
    long_short = aspect if aspect >= 1.0 else 1.0 / aspect
    nearest = min(abs(long_short - r) for r in document_ratios)
    return _clamp01(1.0 - nearest / tolerance)


def extreme_corners(mask: np.ndarray) -> np.ndarray:
    """Approximate a quad from the extreme points of a binary mask.

    Top-left/bottom-right minimise/maximise x+y; top-right/bottom-left
    maximise/minimise x-y.

    Returns:
        (4, 2) array ordered TL, TR, BR, BL in mask coordinates
    """
    ys, xs = np.nonzero(mask)
    total = xs + ys
    diff = xs - ys

    tl = total.argmin()
    br = total.argmax()
    tr = diff.argmax()
    bl = diff.argmin()
    return np.array([
        [xs[tl], ys[tl]],
        [xs[tr], ys[tr]],
        [xs[br], ys[br]],
        [xs[bl], ys[bl]],
    ], dtype=np.float64)


def side_coverage(
    edge_map: np.ndarray,
    x: int, y: int, w: int, h: int,
    stride: int = 4,
    band: int = 3,
) -> Tuple[Tuple[float, float, float, float], float]:
    """Fraction of bbox side samples with an edge pixel within ``band`` pixels.

    Returns:
        Tuple of ((top, right, bottom, left) fractions, overall fraction)
    """
    img_h, img_w = edge_map.shape
    mask = edge_map > 0
    x1 = x + w - 1
    y1 = y + h - 1
    xs = np.arange(x, x1 + 1, stride)
    ys = np.arange(y, y1 + 1, stride)

    def row_hits(row: int) -> np.ndarray:
        return mask[max(0, row - band):min(img_h, row + band + 1), xs].any(axis=0)

    def column_hits(col: int) -> np.ndarray:
        return mask[ys, max(0, col - band):min(img_w, col + band + 1)].any(axis=1)

    hits = [row_hits(y), column_hits(x1), row_hits(y1), column_hits(x)]
    fractions = tuple(float(side.mean()) for side in hits)
    overall = float(sum(int(side.sum()) for side in hits)) / sum(side.size for side in hits)
    return fractions, overall


def score_components(
    dilated: np.ndarray,
    raw_edges: np.ndarray,
    params: QuadDetectionConfig,
) -> List[QuadCandidate]:
    """Label the dilated edge map and score every component that survives rejection.

    Args:
        dilated: Binary dilated edge map (working resolution)
        raw_edges: Binary edge map before dilation
        params: Rejection thresholds and scoring weights

    Returns:
        Surviving candidates, best score first
    """
    img_h, img_w = dilated.shape
    image_area = float(img_w * img_h)
    margin = border_margin(img_w, img_h, params.border_margin_ratio)
    raw_mask = raw_edges > 0

    count, labels, stats, _ = cv2.connectedComponentsWithStats(
        (dilated > 0).astype(np.uint8), connectivity=8
    )

    candidates: List[QuadCandidate] = []
    for label in range(1, count):
        x, y, w, h = (int(v) for v in stats[label, :4])

        if w < params.min_component_size or h < params.min_component_size:
            continue
        if touches_border(x, y, w, h, img_w, img_h, margin):
            logger.debug(f"Component {label} rejected: touches border")
            continue

        bbox_area = float(w * h)
        area_ratio = bbox_area / image_area
        if not params.min_area_ratio <= area_ratio <= params.max_area_ratio:
            logger.debug(f"Component {label} rejected: area ratio {area_ratio:.3f}")
            continue

        aspect = w / h
        if not params.min_aspect_ratio <= aspect <= params.max_aspect_ratio:
            logger.debug(f"Component {label} rejected: aspect {aspect:.2f}")
            continue

        raw_region = raw_mask[y:y + h, x:x + w]
        density = np.count_nonzero(raw_region) / bbox_area
        if density > params.max_edge_density:
            logger.debug(f"Component {label} rejected: edge density {density:.3f}")
            continue

        member = labels[y:y + h, x:x + w] == label
        outline = member & raw_region
        quad = extreme_corners(outline if outline.any() else member) + np.array([x, y])

        area = quad_area(quad)
        quad_ratio = area / image_area
        if not params.min_area_ratio <= quad_ratio <= params.max_area_ratio:
            logger.debug(f"Component {label} rejected: quad area ratio {quad_ratio:.3f}")
            continue

        sides, coverage = side_coverage(
            dilated, x, y, w, h, params.side_sample_stride, params.side_band
        )
        covered_sides = sum(1 for s in sides if s >= params.min_side_coverage)
        if coverage < params.min_edge_coverage or covered_sides < params.min_sides_covered:
            logger.debug(
                f"Component {label} rejected: coverage {coverage:.2f}, "
                f"{covered_sides} sides covered"
            )
            continue

        c_score = center_score(x + (w - 1) / 2.0, y + (h - 1) / 2.0, img_w, img_h)
        a_score = area_score(area_ratio, params.target_area_ratio)
        r_score = aspect_score(aspect, params.document_aspect_ratios, params.aspect_tolerance)
        score = (
            coverage * params.coverage_weight
            + c_score * params.center_weight
            + a_score * params.area_weight
            + r_score * params.aspect_weight
        )
        fill = min(1.0, area / bbox_area)
        confidence = _clamp01(score * params.score_share + fill * (1.0 - params.score_share))

        candidates.append(QuadCandidate(
            quad=quad,
            bbox=(x, y, w, h),
            score=score,
            confidence=confidence,
            area_ratio=quad_ratio,
            method="edges",
            details={
                "edge_coverage": coverage,
                "center_score": c_score,
                "area_score": a_score,
                "aspect_score": r_score,
                "quad_fill": fill,
                "edge_density": density,
            },
        ))

    candidates.sort(key=lambda c: c.score, reverse=True)
    return candidates


def find_document_quad(
    dilated: np.ndarray,
    raw_edges: np.ndarray,
    params: Optional[QuadDetectionConfig] = None,
) -> Optional[QuadCandidate]:
    """Return the best-scoring document outline, or None below the score floor."""
    params = params or QuadDetectionConfig()
    candidates = score_components(dilated, raw_edges, params)
    if not candidates or candidates[0].score < params.score_floor:
        return None
    return candidates[0]


class QuadDetectionProcessor(BaseProcessor):
    """Processor selecting the document quad from the edge maps."""

    def process(
        self,
        image: PixelBuffer,
        raw_edges: Optional[PixelBuffer] = None,
        **kwargs
    ) -> Tuple[Optional[QuadCandidate], List[QuadCandidate]]:
        """Find the document outline in a dilated edge map.

        Args:
            image: Dilated binary edge map
            raw_edges: Edge map before dilation (defaults to ``image``)

        Returns:
            Tuple of (selected candidate or None, all scored candidates)
        """
        self.validate_image(image)
        self.clear_debug_images()

        params = self.config.quad_detection
        raw = raw_edges.data if raw_edges is not None else image.data
        candidates = score_components(image.data, raw, params)

        selected = None
        if candidates and candidates[0].score >= params.score_floor:
            selected = candidates[0]

        if candidates:
            logger.debug(
                f"{len(candidates)} candidate(s); best score={candidates[0].score:.3f}, "
                f"confidence={candidates[0].confidence:.3f}"
            )

        if self.config.debug.save_debug_images:
            overlay = cv2.cvtColor(image.data, cv2.COLOR_GRAY2BGR)
            for candidate in candidates:
                color = (0, 255, 0) if candidate is selected else (0, 0, 255)
                pts = candidate.quad.astype(np.int32).reshape(-1, 1, 2)
                cv2.polylines(overlay, [pts], True, color, 2)
            self.save_debug_image('06_candidates', overlay)

        return selected, candidates

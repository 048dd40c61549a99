"""Quadrilateral helpers shared by detection and perspective correction.

All quads are (4, 2) float arrays ordered TL, TR, BR, BL.
"""

from typing import Tuple

import numpy as np

from .schemas import CropBounds


def quad_area(quad: np.ndarray) -> float:
    """Enclosed area of a quad using the shoelace formula."""
    pts = np.asarray(quad, dtype=np.float64).reshape(4, 2)
    x = pts[:, 0]
    y = pts[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def edge_lengths(quad: np.ndarray) -> Tuple[float, float, float, float]:
    """Return (top, right, bottom, left) side lengths."""
    tl, tr, br, bl = np.asarray(quad, dtype=np.float64).reshape(4, 2)
    return (
        float(np.hypot(*(tr - tl))),
        float(np.hypot(*(br - tr))),
        float(np.hypot(*(br - bl))),
        float(np.hypot(*(bl - tl))),
    )


def quad_center(quad: np.ndarray) -> Tuple[float, float]:
    pts = np.asarray(quad, dtype=np.float64).reshape(4, 2)
    cx, cy = pts.mean(axis=0)
    return float(cx), float(cy)


def scale_quad(quad: np.ndarray, factor: float) -> np.ndarray:
    return np.asarray(quad, dtype=np.float64).reshape(4, 2) * factor


def clamp_quad(quad: np.ndarray, width: int, height: int) -> np.ndarray:
    """Clamp every corner into the pixel grid of a width x height image."""
    pts = np.asarray(quad, dtype=np.float64).reshape(4, 2).copy()
    pts[:, 0] = np.clip(pts[:, 0], 0, width - 1)
    pts[:, 1] = np.clip(pts[:, 1], 0, height - 1)
    return pts


def bbox_quad(x: int, y: int, w: int, h: int) -> np.ndarray:
    """Corners of an axis-aligned box given as (x, y, width, height)."""
    x1 = x + w - 1
    y1 = y + h - 1
    return np.array([[x, y], [x1, y], [x1, y1], [x, y1]], dtype=np.float64)


def default_crop_bounds(width: int, height: int, inset: float = 0.08) -> CropBounds:
    """Initial corners for a manual crop when nothing was detected."""
    if not 0.0 <= inset < 0.5:
        raise ValueError("inset must be in [0, 0.5)")
    x0, x1 = width * inset, width * (1.0 - inset)
    y0, y1 = height * inset, height * (1.0 - inset)
    return CropBounds.from_array(np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]]))

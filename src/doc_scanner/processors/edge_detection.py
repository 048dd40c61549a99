"""Canny-style edge detection and gap-bridging dilation."""

from typing import Tuple

import cv2
import numpy as np

from .base import BaseProcessor
from ..schemas import PixelBuffer


def sobel_gradients(gray: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return (magnitude, direction) from 3x3 Sobel kernels.

    The outermost ring of pixels has no full 3x3 neighbourhood and is
    reported with zero magnitude, so the image frame never yields edges.
    """
    src = gray.astype(np.float32)
    gx = cv2.Sobel(src, cv2.CV_32F, 1, 0, ksize=3, borderType=cv2.BORDER_REPLICATE)
    gy = cv2.Sobel(src, cv2.CV_32F, 0, 1, ksize=3, borderType=cv2.BORDER_REPLICATE)

    magnitude = np.hypot(gx, gy)
    direction = np.arctan2(gy, gx)

    magnitude[0, :] = 0
    magnitude[-1, :] = 0
    magnitude[:, 0] = 0
    magnitude[:, -1] = 0
    return magnitude, direction


def non_maximum_suppression(magnitude: np.ndarray, direction: np.ndarray) -> np.ndarray:
    """Zero every pixel that is not a local maximum along its gradient.

    Directions are quantized into 0/45/90/135 degree bins (+-22.5 degrees).
    Equal neighbours do not suppress each other, so flat gradient ridges
    survive as thick lines rather than vanishing.
    """
    h, w = magnitude.shape
    angle = np.rad2deg(direction) % 180.0
    padded = np.pad(magnitude, 1, mode="constant")

    def neighbour(dy: int, dx: int) -> np.ndarray:
        return padded[1 + dy:1 + dy + h, 1 + dx:1 + dx + w]

    horizontal = (angle < 22.5) | (angle >= 157.5)
    diagonal = (angle >= 22.5) & (angle < 67.5)
    vertical = (angle >= 67.5) & (angle < 112.5)
    anti_diagonal = (angle >= 112.5) & (angle < 157.5)

    before = np.select(
        [horizontal, diagonal, vertical, anti_diagonal],
        [neighbour(0, -1), neighbour(-1, -1), neighbour(-1, 0), neighbour(-1, 1)],
    )
    after = np.select(
        [horizontal, diagonal, vertical, anti_diagonal],
        [neighbour(0, 1), neighbour(1, 1), neighbour(1, 0), neighbour(1, -1)],
    )

    keep = (magnitude > 0) & (magnitude >= before) & (magnitude >= after)
    return np.where(keep, magnitude, 0).astype(np.float32)


def hysteresis_threshold(magnitude: np.ndarray, low: float = 50.0, high: float = 150.0) -> np.ndarray:
    """Double-threshold classification into a binary {0, 255} edge map.

    Pixels at or above ``high`` are edges. Pixels at or above ``low`` are
    edges only when their 8-connected weak region contains a strong pixel,
    so weak pixels alone never produce an edge.
    """
    strong = magnitude >= high
    if not strong.any():
        return np.zeros(magnitude.shape, dtype=np.uint8)

    candidates = (magnitude >= low).astype(np.uint8)
    _, labels = cv2.connectedComponents(candidates, connectivity=8)

    kept = np.unique(labels[strong])
    kept = kept[kept != 0]
    return np.where(np.isin(labels, kept), 255, 0).astype(np.uint8)


def detect_edges(gray: PixelBuffer, low: float = 50.0, high: float = 150.0) -> PixelBuffer:
    """Run Sobel, non-maximum suppression and hysteresis on a smoothed buffer."""
    magnitude, direction = sobel_gradients(gray.data)
    thin = non_maximum_suppression(magnitude, direction)
    return PixelBuffer(hysteresis_threshold(thin, low, high))


def dilate_edges(edges: PixelBuffer, radius: int = 2) -> PixelBuffer:
    """Morphological dilation with a (2r+1)x(2r+1) square element.

    Bridges the 1-3 pixel breaks that glare and anti-aliasing leave in a
    document border so the border forms a single component.
    """
    if radius <= 0:
        return edges
    kernel = np.ones((2 * radius + 1, 2 * radius + 1), dtype=np.uint8)
    return PixelBuffer(cv2.dilate(edges.data, kernel))


class EdgeDetectionProcessor(BaseProcessor):
    """Processor producing the raw and dilated edge maps."""

    def process(self, image: PixelBuffer, **kwargs) -> Tuple[PixelBuffer, PixelBuffer]:
        """Detect edges on a smoothed single-channel buffer.

        Returns:
            Tuple of (raw edge map, dilated edge map), both binary {0, 255}
        """
        self.validate_image(image)
        self.clear_debug_images()

        params = self.config.edge_detection
        edges = detect_edges(image, params.low_threshold, params.high_threshold)
        self.save_debug_image('04_edges', edges.data)

        dilated = dilate_edges(edges, params.dilation_radius)
        self.save_debug_image('05_dilated', dilated.data)

        return edges, dilated

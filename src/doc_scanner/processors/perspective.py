"""Perspective correction of a document quad onto an upright rectangle."""

from typing import Optional, Tuple

import cv2
import numpy as np

from .base import BaseProcessor
from ..exceptions import GeometryDegenerateError
from ..geometry import edge_lengths, quad_area
from ..schemas import PixelBuffer
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


def compute_output_size(quad: np.ndarray, max_width: Optional[int] = None) -> Tuple[int, int]:
    """Output (width, height) from the measured quad edges.

    Width is the longer of the top and bottom edges, height the longer of
    the left and right edges. A width above ``max_width`` is scaled down
    with the height following proportionally.
    """
    top, right, bottom, left = edge_lengths(quad)
    width = max(top, bottom)
    height = max(left, right)

    if max_width is not None and width > max_width:
        height = height * max_width / width
        width = float(max_width)

    return int(round(width)), int(round(height))


def build_warp_maps(quad: np.ndarray, width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
    """Source coordinates for every destination pixel.

    Each destination row interpolates linearly between a point on the top
    edge and the matching point on the bottom edge. This is a bilinear
    blend of the quad sides rather than a full homography.
    """
    tl, tr, br, bl = np.asarray(quad, dtype=np.float64).reshape(4, 2)
    u = np.linspace(0.0, 1.0, width)[:, np.newaxis]
    v = np.linspace(0.0, 1.0, height)[:, np.newaxis, np.newaxis]

    top = tl + u * (tr - tl)
    bottom = bl + u * (br - bl)
    src = top[np.newaxis] + v * (bottom - top)[np.newaxis]

    map_x = np.ascontiguousarray(src[:, :, 0], dtype=np.float32)
    map_y = np.ascontiguousarray(src[:, :, 1], dtype=np.float32)
    return map_x, map_y


def warp_quad(
    image: PixelBuffer,
    quad: np.ndarray,
    max_width: Optional[int] = None,
    min_output_size: int = 100,
    min_quad_area: float = 1.0,
) -> PixelBuffer:
    """Resample the quad region of ``image`` into an upright rectangle.

    Args:
        image: Source image, in the same coordinate space as ``quad``
        quad: (4, 2) corners ordered TL, TR, BR, BL
        max_width: Cap on the output width
        min_output_size: Smallest acceptable measured side, before the width cap
        min_quad_area: Smallest acceptable enclosed quad area

    Returns:
        Corrected image with 2x2 bilinear sampling

    Raises:
        GeometryDegenerateError: If the quad is collapsed or the output too small
    """
    area = quad_area(quad)
    if area < min_quad_area:
        raise GeometryDegenerateError(
            "Quad encloses no area", processor="perspective", area=round(area, 3)
        )

    # Degeneracy is judged on the measured quad, before the width cap.
    measured_width, measured_height = compute_output_size(quad)
    if measured_width < min_output_size or measured_height < min_output_size:
        raise GeometryDegenerateError(
            "Corrected output too small",
            processor="perspective",
            width=measured_width,
            height=measured_height,
        )

    width, height = compute_output_size(quad, max_width)
    width, height = max(width, 1), max(height, 1)
    map_x, map_y = build_warp_maps(quad, width, height)
    warped = cv2.remap(
        image.data, map_x, map_y,
        interpolation=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_REPLICATE,
    )
    return PixelBuffer(warped)


class PerspectiveProcessor(BaseProcessor):
    """Processor applying perspective correction; declines degenerate quads."""

    def process(
        self,
        image: PixelBuffer,
        quad: Optional[np.ndarray] = None,
        max_width: Optional[int] = None,
        **kwargs
    ) -> Optional[PixelBuffer]:
        """Warp ``quad`` out of ``image``.

        Returns:
            Corrected buffer, or None when the geometry is degenerate
        """
        self.validate_image(image)
        self.clear_debug_images()

        if quad is None:
            raise ValueError("A quad is required for perspective correction")

        params = self.config.perspective
        try:
            warped = warp_quad(
                image, quad, max_width,
                min_output_size=params.min_output_size,
                min_quad_area=params.min_quad_area,
            )
        except GeometryDegenerateError as e:
            logger.debug(f"Perspective correction declined: {e}")
            return None

        logger.debug(f"Corrected to {warped.width}x{warped.height}")
        self.save_debug_image('07_warped', warped.data)
        return warped

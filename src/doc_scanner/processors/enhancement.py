"""
Document enhancement filters.

Applied to a corrected document in a fixed order: shadow removal, contrast
stretch, sharpening, then the color filter. All arithmetic is clamped to
the 0-255 range, so every filter is defined for any input.
"""

from typing import Callable, Optional

import cv2
import numpy as np

from .base import BaseProcessor
from .smoothing import luminance
from ..config import EnhancementConfig
from ..schemas import PixelBuffer, ScanFilter, ScanOptions, coerce_options
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


def _to_uint8(data: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(data), 0, 255).astype(np.uint8)


def remove_shadows(image: np.ndarray, params: Optional[EnhancementConfig] = None) -> np.ndarray:
    """Block-wise brightness normalization.

    Blocks darker than the target (but brighter than the noise floor, so
    genuinely dark content is left alone) are brightened by
    ``min(max_gain, target / block_mean)``.
    """
    params = params or EnhancementConfig()
    h, w = image.shape[:2]
    block = max(params.shadow_min_block, min(h, w) // params.shadow_block_divisor)

    out = image.astype(np.float32)
    for y in range(0, h, block):
        for x in range(0, w, block):
            region = out[y:y + block, x:x + block]
            avg = float(region.mean())
            if params.shadow_noise_floor < avg < params.shadow_target:
                region *= min(params.shadow_max_gain, params.shadow_target / avg)
    return _to_uint8(out)


def stretch_contrast(image: np.ndarray, params: Optional[EnhancementConfig] = None) -> np.ndarray:
    """Linear remap of the sampled brightness range onto the target range.

    Images whose sampled range falls below ``contrast_min_range`` are
    returned unchanged.
    """
    params = params or EnhancementConfig()
    stride = params.contrast_sample_stride
    brightness = luminance(image[::stride, ::stride])
    low = float(brightness.min())
    high = float(brightness.max())
    spread = high - low

    if spread < params.contrast_min_range:
        return image

    gain = params.contrast_target_range / spread
    out = (image.astype(np.float32) - low) * gain + params.contrast_offset
    return _to_uint8(out)


def sharpen(image: np.ndarray, amount: float = 0.4) -> np.ndarray:
    """4-neighbour unsharp mask: ``center + amount * (center - mean4)``."""
    if amount <= 0:
        return image
    side = -amount / 4.0
    kernel = np.array([
        [0.0, side, 0.0],
        [side, 1.0 + amount, side],
        [0.0, side, 0.0],
    ], dtype=np.float32)
    out = cv2.filter2D(image.astype(np.float32), -1, kernel, borderType=cv2.BORDER_REPLICATE)
    return _to_uint8(out)


def boost_saturation(image: np.ndarray, factor: float = 1.1) -> np.ndarray:
    gray = luminance(image)[:, :, np.newaxis]
    out = gray + (image.astype(np.float32) - gray) * factor
    return _to_uint8(out)


def to_gray_bgr(image: np.ndarray) -> np.ndarray:
    gray = _to_uint8(luminance(image))
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


def adaptive_threshold(image: np.ndarray, window_radius: int = 15, bias: float = 10.0) -> np.ndarray:
    """Binary black/white output against a sliding local mean.

    A pixel becomes white when it is brighter than the mean of its
    (2r+1)x(2r+1) neighbourhood minus ``bias``. Output holds only 0 and 255.
    """
    gray = _to_uint8(luminance(image)).astype(np.float32)
    size = 2 * window_radius + 1
    local_mean = cv2.blur(gray, (size, size), borderType=cv2.BORDER_REPLICATE)
    binary = np.where(gray > local_mean - bias, 255, 0).astype(np.uint8)
    return cv2.cvtColor(binary, cv2.COLOR_GRAY2BGR)


def apply_color_filter(
    image: PixelBuffer,
    scan_filter: ScanFilter,
    params: Optional[EnhancementConfig] = None,
) -> PixelBuffer:
    """Apply the final color filter to a BGR buffer."""
    params = params or EnhancementConfig()
    data = image.to_bgr().data
    scan_filter = ScanFilter.parse(scan_filter)

    if scan_filter is ScanFilter.GRAYSCALE:
        return PixelBuffer(to_gray_bgr(data))
    if scan_filter is ScanFilter.BLACK_WHITE:
        return PixelBuffer(adaptive_threshold(data, params.threshold_window_radius, params.threshold_bias))
    return PixelBuffer(boost_saturation(data, params.saturation_boost))


def enhance_document(
    image: PixelBuffer,
    options: Optional[ScanOptions] = None,
    params: Optional[EnhancementConfig] = None,
    on_step: Optional[Callable[[str, np.ndarray], None]] = None,
) -> PixelBuffer:
    """Run the full enhancement chain honoring the option toggles.

    ``on_step`` receives a name and the intermediate image after each step.
    """
    options = coerce_options(options)
    params = params or EnhancementConfig()

    def record(name: str, data: np.ndarray) -> None:
        if on_step is not None:
            on_step(name, data)

    data = image.to_bgr().data
    if options.remove_shadows:
        data = remove_shadows(data, params)
        record('08_shadows', data)
    if options.enhance_contrast:
        data = stretch_contrast(data, params)
        record('09_contrast', data)
    if options.sharpen:
        data = sharpen(data, params.sharpen_amount)
        record('10_sharpened', data)

    filtered = apply_color_filter(PixelBuffer(data), options.filter, params)
    record('11_filtered', filtered.data)
    return filtered


class EnhancementProcessor(BaseProcessor):
    """Processor enhancing a perspective-corrected document."""

    def process(self, image: PixelBuffer, options: Optional[ScanOptions] = None, **kwargs) -> PixelBuffer:
        """Apply shadow removal, contrast, sharpening and the color filter.

        Args:
            image: Corrected document
            options: Scan options selecting the steps and the filter

        Returns:
            Enhanced buffer with three channels
        """
        self.validate_image(image)
        self.clear_debug_images()

        options = coerce_options(options)
        filtered = enhance_document(
            image, options, self.config.enhancement, on_step=self.save_debug_image
        )

        logger.debug(f"Enhanced {filtered.width}x{filtered.height} with filter '{options.filter.value}'")
        return filtered

"""Luminance conversion and noise suppression ahead of edge detection."""

import cv2
import numpy as np

from .base import BaseProcessor
from ..config import SmoothingMethod
from ..schemas import PixelBuffer

# ITU-R BT.601 luma weights; thresholds downstream are tuned against these.
LUMA_R = 0.299
LUMA_G = 0.587
LUMA_B = 0.114


def luminance(image: np.ndarray) -> np.ndarray:
    """Unrounded float32 luminance of a BGR(A) array."""
    data = image.astype(np.float32)
    return LUMA_B * data[:, :, 0] + LUMA_G * data[:, :, 1] + LUMA_R * data[:, :, 2]


def to_grayscale(image: PixelBuffer) -> PixelBuffer:
    """Convert to a single-channel buffer with Y = 0.299R + 0.587G + 0.114B."""
    if image.channels == 1:
        return image
    gray = np.rint(luminance(image.data))
    return PixelBuffer(np.clip(gray, 0, 255).astype(np.uint8))


def box_blur(gray: PixelBuffer, radius: int = 2) -> PixelBuffer:
    """Separable box blur of the given radius.

    OpenCV's normalized box filter runs as two running-sum passes, so the
    cost per pixel does not depend on the radius.
    """
    size = 2 * radius + 1
    blurred = cv2.blur(gray.data, (size, size), borderType=cv2.BORDER_REPLICATE)
    return PixelBuffer(blurred)


def bilateral_smooth(gray: PixelBuffer, sigma_space: float = 3.0, sigma_color: float = 30.0) -> PixelBuffer:
    """Edge-preserving bilateral filter; slower than the box blur."""
    # d <= 0 lets OpenCV derive the neighbourhood from sigma_space
    smoothed = cv2.bilateralFilter(gray.data, -1, sigma_color, sigma_space)
    return PixelBuffer(smoothed)


class SmoothingProcessor(BaseProcessor):
    """Processor producing the smoothed intensity buffer."""

    def process(self, image: PixelBuffer, **kwargs) -> PixelBuffer:
        """Convert to grayscale and smooth with the configured method."""
        self.validate_image(image)
        self.clear_debug_images()

        params = self.config.smoothing
        gray = to_grayscale(image)
        self.save_debug_image('02_grayscale', gray.data)

        if SmoothingMethod(params.method) is SmoothingMethod.BILATERAL:
            smoothed = bilateral_smooth(gray, params.bilateral_sigma_space, params.bilateral_sigma_color)
        else:
            smoothed = box_blur(gray, params.box_radius)

        self.save_debug_image('03_smoothed', smoothed.data)
        return smoothed

"""Base processor class and common utilities for scanner processors."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import cv2
import numpy as np

from ..config import ScannerConfig, get_default_config
from ..schemas import PixelBuffer


class BaseProcessor(ABC):
    """Base class for all pipeline stage processors."""

    def __init__(self, config: Optional[ScannerConfig] = None):
        """Initialize processor with optional configuration."""
        self.config = config or get_default_config()
        self.debug_images: Dict[str, np.ndarray] = {}

    @abstractmethod
    def process(self, image: PixelBuffer, **kwargs) -> Any:
        """Process an image. Must be implemented by subclasses."""
        pass

    def validate_image(self, image: PixelBuffer) -> None:
        """Validate that the input is a usable pixel buffer."""
        if image is None:
            raise ValueError("Image cannot be None")
        if not isinstance(image, PixelBuffer):
            raise TypeError("Image must be a PixelBuffer")

    def save_debug_image(self, name: str, image: np.ndarray) -> None:
        """Store a debug image for later saving."""
        if self.config.debug.save_debug_images:
            self.debug_images[name] = image

    def get_debug_images(self) -> Dict[str, np.ndarray]:
        """Get all stored debug images."""
        return self.debug_images

    def clear_debug_images(self) -> None:
        """Clear stored debug images."""
        self.debug_images = {}

    def save_debug_images_to_dir(self, debug_dir: Path, prefix: str = "") -> None:
        """Save all debug images to the specified directory."""
        if not self.debug_images:
            return

        debug_dir.mkdir(parents=True, exist_ok=True)

        img_format = self.config.debug.debug_image_format
        quality = self.config.debug.debug_compression_quality

        for name, image in self.debug_images.items():
            filename = f"{prefix}_{name}.{img_format}" if prefix else f"{name}.{img_format}"
            filepath = debug_dir / filename

            if img_format in ('jpg', 'jpeg'):
                cv2.imwrite(str(filepath), image, [cv2.IMWRITE_JPEG_QUALITY, quality])
            else:
                cv2.imwrite(str(filepath), image)

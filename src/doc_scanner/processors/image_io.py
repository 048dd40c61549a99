"""Image I/O: source loading, working-resolution normalization and encoding."""

import asyncio
import base64
import binascii
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

import cv2
import numpy as np
import requests

from .base import BaseProcessor
from ..config import OutputFormat
from ..exceptions import ImageEncodeError, SourceUnavailableError
from ..schemas import PixelBuffer, ScanFilter
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)

ImageSource = Union[bytes, bytearray, memoryview, str, Path, np.ndarray, PixelBuffer]

MIME_TYPES = {"jpeg": "image/jpeg", "png": "image/png"}


@dataclass(frozen=True, eq=False)
class LoadedImage:
    """Decoded source image plus the encoded bytes it came from, if any."""

    image: PixelBuffer
    raw: Optional[bytes]
    reference: Any


@dataclass(frozen=True, eq=False)
class NormalizedImage:
    """Working-resolution buffer with the scale factor that produced it."""

    buffer: PixelBuffer
    scale: float
    original: PixelBuffer


def decode_image(data: bytes, source_name: str = "<bytes>") -> PixelBuffer:
    """Decode compressed image bytes into a BGR pixel buffer.

    Raises:
        SourceUnavailableError: If the bytes are empty or not a supported image
    """
    if not data:
        raise SourceUnavailableError("Image data is empty", source=source_name)

    try:
        image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise SourceUnavailableError(f"Could not decode image: {e}", source=source_name)

    if image is None:
        raise SourceUnavailableError("Could not decode image", source=source_name)
    return PixelBuffer(image)


def fetch_image_bytes(url: str, timeout: float = 30.0) -> bytes:
    """Download an image over HTTP(S)."""
    logger.debug(f"Fetching image from {url}")
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise SourceUnavailableError(f"Could not fetch image: {e}", source=url)
    return response.content


def read_image_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise SourceUnavailableError(f"Could not read image file: {e}", source=str(path))


def _decode_data_url(url: str) -> bytes:
    header, _, payload = url.partition(",")
    if not payload:
        raise SourceUnavailableError("Malformed data URL", source=header[:40])
    try:
        if header.endswith(";base64"):
            return base64.b64decode(payload, validate=True)
        return urllib.parse.unquote_to_bytes(payload)
    except (binascii.Error, ValueError) as e:
        raise SourceUnavailableError(f"Malformed data URL payload: {e}", source=header[:40])


def load_source(source: ImageSource, timeout: float = 30.0) -> LoadedImage:
    """Resolve any supported source into a decoded BGR buffer.

    Accepts encoded bytes, ``data:`` URLs, ``http(s)://`` URLs, file paths,
    numpy arrays and pixel buffers. Alpha channels are dropped and
    single-channel images are expanded to three channels.

    Raises:
        SourceUnavailableError: If the source cannot be read, fetched or decoded
    """
    if isinstance(source, PixelBuffer):
        return LoadedImage(source.to_bgr(), None, source)

    if isinstance(source, np.ndarray):
        try:
            buffer = PixelBuffer.from_array(source)
        except (TypeError, ValueError) as e:
            raise SourceUnavailableError(f"Invalid pixel array: {e}", source="<array>")
        return LoadedImage(buffer.to_bgr(), None, source)

    if isinstance(source, (bytes, bytearray, memoryview)):
        raw = bytes(source)
        return LoadedImage(decode_image(raw), raw, source)

    if isinstance(source, (str, Path)):
        text = str(source)
        if isinstance(source, str) and text.startswith("data:"):
            raw = _decode_data_url(text)
            name = "<data url>"
        elif isinstance(source, str) and text.lower().startswith(("http://", "https://")):
            raw = fetch_image_bytes(text, timeout=timeout)
            name = text
        else:
            raw = read_image_file(Path(text))
            name = text
        return LoadedImage(decode_image(raw, name), raw, source)

    raise SourceUnavailableError(
        f"Unsupported image source type: {type(source).__name__}"
    )


async def load_source_async(source: ImageSource, timeout: float = 30.0) -> LoadedImage:
    """Load a source without blocking the event loop.

    This is the only suspension point of a scan. Cancelling the awaiting task
    abandons the load; no result is produced.
    """
    return await asyncio.to_thread(load_source, source, timeout)


def downscale_to_width(image: PixelBuffer, max_width: int) -> Tuple[PixelBuffer, float]:
    """Shrink an image to at most ``max_width`` columns. Never upsamples.

    Returns:
        Tuple of (working buffer, scale) where scale = working width / original width
    """
    if image.width <= max_width:
        return image, 1.0

    scale = max_width / image.width
    new_height = max(1, int(round(image.height * scale)))
    resized = cv2.resize(image.data, (max_width, new_height), interpolation=cv2.INTER_AREA)
    return PixelBuffer(resized), scale


def resolve_output_format(output_format: Union[str, OutputFormat], scan_filter: ScanFilter) -> str:
    """Pick the concrete encoding; ``auto`` keeps gray and binary output lossless."""
    fmt = OutputFormat(output_format)
    if fmt is OutputFormat.AUTO:
        return "jpeg" if scan_filter is ScanFilter.COLOR else "png"
    return fmt.value


def encode_image(image: PixelBuffer, fmt: str = "jpeg", quality: int = 92) -> bytes:
    """Encode a pixel buffer as JPEG or PNG bytes."""
    if fmt == "jpeg":
        ok, encoded = cv2.imencode(".jpg", image.data, [cv2.IMWRITE_JPEG_QUALITY, quality])
    elif fmt == "png":
        ok, encoded = cv2.imencode(".png", image.data)
    else:
        raise ImageEncodeError(f"Unsupported output format: {fmt}", processor="image_io")

    if not ok:
        raise ImageEncodeError("Image encoding failed", processor="image_io", format=fmt)
    return encoded.tobytes()


class ImageNormalizerProcessor(BaseProcessor):
    """Processor producing the working-resolution buffer for detection."""

    def process(self, image: PixelBuffer, max_width: int = 1200, **kwargs) -> NormalizedImage:
        """Convert to BGR and downsample to ``max_width``.

        Args:
            image: Decoded source image
            max_width: Processing-resolution cap in pixels

        Returns:
            NormalizedImage with the working buffer and its scale factor
        """
        self.validate_image(image)
        self.clear_debug_images()

        original = image.to_bgr()
        working, scale = downscale_to_width(original, max_width)

        if scale < 1.0:
            logger.debug(
                f"Downscaled {original.width}x{original.height} to "
                f"{working.width}x{working.height} (scale={scale:.4f})"
            )
        self.save_debug_image('01_working', working.data)

        return NormalizedImage(working, scale, original)

"""Tests for source loading, normalization and encoding."""

import asyncio
import base64
import time

import cv2
import numpy as np
import pytest
import requests

from doc_scanner.config import OutputFormat
from doc_scanner.exceptions import ImageEncodeError, SourceUnavailableError
from doc_scanner.processors import image_io
from doc_scanner.processors.image_io import (
    ImageNormalizerProcessor,
    decode_image,
    downscale_to_width,
    encode_image,
    load_source,
    load_source_async,
    resolve_output_format,
)
from doc_scanner.schemas import PixelBuffer, ScanFilter


@pytest.fixture
def small_image():
    image = np.zeros((40, 60, 3), dtype=np.uint8)
    image[10:30, 20:40] = (10, 200, 30)
    return image


@pytest.fixture
def small_png(small_image):
    ok, encoded = cv2.imencode(".png", small_image)
    assert ok
    return encoded.tobytes()


class TestLoadSource:
    def test_bytes(self, small_png, small_image):
        loaded = load_source(small_png)
        assert loaded.raw == small_png
        assert np.array_equal(loaded.image.data, small_image)

    def test_bytearray(self, small_png):
        assert load_source(bytearray(small_png)).image.width == 60

    def test_file_path(self, temp_dir, small_png):
        path = temp_dir / "page.png"
        path.write_bytes(small_png)
        loaded = load_source(path)
        assert loaded.image.height == 40
        assert load_source(str(path)).raw == small_png

    def test_missing_file(self, temp_dir):
        with pytest.raises(SourceUnavailableError):
            load_source(temp_dir / "missing.png")

    def test_data_url(self, small_png):
        url = "data:image/png;base64," + base64.b64encode(small_png).decode("ascii")
        assert load_source(url).image.width == 60

    def test_malformed_data_url(self):
        with pytest.raises(SourceUnavailableError):
            load_source("data:image/png;base64,")

    def test_garbage_bytes(self):
        with pytest.raises(SourceUnavailableError):
            load_source(b"definitely not an image")

    def test_empty_bytes(self):
        with pytest.raises(SourceUnavailableError):
            decode_image(b"")

    def test_array_sources(self, small_image):
        assert load_source(small_image).raw is None
        gray = load_source(np.full((8, 8), 9, dtype=np.uint8))
        assert gray.image.channels == 3
        bgra = load_source(PixelBuffer(np.zeros((8, 8, 4), dtype=np.uint8)))
        assert bgra.image.channels == 3

    def test_invalid_array(self):
        with pytest.raises(SourceUnavailableError):
            load_source(np.zeros((0, 5, 3), dtype=np.uint8))

    def test_unsupported_type(self):
        with pytest.raises(SourceUnavailableError):
            load_source(12345)

    def test_http_source(self, monkeypatch, small_png):
        class FakeResponse:
            content = small_png

            def raise_for_status(self):
                pass

        calls = []

        def fake_get(url, timeout):
            calls.append((url, timeout))
            return FakeResponse()

        monkeypatch.setattr(image_io.requests, "get", fake_get)
        loaded = load_source("https://example.com/page.png", timeout=5)
        assert loaded.image.width == 60
        assert calls == [("https://example.com/page.png", 5)]

    def test_http_failure(self, monkeypatch):
        def fake_get(url, timeout):
            raise requests.ConnectionError("unreachable")

        monkeypatch.setattr(image_io.requests, "get", fake_get)
        with pytest.raises(SourceUnavailableError):
            load_source("http://example.com/page.png")


class TestAsyncLoad:
    def test_load_async(self, small_png):
        loaded = asyncio.run(load_source_async(small_png))
        assert loaded.image.width == 60

    def test_cancel_during_load(self, monkeypatch, small_png):
        original = image_io.load_source

        def slow_load(source, timeout=30.0):
            time.sleep(0.3)
            return original(source, timeout)

        monkeypatch.setattr(image_io, "load_source", slow_load)

        async def run():
            task = asyncio.create_task(load_source_async(small_png))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())


class TestNormalizer:
    def test_downscale(self):
        image = PixelBuffer(np.zeros((1200, 1600, 3), dtype=np.uint8))
        working, scale = downscale_to_width(image, 800)
        assert working.width == 800
        assert working.height == 600
        assert scale == 0.5

    def test_never_upsamples(self, small_image):
        image = PixelBuffer(small_image)
        working, scale = downscale_to_width(image, 1200)
        assert working is image
        assert scale == 1.0

    def test_processor(self, small_image):
        normalized = ImageNormalizerProcessor().process(PixelBuffer(small_image), max_width=30)
        assert normalized.buffer.width == 30
        assert normalized.scale == 0.5
        assert normalized.original.width == 60


class TestEncoding:
    def test_auto_format(self):
        assert resolve_output_format(OutputFormat.AUTO, ScanFilter.BLACK_WHITE) == "png"
        assert resolve_output_format(OutputFormat.AUTO, ScanFilter.GRAYSCALE) == "png"
        assert resolve_output_format("auto", ScanFilter.COLOR) == "jpeg"
        assert resolve_output_format("png", ScanFilter.COLOR) == "png"

    def test_png_is_lossless(self, small_image):
        data = encode_image(PixelBuffer(small_image), "png")
        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert np.array_equal(decoded, small_image)

    def test_jpeg(self, small_image):
        data = encode_image(PixelBuffer(small_image), "jpeg", quality=92)
        assert data[:2] == b"\xff\xd8"

    def test_unsupported_format(self, small_image):
        with pytest.raises(ImageEncodeError):
            encode_image(PixelBuffer(small_image), "gif")

"""
Pytest configuration and shared fixtures for document scanner tests.

Provides synthetic document photos, configuration and helpers for all test modules.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import cv2
import numpy as np
import pytest

from doc_scanner.config import ScannerConfig, get_default_config
from doc_scanner.utils.logging_utils import setup_logging

# Scenario geometry: 500x350 white sheet centered on an 800x600 frame
FRAME_SIZE = (800, 600)
DOCUMENT_CORNERS = np.array([[150, 125], [649, 125], [649, 474], [150, 474]], dtype=np.float64)
BACKGROUND_BGR = (60, 90, 120)


def make_document_photo(
    width: int = 800,
    height: int = 600,
    rect: tuple = (150, 125, 649, 474),
    background: tuple = BACKGROUND_BGR,
    paper: tuple = (255, 255, 255),
) -> np.ndarray:
    """Solid sheet of paper on a uniformly colored surface."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:] = background
    x0, y0, x1, y1 = rect
    cv2.rectangle(image, (x0, y0), (x1, y1), paper, -1)
    return image


def encode_png(image: np.ndarray) -> bytes:
    ok, encoded = cv2.imencode(".png", image)
    assert ok
    return encoded.tobytes()


def decode(data: bytes) -> np.ndarray:
    return cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def document_image() -> np.ndarray:
    return make_document_photo()


@pytest.fixture
def document_bytes(document_image: np.ndarray) -> bytes:
    return encode_png(document_image)


@pytest.fixture
def uniform_image() -> np.ndarray:
    """Solid-color frame without any edges."""
    return np.full((600, 800, 3), 128, dtype=np.uint8)


@pytest.fixture
def noise_image() -> np.ndarray:
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=(450, 600, 3), dtype=np.uint8)


@pytest.fixture
def sample_config() -> ScannerConfig:
    """Create a sample configuration for testing."""
    config = get_default_config()

    # Override some settings for testing
    config.logging.level = "DEBUG"
    config.logging.use_rich = False
    config.debug.save_debug_images = False

    return config


@pytest.fixture
def sample_config_dict() -> dict:
    """Create a sample configuration dictionary."""
    return {
        "smoothing": {"method": "bilateral"},
        "edge_detection": {"low_threshold": 40, "high_threshold": 120},
        "auto_crop": {"min_confidence": 0.6},
        "output": {"jpeg_quality": 85},
    }


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Setup logging for tests."""
    setup_logging(
        level="WARNING",  # Only show warnings and errors in tests
        use_rich=False,
        include_performance=False,
        format_style="minimal"
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (deselect with '-m \"not unit\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)

        if "slow" in item.name.lower():
            item.add_marker(pytest.mark.slow)

"""End-to-end tests for the document scanning pipeline."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import cv2
import numpy as np
import pytest

from conftest import DOCUMENT_CORNERS, decode, encode_png, make_document_photo
from doc_scanner import (
    BatchScanItem,
    CropBounds,
    DocumentScanner,
    InvalidOptionsError,
    ParallelScanner,
    ScanCache,
    ScanFilter,
    ScanResult,
    SourceUnavailableError,
    apply_filter_to_image,
    detect_crop_bounds,
    scan_document,
)
from doc_scanner.config import ScannerConfig
from doc_scanner.processors.perspective import compute_output_size


MANUAL_BOUNDS = {
    "topLeft": {"x": 60, "y": 40},
    "topRight": {"x": 540, "y": 55},
    "bottomRight": {"x": 555, "y": 410},
    "bottomLeft": {"x": 45, "y": 400},
}


def _corner_error(bounds: CropBounds, expected: np.ndarray) -> float:
    return float(np.abs(bounds.to_array() - expected).max())


class TestScenarioA:
    """Centered white sheet on a uniform background."""

    def test_detects_and_crops(self, document_bytes):
        result = scan_document(document_bytes)

        assert isinstance(result, ScanResult)
        assert result.auto_crop_applied
        assert result.confidence >= 0.58
        assert result.detection_method == "edges"
        assert result.enhancement_applied
        assert _corner_error(result.crop_bounds, DOCUMENT_CORNERS) <= 5

    def test_output_matches_corrected_size(self, document_bytes):
        result = scan_document(document_bytes)
        expected = compute_output_size(result.crop_bounds.to_array(), 1200)

        assert result.output_size == expected
        decoded = decode(result.processed_image)
        assert abs(decoded.shape[1] - expected[0]) <= 1
        assert abs(decoded.shape[0] - expected[1]) <= 1
        assert result.mime_type == "image/jpeg"

    def test_detect_only(self, document_bytes):
        scanner = DocumentScanner()
        outcome = scanner.detect(document_bytes)

        assert outcome.found
        assert outcome.method == "edges"
        assert outcome.confidence >= 0.58
        assert 0.2 <= outcome.area_ratio <= 0.9
        assert _corner_error(outcome.crop_bounds, DOCUMENT_CORNERS) <= 5

    def test_detect_crop_bounds_function(self, document_image):
        bounds = detect_crop_bounds(document_image)
        assert bounds is not None
        assert _corner_error(bounds, DOCUMENT_CORNERS) <= 5

    def test_auto_crop_disabled(self, document_bytes):
        result = scan_document(document_bytes, {"autoCrop": False})
        assert not result.auto_crop_applied
        assert result.confidence == 0.0
        assert result.crop_bounds is None
        assert result.output_size == (800, 600)

    def test_gate_blocks_low_confidence(self, document_bytes):
        config = ScannerConfig(auto_crop={"min_confidence": 0.99})
        result = DocumentScanner(config).scan(document_bytes)
        assert not result.auto_crop_applied
        assert not result.enhancement_applied
        assert result.crop_bounds is not None
        assert 0.58 <= result.confidence < 0.99

    def test_small_max_width_still_crops(self, document_image):
        result = scan_document(document_image, {"maxWidth": 120})
        assert result.detection_method == "edges"
        assert result.auto_crop_applied
        assert result.enhancement_applied
        assert result.output_size[0] == 120


class TestScenarioB:
    """Uniform frame: nothing to detect."""

    def test_no_detection(self, uniform_image):
        result = scan_document(encode_png(uniform_image))

        assert result.confidence == 0.0
        assert not result.auto_crop_applied
        assert result.crop_bounds is None
        assert result.detection_method is None
        assert not result.enhancement_applied

    def test_output_equals_input(self, uniform_image):
        result = scan_document(encode_png(uniform_image), {"filter": "blackwhite"})
        decoded = decode(result.processed_image)
        assert decoded.shape == uniform_image.shape
        assert np.abs(decoded.astype(int) - uniform_image.astype(int)).max() <= 2

    def test_output_equals_input_modulo_scaling(self, uniform_image):
        result = scan_document(encode_png(uniform_image), {"maxWidth": 400})
        assert result.output_size == (400, 300)
        assert result.scale == 0.5

    def test_detect_only_finds_nothing(self, uniform_image):
        outcome = DocumentScanner().detect(uniform_image)
        assert not outcome.found
        assert outcome.confidence == 0.0
        assert outcome.method is None


class TestScenarioC:
    """Manual crop bounds bypass detection."""

    def test_manual_crop_on_noise(self, noise_image):
        result = scan_document(noise_image, {"cropBounds": MANUAL_BOUNDS})

        assert result.auto_crop_applied
        assert result.confidence == 1.0
        assert result.detection_method == "manual"
        assert result.enhancement_applied
        expected = compute_output_size(CropBounds.model_validate(MANUAL_BOUNDS).to_array(), 1200)
        assert result.output_size == expected

    def test_manual_crop_on_uniform(self, uniform_image):
        result = scan_document(uniform_image, {"cropBounds": MANUAL_BOUNDS, "autoCrop": False})
        assert result.auto_crop_applied
        assert result.confidence == 1.0

    def test_manual_bounds_returned_in_original_space(self, noise_image):
        result = scan_document(noise_image, {"cropBounds": MANUAL_BOUNDS, "maxWidth": 300})
        assert result.crop_bounds.top_right.x == 540
        assert result.output_size[0] == 300

    def test_manual_crop_at_small_max_width(self, document_image):
        bounds = CropBounds.from_array(DOCUMENT_CORNERS)
        result = scan_document(document_image, {"cropBounds": bounds, "maxWidth": 120})
        assert result.auto_crop_applied
        assert result.enhancement_applied
        assert result.output_size == compute_output_size(DOCUMENT_CORNERS, 120)

    def test_degenerate_manual_crop(self, noise_image):
        tiny = {
            "topLeft": [10, 10], "topRight": [40, 10],
            "bottomRight": [40, 40], "bottomLeft": [10, 40],
        }
        result = scan_document(noise_image, {"cropBounds": tiny})
        assert not result.auto_crop_applied
        assert result.confidence == 1.0
        assert not result.enhancement_applied


class TestScenarioD:
    """Black-white output is strictly binary."""

    def test_scan_black_white(self, document_bytes):
        result = scan_document(document_bytes, {"filter": "black-white"})
        assert result.auto_crop_applied
        assert result.mime_type == "image/png"
        values = set(np.unique(decode(result.processed_image)).tolist())
        assert values <= {0, 255}

    def test_refilter_black_white(self, noise_image):
        data = apply_filter_to_image(encode_png(noise_image), "blackwhite")
        values = set(np.unique(decode(data)).tolist())
        assert values <= {0, 255}


class TestScenarioE:
    """Re-filter is repeatable.

    Every filter gives the same bytes for the same input. Grayscale and
    black-white are also stable when applied to their own output; color
    boosts saturation on each pass, so it is only checked for repeatability.
    """

    @pytest.mark.parametrize("scan_filter", ["color", "grayscale", "blackwhite"])
    def test_refilter_deterministic(self, document_bytes, scan_filter):
        scanner = DocumentScanner()
        first = scanner.refilter(document_bytes, scan_filter)
        second = scanner.refilter(document_bytes, scan_filter)
        assert first == second

    @pytest.mark.parametrize("scan_filter", ["grayscale", "blackwhite"])
    def test_refilter_of_own_output_is_stable(self, document_bytes, scan_filter):
        scanner = DocumentScanner()
        first = scanner.refilter(document_bytes, scan_filter)
        second = scanner.refilter(first, scan_filter)
        assert second == first

    def test_refilter_keeps_geometry(self, document_image):
        data = apply_filter_to_image(document_image, ScanFilter.GRAYSCALE)
        assert decode(data).shape[:2] == document_image.shape[:2]

    def test_refilter_unknown_filter(self, document_bytes):
        with pytest.raises(InvalidOptionsError):
            DocumentScanner().refilter(document_bytes, "sepia")


class TestProperties:
    @pytest.mark.parametrize("fixture_name", ["document_image", "uniform_image", "noise_image"])
    def test_confidence_in_unit_interval(self, request, fixture_name):
        result = scan_document(request.getfixturevalue(fixture_name))
        assert 0.0 <= result.confidence <= 1.0

    def test_round_trip_scaling(self):
        image = make_document_photo(1600, 1200, rect=(300, 250, 1299, 949))
        scanner = DocumentScanner()

        scaled = scanner.detect(image, {"maxWidth": 800})
        full = scanner.detect(image, {"maxWidth": 1600})

        assert scaled.scale == 0.5
        assert full.scale == 1.0
        assert scaled.found and full.found
        assert _corner_error(scaled.crop_bounds, full.crop_bounds.to_array()) <= 10

    def test_border_touching_sheet_not_auto_cropped(self):
        image = make_document_photo(rect=(0, 100, 500, 450))
        result = scan_document(image)
        assert not (result.auto_crop_applied and result.detection_method == "edges")

    def test_background_edges_do_not_win(self):
        image = make_document_photo()
        cv2.rectangle(image, (2, 2), (797, 597), (200, 200, 200), 3)
        result = scan_document(image)
        assert result.auto_crop_applied
        assert _corner_error(result.crop_bounds, DOCUMENT_CORNERS) <= 5


class TestErrors:
    def test_invalid_options_before_loading(self, temp_dir):
        with pytest.raises(InvalidOptionsError):
            scan_document(str(temp_dir / "missing.png"), {"maxWidth": -1})

    def test_invalid_manual_bounds(self, document_bytes):
        collapsed = dict(MANUAL_BOUNDS, topRight=MANUAL_BOUNDS["topLeft"])
        with pytest.raises(InvalidOptionsError):
            scan_document(document_bytes, {"cropBounds": collapsed})

    def test_source_unavailable(self, temp_dir):
        with pytest.raises(SourceUnavailableError):
            scan_document(str(temp_dir / "missing.png"))

    def test_undecodable_bytes(self):
        with pytest.raises(SourceUnavailableError):
            scan_document(b"\x00\x01\x02 not an image")


class TestAsync:
    def test_scan_async_matches_sync(self, document_bytes):
        scanner = DocumentScanner()
        async_result = asyncio.run(scanner.scan_async(document_bytes))
        sync_result = scanner.scan(document_bytes)
        assert async_result.processed_image == sync_result.processed_image
        assert async_result.confidence == sync_result.confidence

    def test_scan_async_invalid_options(self, document_bytes):
        with pytest.raises(InvalidOptionsError):
            asyncio.run(DocumentScanner().scan_async(document_bytes, {"filter": "sepia"}))


class TestCacheIntegration:
    def test_repeated_scan_hits_cache(self, document_bytes):
        cache = ScanCache(max_entries=4)
        scanner = DocumentScanner(cache=cache)

        first = scanner.scan(document_bytes)
        second = scanner.scan(document_bytes)

        assert second is first
        assert cache.hits == 1
        assert cache.misses == 1

    def test_options_change_misses(self, document_bytes):
        cache = ScanCache()
        scanner = DocumentScanner(cache=cache)
        scanner.scan(document_bytes)
        scanner.scan(document_bytes, {"filter": "grayscale"})
        assert cache.misses == 2
        assert len(cache) == 2


class TestDebugOutput:
    def test_debug_images_written(self, document_bytes, temp_dir):
        config = ScannerConfig(debug={"save_debug_images": True, "debug_dir": str(temp_dir)})
        DocumentScanner(config).scan(document_bytes)
        names = {p.name.split("_", 3)[-1] for p in temp_dir.glob("*.png")}
        assert {"01_working.png", "04_edges.png", "07_warped.png", "11_filtered.png"} <= names

    def test_concurrent_scans_keep_debug_captures_apart(self, document_bytes, uniform_image, temp_dir):
        config = ScannerConfig(debug={"save_debug_images": True, "debug_dir": str(temp_dir)})
        scanner = DocumentScanner(config)

        with ThreadPoolExecutor(max_workers=2) as pool:
            cropped, uncropped = pool.map(scanner.scan, [document_bytes, uniform_image])

        assert cropped.auto_crop_applied and not uncropped.auto_crop_applied
        groups = {}
        for path in temp_dir.glob("*.png"):
            stamp = "_".join(path.name.split("_", 3)[:3])
            groups.setdefault(stamp, set()).add(path.name.split("_", 3)[-1])

        assert len(groups) == 2
        with_warp = [names for names in groups.values() if "07_warped.png" in names]
        without_warp = [names for names in groups.values() if "07_warped.png" not in names]
        assert len(with_warp) == 1 and len(without_warp) == 1
        assert not any(name.startswith(("08_", "11_")) for name in without_warp[0])


class TestParallelScanner:
    def test_sequential_batch(self, document_bytes):
        scanner = ParallelScanner(max_workers=1, show_progress=False)
        items = scanner.scan_many([document_bytes, b"garbage"])

        assert [item.index for item in items] == [0, 1]
        assert all(isinstance(item, BatchScanItem) for item in items)
        assert items[0].ok and items[0].result.auto_crop_applied
        assert not items[1].ok
        assert items[1].result is None
        assert "item 1" in items[1].error

    def test_invalid_options_fail_whole_batch(self, document_bytes):
        with pytest.raises(InvalidOptionsError):
            ParallelScanner(max_workers=1, show_progress=False).scan_many(
                [document_bytes], {"maxWidth": 0}
            )

    def test_empty_batch(self):
        assert ParallelScanner(max_workers=1, show_progress=False).scan_many([]) == []

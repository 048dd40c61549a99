"""Document scanning pipeline: detection, correction and enhancement of one image."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

import numpy as np

from .cache import ScanCache, make_cache_key
from .config import ScannerConfig, get_default_config
from .exceptions import InvalidOptionsError
from .geometry import clamp_quad
from .processors import (
    BaseProcessor,
    ColorFallbackProcessor,
    EdgeDetectionProcessor,
    EnhancementProcessor,
    ImageNormalizerProcessor,
    ImageSource,
    LoadedImage,
    MIME_TYPES,
    PerspectiveProcessor,
    QuadDetectionProcessor,
    SmoothingProcessor,
    apply_color_filter,
    encode_image,
    load_source,
    load_source_async,
    resolve_output_format,
)
from .schemas import (
    CropBounds,
    DetectionOutcome,
    PixelBuffer,
    QuadCandidate,
    ScanFilter,
    ScanOptions,
    ScanResult,
    coerce_options,
)
from .utils.logging_utils import get_logger, log_timing

logger = get_logger(__name__)

OptionsLike = Optional[Union[ScanOptions, Mapping[str, Any]]]


@dataclass(frozen=True)
class _Stages:
    """Processors for a single call; debug captures live here, not on the scanner."""

    normalizer: ImageNormalizerProcessor
    smoother: SmoothingProcessor
    edge_detector: EdgeDetectionProcessor
    quad_detector: QuadDetectionProcessor
    fallback_detector: ColorFallbackProcessor
    perspective: PerspectiveProcessor
    enhancer: EnhancementProcessor

    def all(self) -> List[BaseProcessor]:
        return [
            self.normalizer,
            self.smoother,
            self.edge_detector,
            self.quad_detector,
            self.fallback_detector,
            self.perspective,
            self.enhancer,
        ]


@dataclass(frozen=True)
class _Detection:
    """Selected candidate (if any) and the confidence reported for the attempt."""

    candidate: Optional[QuadCandidate]
    confidence: float


class DocumentScanner:
    """Scans photographed documents into cropped, enhanced rasters.

    Stages run in a fixed order. Enhancement only runs once a crop has
    actually been applied, either an auto-crop that passed the confidence
    gate or a manual crop supplied by the caller.

    Every call builds its own stage processors, so one scanner can serve
    concurrent calls; only the optional cache is shared.

    """

    def __init__(self, config: Optional[ScannerConfig] = None, cache: Optional[ScanCache] = None):
        """Initialize the scanner.

        Args:
            config: Scanner configuration (defaults if None)
            cache: Optional caller-owned result cache
        """
        self.config = config or get_default_config()
        self.cache = cache

    def _create_stages(self) -> _Stages:
        return _Stages(
            normalizer=ImageNormalizerProcessor(self.config),
            smoother=SmoothingProcessor(self.config),
            edge_detector=EdgeDetectionProcessor(self.config),
            quad_detector=QuadDetectionProcessor(self.config),
            fallback_detector=ColorFallbackProcessor(self.config),
            perspective=PerspectiveProcessor(self.config),
            enhancer=EnhancementProcessor(self.config),
        )

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def scan(self, source: ImageSource, options: OptionsLike = None) -> ScanResult:
        """Run the full scan on one image.

        Args:
            source: Encoded bytes, data/HTTP URL, file path, array or PixelBuffer
            options: ScanOptions or a mapping of option values

        Returns:
            ScanResult; a document that was not found is a normal result

        Raises:
            InvalidOptionsError: If the options are invalid (before loading)
            SourceUnavailableError: If the source cannot be loaded
        """
        options = coerce_options(options)
        with log_timing("document scan", logger) as stats:
            loaded = load_source(source, timeout=self.config.output.fetch_timeout)
            result = self._scan_loaded(loaded, options)
            stats["auto_crop_applied"] = result.auto_crop_applied
        return result

    async def scan_async(self, source: ImageSource, options: OptionsLike = None) -> ScanResult:
        """Async variant of ``scan``.

        Loading (including a remote fetch) is the only await point; the pixel
        work after it runs synchronously. Cancelling during the load leaves no
        partial result.
        """
        options = coerce_options(options)
        loaded = await load_source_async(source, timeout=self.config.output.fetch_timeout)
        with log_timing("document scan", logger):
            return self._scan_loaded(loaded, options)

    def detect(self, source: ImageSource, options: OptionsLike = None) -> DetectionOutcome:
        """Detect the document outline without producing an image.

        Returns:
            DetectionOutcome with crop bounds in original image coordinates
        """
        options = coerce_options(options)
        loaded = load_source(source, timeout=self.config.output.fetch_timeout)
        original = loaded.image

        if options.crop_bounds is not None:
            quad = clamp_quad(options.crop_bounds.to_array(), original.width, original.height)
            return DetectionOutcome(CropBounds.from_array(quad), 1.0, "manual", scale=1.0)

        stages = self._create_stages()
        normalized = stages.normalizer.process(original, max_width=options.max_width)
        with log_timing("document detection", logger):
            detection = self._detect_working(stages, normalized.buffer)

        crop_bounds = None
        area_ratio = 0.0
        method = None
        if detection.candidate is not None:
            crop_bounds = self._to_original_bounds(detection.candidate, normalized.scale, original)
            area_ratio = detection.candidate.area_ratio
            method = detection.candidate.method

        return DetectionOutcome(
            crop_bounds=crop_bounds,
            confidence=detection.confidence,
            method=method,
            area_ratio=area_ratio,
            scale=normalized.scale,
        )

    def detect_crop_bounds(self, source: ImageSource, options: OptionsLike = None) -> Optional[CropBounds]:
        """Crop bounds for a manual-adjustment UI, or None if nothing was found."""
        return self.detect(source, options).crop_bounds

    def refilter(
        self,
        source: ImageSource,
        scan_filter: Union[str, ScanFilter],
    ) -> bytes:
        """Re-run only the color filter on an already processed image.

        No detection, cropping or other enhancement takes place.
        """
        try:
            scan_filter = ScanFilter.parse(scan_filter)
        except ValueError as e:
            raise InvalidOptionsError(f"Unknown filter: {scan_filter}") from e

        loaded = load_source(source, timeout=self.config.output.fetch_timeout)
        filtered = apply_color_filter(loaded.image, scan_filter, self.config.enhancement)
        fmt = resolve_output_format(self.config.output.format, scan_filter)
        return encode_image(filtered, fmt, self.config.output.jpeg_quality)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _scan_loaded(self, loaded: LoadedImage, options: ScanOptions) -> ScanResult:
        cache_key = None
        if self.cache is not None:
            cache_key = make_cache_key(loaded.raw, loaded.image, options, self.config)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Cache hit, returning stored scan result")
                return cached

        stages = self._create_stages()
        logger.debug("State: Loaded")
        normalized = stages.normalizer.process(loaded.image, max_width=options.max_width)
        original = normalized.original

        crop_bounds: Optional[CropBounds] = None
        confidence = 0.0
        method: Optional[str] = None
        corrected: Optional[PixelBuffer] = None

        if options.crop_bounds is not None:
            logger.debug("State: Skipped (manual crop bounds supplied)")
            quad = clamp_quad(options.crop_bounds.to_array(), original.width, original.height)
            crop_bounds = CropBounds.from_array(quad)
            confidence = 1.0
            method = "manual"
            corrected = stages.perspective.process(original, quad=quad, max_width=options.max_width)
            if corrected is None:
                logger.warning("Manual crop bounds are degenerate; returning the uncropped image")

        elif options.auto_crop:
            detection = self._detect_working(stages, normalized.buffer)
            logger.debug("State: Detected")
            confidence = detection.confidence

            candidate = detection.candidate
            if candidate is not None:
                crop_bounds = self._to_original_bounds(candidate, normalized.scale, original)
                method = candidate.method

                if self._passes_auto_crop_gate(candidate):
                    logger.info(
                        f"Auto-crop applied ({candidate.method}, confidence={candidate.confidence:.2f})"
                    )
                    corrected = stages.perspective.process(
                        original, quad=crop_bounds.to_array(), max_width=options.max_width
                    )
                else:
                    logger.info(
                        f"Auto-crop not applied: confidence={candidate.confidence:.2f}, "
                        f"area ratio={candidate.area_ratio:.2f}"
                    )
            else:
                logger.info("No document detected")

        else:
            logger.debug("State: Skipped (auto-crop disabled)")

        if corrected is not None:
            logger.debug("State: Cropped")
            final = stages.enhancer.process(corrected, options=options)
            logger.debug("State: Enhanced")
            logger.debug("State: Filtered")
            enhanced = True
        else:
            logger.debug("State: Uncropped")
            final = normalized.buffer
            enhanced = False

        fmt = resolve_output_format(
            self.config.output.format,
            options.filter if enhanced else ScanFilter.COLOR,
        )
        encoded = encode_image(final, fmt, self.config.output.jpeg_quality)
        logger.debug("State: Done")

        result = ScanResult(
            processed_image=encoded,
            original_image=loaded.reference,
            filter=options.filter,
            crop_bounds=crop_bounds,
            auto_crop_applied=corrected is not None,
            confidence=float(min(1.0, max(0.0, confidence))),
            mime_type=MIME_TYPES[fmt],
            output_size=(final.width, final.height),
            scale=normalized.scale,
            detection_method=method,
            enhancement_applied=enhanced,
        )

        if self.cache is not None and cache_key is not None:
            self.cache.put(cache_key, result)

        self._write_debug_images(stages)
        return result

    def _detect_working(self, stages: _Stages, working: PixelBuffer) -> _Detection:
        """Edge-based detection with the color fallback behind it.

        When neither path selects a candidate, the reported confidence is the
        best edge candidate that fell below the score floor, or 0.
        """
        smoothed = stages.smoother.process(working)
        raw_edges, dilated = stages.edge_detector.process(smoothed)
        selected, candidates = stages.quad_detector.process(dilated, raw_edges=raw_edges)
        if selected is not None:
            return _Detection(selected, selected.confidence)

        logger.debug("Edge detection found no document; trying color fallback")
        fallback = stages.fallback_detector.process(working)
        if fallback is not None:
            return _Detection(fallback, fallback.confidence)

        best_rejected = candidates[0].confidence if candidates else 0.0
        return _Detection(None, best_rejected)

    def _passes_auto_crop_gate(self, candidate: QuadCandidate) -> bool:
        gate = self.config.auto_crop
        return (
            candidate.confidence >= gate.min_confidence
            and gate.min_area_ratio <= candidate.area_ratio <= gate.max_area_ratio
        )

    @staticmethod
    def _to_original_bounds(candidate: QuadCandidate, scale: float, original: PixelBuffer) -> CropBounds:
        quad = np.asarray(candidate.quad, dtype=np.float64) / scale
        return CropBounds.from_array(clamp_quad(quad, original.width, original.height))

    def _write_debug_images(self, stages: _Stages) -> None:
        debug = self.config.debug
        if not debug.save_debug_images or not debug.debug_dir:
            return

        debug_dir = Path(debug.debug_dir)
        prefix = f"{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}-{uuid.uuid4().hex[:8]}"
        for processor in stages.all():
            processor.save_debug_images_to_dir(debug_dir, prefix=prefix)
        logger.debug(f"Debug images saved to {debug_dir}")


def scan_document(
    source: ImageSource,
    options: OptionsLike = None,
    config: Optional[ScannerConfig] = None,
    cache: Optional[ScanCache] = None,
) -> ScanResult:
    """Scan one image with a throwaway scanner."""
    return DocumentScanner(config, cache).scan(source, options)


async def scan_document_async(
    source: ImageSource,
    options: OptionsLike = None,
    config: Optional[ScannerConfig] = None,
    cache: Optional[ScanCache] = None,
) -> ScanResult:
    return await DocumentScanner(config, cache).scan_async(source, options)


def detect_crop_bounds(
    source: ImageSource,
    options: OptionsLike = None,
    config: Optional[ScannerConfig] = None,
) -> Optional[CropBounds]:
    """Detect-only entry point returning bounds in original coordinates."""
    return DocumentScanner(config).detect_crop_bounds(source, options)


def apply_filter_to_image(
    source: ImageSource,
    scan_filter: Union[str, ScanFilter],
    config: Optional[ScannerConfig] = None,
) -> bytes:
    """Re-filter entry point: color filter only, encoded."""
    return DocumentScanner(config).refilter(source, scan_filter)

"""
Pydantic models for scanner configuration.

Defines the tunable constants of every pipeline stage with validation,
defaults, and documentation. The detection thresholds and scoring weights are
empirical calibration values; they are exposed here so they can be re-tuned
against a sample corpus without touching the algorithms.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class LogLevel(str, Enum):
    """Supported logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SmoothingMethod(str, Enum):
    """Noise suppression applied before gradient computation."""
    BOX = "box"
    BILATERAL = "bilateral"


class OutputFormat(str, Enum):
    """Encoding of the processed raster."""
    AUTO = "auto"
    JPEG = "jpeg"
    PNG = "png"


class SmoothingConfig(BaseModel):
    """Configuration for grayscale smoothing."""

    method: SmoothingMethod = Field(
        default=SmoothingMethod.BOX,
        description="Box blur (fast) or bilateral filter (edge preserving)"
    )
    box_radius: int = Field(
        default=2,
        ge=1,
        le=15,
        description="Radius of the separable box blur"
    )
    bilateral_sigma_space: float = Field(
        default=3.0,
        gt=0.0,
        description="Spatial sigma of the bilateral filter"
    )
    bilateral_sigma_color: float = Field(
        default=30.0,
        gt=0.0,
        description="Range sigma of the bilateral filter"
    )


class EdgeDetectionConfig(BaseModel):
    """Configuration for Canny-style edge detection and dilation."""

    low_threshold: float = Field(
        default=50.0,
        ge=0.0,
        description="Gradient magnitude for weak edges"
    )
    high_threshold: float = Field(
        default=150.0,
        gt=0.0,
        description="Gradient magnitude for strong edges"
    )
    dilation_radius: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Radius of the square structuring element used to bridge gaps"
    )

    @model_validator(mode="after")
    def validate_threshold_order(self) -> "EdgeDetectionConfig":
        """Weak edges must never outrank strong ones."""
        if self.low_threshold > self.high_threshold:
            raise ValueError("low_threshold must not exceed high_threshold")
        return self


class QuadDetectionConfig(BaseModel):
    """Configuration for component rejection and quad scoring."""

    min_component_size: int = Field(default=40, gt=0, description="Minimum bbox side in pixels")
    border_margin_ratio: float = Field(
        default=0.02,
        ge=0.0,
        le=0.25,
        description="Border margin as a fraction of the shorter image side"
    )
    min_area_ratio: float = Field(default=0.20, gt=0.0, le=1.0)
    max_area_ratio: float = Field(default=0.90, gt=0.0, le=1.0)
    min_aspect_ratio: float = Field(default=0.45, gt=0.0)
    max_aspect_ratio: float = Field(default=2.2, gt=0.0)
    max_edge_density: float = Field(
        default=0.12,
        gt=0.0,
        le=1.0,
        description="Raw edge pixels per bbox pixel above which a region counts as texture"
    )
    min_edge_coverage: float = Field(default=0.20, ge=0.0, le=1.0)
    min_side_coverage: float = Field(default=0.18, ge=0.0, le=1.0)
    min_sides_covered: int = Field(default=3, ge=1, le=4)
    side_sample_stride: int = Field(default=4, ge=1, description="Stride when sampling bbox sides")
    side_band: int = Field(default=3, ge=0, description="Perpendicular search band in pixels")
    coverage_weight: float = Field(default=0.40, ge=0.0, le=1.0)
    center_weight: float = Field(default=0.28, ge=0.0, le=1.0)
    area_weight: float = Field(default=0.22, ge=0.0, le=1.0)
    aspect_weight: float = Field(default=0.10, ge=0.0, le=1.0)
    target_area_ratio: float = Field(default=0.55, gt=0.0, lt=1.0)
    document_aspect_ratios: List[float] = Field(
        default=[1.294, 1.414, 1.586, 1.647],
        description="Long/short side ratios of letter, A4, ID card and legal formats"
    )
    aspect_tolerance: float = Field(default=0.6, gt=0.0)
    score_floor: float = Field(default=0.32, ge=0.0, le=1.0)
    score_share: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="Share of the score in the confidence; the rest comes from quad fill"
    )

    @field_validator("document_aspect_ratios")
    @classmethod
    def validate_aspect_ratios(cls, v):
        if not v:
            raise ValueError("At least one document aspect ratio is required")
        if any(r < 1.0 for r in v):
            raise ValueError("Document aspect ratios are long/short and must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_bands(self) -> "QuadDetectionConfig":
        if self.min_area_ratio >= self.max_area_ratio:
            raise ValueError("min_area_ratio must be less than max_area_ratio")
        if self.min_aspect_ratio >= self.max_aspect_ratio:
            raise ValueError("min_aspect_ratio must be less than max_aspect_ratio")
        total = self.coverage_weight + self.center_weight + self.area_weight + self.aspect_weight
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.3f}")
        return self


class FallbackDetectionConfig(BaseModel):
    """Configuration for the color-contrast fallback detector."""

    enabled: bool = Field(default=True, description="Run when edge detection finds nothing")
    color_distance_threshold: float = Field(
        default=30.0,
        gt=0.0,
        description="RGB Euclidean distance from the background estimate"
    )
    sample_stride: int = Field(default=4, ge=1)
    corner_patch: int = Field(default=10, ge=1, description="Side of the sampled corner patches")
    min_match_ratio: float = Field(
        default=0.02,
        ge=0.0,
        le=1.0,
        description="Minimum share of sampled pixels that must differ from the background"
    )
    min_center_score: float = Field(default=0.5, ge=0.0, le=1.0)
    max_confidence: float = Field(default=0.48, ge=0.0, le=1.0)


class AutoCropConfig(BaseModel):
    """Gate deciding whether a detected quad is applied automatically."""

    min_confidence: float = Field(default=0.58, ge=0.0, le=1.0)
    min_area_ratio: float = Field(default=0.20, gt=0.0, le=1.0)
    max_area_ratio: float = Field(default=0.90, gt=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_area_band(self) -> "AutoCropConfig":
        if self.min_area_ratio >= self.max_area_ratio:
            raise ValueError("min_area_ratio must be less than max_area_ratio")
        return self


class PerspectiveConfig(BaseModel):
    """Configuration for perspective correction."""

    min_output_size: int = Field(
        default=100,
        ge=1,
        description="Corrected outputs smaller than this on either side are degenerate"
    )
    min_quad_area: float = Field(default=1.0, ge=0.0)


class EnhancementConfig(BaseModel):
    """Configuration for document enhancement filters."""

    shadow_block_divisor: int = Field(default=12, ge=1)
    shadow_min_block: int = Field(default=24, ge=1)
    shadow_target: float = Field(default=225.0, gt=0.0, le=255.0)
    shadow_noise_floor: float = Field(default=40.0, ge=0.0, le=255.0)
    shadow_max_gain: float = Field(default=1.35, ge=1.0)
    contrast_sample_stride: int = Field(default=4, ge=1)
    contrast_min_range: float = Field(default=60.0, ge=0.0, le=255.0)
    contrast_target_range: float = Field(default=240.0, gt=0.0, le=255.0)
    contrast_offset: float = Field(default=8.0, ge=0.0, le=255.0)
    sharpen_amount: float = Field(default=0.4, ge=0.0, le=5.0)
    saturation_boost: float = Field(default=1.1, ge=0.0)
    threshold_window_radius: int = Field(default=15, ge=1)
    threshold_bias: float = Field(default=10.0)

    @model_validator(mode="after")
    def validate_shadow_levels(self) -> "EnhancementConfig":
        if self.shadow_noise_floor >= self.shadow_target:
            raise ValueError("shadow_noise_floor must be below shadow_target")
        return self


class OutputConfig(BaseModel):
    """Configuration for encoding the processed raster."""

    format: OutputFormat = Field(default=OutputFormat.AUTO)
    jpeg_quality: int = Field(default=92, ge=1, le=100)
    fetch_timeout: float = Field(default=30.0, gt=0.0, description="Seconds allowed for remote sources")


class CacheConfig(BaseModel):
    """Configuration for the optional result cache."""

    max_entries: int = Field(default=32, ge=1)


class DebugConfig(BaseModel):
    """Configuration for intermediate image capture."""

    save_debug_images: bool = Field(default=False)
    debug_dir: Optional[str] = Field(default=None)
    debug_image_format: str = Field(default="png", pattern="^(png|jpg|jpeg)$")
    debug_compression_quality: int = Field(default=95, ge=1, le=100)


class LoggingConfig(BaseModel):
    """Configuration for logging setup."""

    level: LogLevel = Field(default=LogLevel.INFO, description="Base logging level")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")
    use_rich: bool = Field(default=True, description="Whether to use rich console output")
    include_performance: bool = Field(default=True, description="Log stage timings")
    format_style: str = Field(
        default="detailed",
        pattern="^(simple|detailed|minimal)$",
        description="Logging format style"
    )


class ScannerConfig(BaseModel):
    """Main configuration model for the document scanner."""

    smoothing: SmoothingConfig = Field(default_factory=SmoothingConfig)
    edge_detection: EdgeDetectionConfig = Field(default_factory=EdgeDetectionConfig)
    quad_detection: QuadDetectionConfig = Field(default_factory=QuadDetectionConfig)
    fallback: FallbackDetectionConfig = Field(default_factory=FallbackDetectionConfig)
    auto_crop: AutoCropConfig = Field(default_factory=AutoCropConfig)
    perspective: PerspectiveConfig = Field(default_factory=PerspectiveConfig)
    enhancement: EnhancementConfig = Field(default_factory=EnhancementConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    version: str = Field(default="1.0.0", description="Configuration version")
    description: Optional[str] = Field(default=None, description="Configuration description")

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
        use_enum_values=False,
    )

    def fingerprint(self) -> str:
        """Serialized form of every setting that affects pixel output."""
        return self.model_dump_json(exclude={"logging", "debug", "cache", "description"})

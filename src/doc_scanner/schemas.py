"""
Data model shared by every stage of the scanning pipeline.

Pixel data travels between stages as a ``PixelBuffer``; caller-facing records
(points, crop bounds, options) are pydantic models so that invalid input is
rejected before any pixel work starts.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import cv2
import numpy as np
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .exceptions import InvalidOptionsError


class ScanFilter(str, Enum):
    """Color filter applied as the last enhancement step."""
    COLOR = "color"
    GRAYSCALE = "grayscale"
    BLACK_WHITE = "blackwhite"

    @classmethod
    def parse(cls, value: Union[str, "ScanFilter"]) -> "ScanFilter":
        """Resolve a filter name, accepting the common alternative spellings."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        return cls(_FILTER_ALIASES.get(key, key))


_FILTER_ALIASES = {
    "passthrough": "color",
    "colour": "color",
    "gray": "grayscale",
    "black-white": "blackwhite",
    "black_white": "blackwhite",
    "bw": "blackwhite",
}


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """Row-major uint8 raster with 1, 3 or 4 channels (BGR/BGRA order)."""

    data: np.ndarray

    def __post_init__(self) -> None:
        data = self.data
        if not isinstance(data, np.ndarray):
            raise TypeError("Pixel buffer data must be a numpy array")
        if data.dtype != np.uint8:
            raise ValueError(f"Pixel buffer must be uint8, got {data.dtype}")
        if data.ndim not in (2, 3):
            raise ValueError(f"Pixel buffer must be 2-D or 3-D, got {data.ndim} dimensions")
        if data.ndim == 3 and data.shape[2] not in (1, 3, 4):
            raise ValueError(f"Unsupported channel count: {data.shape[2]}")
        if data.shape[0] == 0 or data.shape[1] == 0:
            raise ValueError("Pixel buffer cannot be empty")

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Wrap an array, clipping non-uint8 data into the 0-255 range."""
        array = np.asarray(array)
        if array.dtype != np.uint8:
            array = np.clip(array, 0, 255).astype(np.uint8)
        return cls(np.ascontiguousarray(array))

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.data.ndim == 2 else int(self.data.shape[2])

    @property
    def nbytes(self) -> int:
        return self.width * self.height * self.channels

    def to_bgr(self) -> "PixelBuffer":
        """Return a 3-channel view of this buffer, dropping alpha if present."""
        if self.channels == 3:
            return self
        if self.channels == 4:
            return PixelBuffer(cv2.cvtColor(self.data, cv2.COLOR_BGRA2BGR))
        gray = self.data if self.data.ndim == 2 else self.data[:, :, 0]
        return PixelBuffer(cv2.cvtColor(np.ascontiguousarray(gray), cv2.COLOR_GRAY2BGR))


class Point(BaseModel):
    """Pixel-space coordinate."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    x: float = Field(ge=0.0)
    y: float = Field(ge=0.0)

    @model_validator(mode="before")
    @classmethod
    def _from_sequence(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return {"x": value[0], "y": value[1]}
        return value


class CropBounds(BaseModel):
    """Four document corners in image coordinates."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    top_left: Point
    top_right: Point
    bottom_left: Point
    bottom_right: Point

    def to_array(self) -> np.ndarray:
        """Corners as a (4, 2) float array in TL, TR, BR, BL order."""
        return np.array([
            [self.top_left.x, self.top_left.y],
            [self.top_right.x, self.top_right.y],
            [self.bottom_right.x, self.bottom_right.y],
            [self.bottom_left.x, self.bottom_left.y],
        ], dtype=np.float64)

    @classmethod
    def from_array(cls, quad: np.ndarray) -> "CropBounds":
        """Build bounds from a (4, 2) array in TL, TR, BR, BL order."""
        quad = np.maximum(np.asarray(quad, dtype=np.float64).reshape(4, 2), 0.0)
        tl, tr, br, bl = (Point(x=float(p[0]), y=float(p[1])) for p in quad)
        return cls(top_left=tl, top_right=tr, bottom_left=bl, bottom_right=br)

    def scaled(self, factor: float) -> "CropBounds":
        return CropBounds.from_array(self.to_array() * factor)

    def distinct_points(self) -> int:
        return len({(round(x, 3), round(y, 3)) for x, y in self.to_array()})


class ScanOptions(BaseModel):
    """Per-call scan configuration supplied by the caller."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    filter: ScanFilter = ScanFilter.COLOR
    enhance_contrast: bool = True
    sharpen: bool = True
    remove_shadows: bool = True
    auto_crop: bool = True
    max_width: int = Field(default=1200, gt=0)
    crop_bounds: Optional[CropBounds] = None

    @field_validator("filter", mode="before")
    @classmethod
    def _parse_filter(cls, value: Any) -> ScanFilter:
        return ScanFilter.parse(value)

    @field_validator("crop_bounds")
    @classmethod
    def _require_four_corners(cls, value: Optional[CropBounds]) -> Optional[CropBounds]:
        if value is not None and value.distinct_points() < 4:
            raise ValueError("manual crop bounds need four distinct corner points")
        return value

    def cache_token(self) -> str:
        return self.model_dump_json()


def coerce_options(
    options: Optional[Union[ScanOptions, Mapping[str, Any]]] = None,
    **overrides: Any,
) -> ScanOptions:
    """Turn caller input into validated ``ScanOptions``.

    Raises:
        InvalidOptionsError: If the options cannot be validated
    """
    if isinstance(options, ScanOptions) and not overrides:
        return options

    if options is None:
        data: Dict[str, Any] = {}
    elif isinstance(options, ScanOptions):
        data = options.model_dump()
    elif isinstance(options, Mapping):
        data = dict(options)
    else:
        raise InvalidOptionsError(
            f"Unsupported options type: {type(options).__name__}"
        )
    data.update(overrides)

    try:
        return ScanOptions.model_validate(data)
    except ValidationError as e:
        problems = []
        for error in e.errors():
            location = " -> ".join(str(x) for x in error["loc"])
            problems.append(f"{location}: {error['msg']}")
        raise InvalidOptionsError(
            "Invalid scan options:\n" + "\n".join(problems),
            {"errors": len(problems)},
        )


@dataclass(frozen=True, eq=False)
class QuadCandidate:
    """A scored document outline in working-resolution coordinates."""

    quad: np.ndarray
    bbox: Tuple[int, int, int, int]
    score: float
    confidence: float
    area_ratio: float
    method: str
    details: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class DetectionOutcome:
    """Result of a detection attempt, expressed in original image coordinates."""

    crop_bounds: Optional[CropBounds]
    confidence: float
    method: Optional[str]
    area_ratio: float = 0.0
    scale: float = 1.0

    @property
    def found(self) -> bool:
        return self.crop_bounds is not None


@dataclass(frozen=True, eq=False)
class ScanResult:
    """Output of a full scan."""

    processed_image: bytes
    original_image: Any
    filter: ScanFilter
    crop_bounds: Optional[CropBounds]
    auto_crop_applied: bool
    confidence: float
    mime_type: str = "image/jpeg"
    output_size: Tuple[int, int] = (0, 0)
    scale: float = 1.0
    detection_method: Optional[str] = None
    enhancement_applied: bool = False

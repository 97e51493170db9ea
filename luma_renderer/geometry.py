"""Geometry normalization: orientation, quarter turns, straighten and crop.

All helpers operate on ``(height, width, channels)`` float32 arrays with a
top-left origin. Normalized crop rectangles arrive from callers with a
top-left origin as well, but are resolved through a bottom-left extent so the
same clamping rules apply as for renderers with an upward y axis.
"""
from __future__ import annotations

import dataclasses
import logging
import math
from typing import Any, Mapping, Optional, Tuple

import numpy as np
from scipy import ndimage

from .errors import InputError

LOGGER = logging.getLogger("luma_renderer")

STRAIGHTEN_EPSILON = 1e-4
MIN_RECT_EXTENT = 0.01
MIN_ASPECT = 0.001

# Quarter turns expressed as the EXIF orientation code that produces them.
_TURN_TO_EXIF = {0: 1, 1: 6, 2: 3, 3: 8}


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def normalize_rotation_turns(turns: int) -> int:
    """Reduce *turns* into ``{0, 1, 2, 3}``; negative values turn counter-clockwise."""

    return ((int(turns) % 4) + 4) % 4


@dataclasses.dataclass(frozen=True)
class NormalizedRect:
    """Crop rectangle in fractional, top-left-origin image coordinates."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_mapping(cls, raw: Any) -> "NormalizedRect":
        if not isinstance(raw, Mapping):
            raise InputError(f"rect must be a mapping with x/y/w/h, got {type(raw).__name__}")
        values = []
        for key in ("x", "y", "w", "h"):
            if key not in raw:
                raise InputError(f"rect is missing '{key}'")
            values.append(_finite_float(raw[key], f"rect.{key}"))
        return cls(*values)


def normalize_rect(rect: NormalizedRect) -> NormalizedRect:
    """Clamp *rect* fully inside the unit square.

    The origin is clamped to ``[0, 1]``, the size is limited so the far edges
    stay inside the square and floored at :data:`MIN_RECT_EXTENT`. When the
    floor would push a far edge past 1 the origin is pulled back instead.
    """

    nx = _clamp(rect.x, 0.0, 1.0)
    ny = _clamp(rect.y, 0.0, 1.0)
    nw = max(MIN_RECT_EXTENT, min(1.0 - nx, rect.width))
    nh = max(MIN_RECT_EXTENT, min(1.0 - ny, rect.height))
    nx = min(nx, 1.0 - nw)
    ny = min(ny, 1.0 - nh)
    return NormalizedRect(nx, ny, nw, nh)


@dataclasses.dataclass(frozen=True)
class Extent:
    """Fractional pixel rectangle with a bottom-left origin."""

    x: float
    y: float
    width: float
    height: float

    def integral(self) -> Tuple[int, int, int, int]:
        """Return the smallest integral ``(x0, y0, x1, y1)`` box containing the extent."""

        # Absorb float noise such as 0.3 * 1000 == 300.00000000000006.
        x0 = math.floor(self.x + 1e-6)
        y0 = math.floor(self.y + 1e-6)
        x1 = math.ceil(self.x + self.width - 1e-6)
        y1 = math.ceil(self.y + self.height - 1e-6)
        return x0, y0, x1, y1

    def pixel_slices(self, image_height: int, image_width: int) -> Tuple[slice, slice]:
        """Return row/column slices selecting the extent from a top-left-origin array."""

        x0, y0, x1, y1 = self.integral()
        x0 = max(0, x0)
        x1 = min(image_width, x1)
        top = max(0, image_height - y1)
        bottom = min(image_height, image_height - y0)
        return slice(top, bottom), slice(x0, x1)


@dataclasses.dataclass(frozen=True)
class GeometrySpec:
    """Optional geometry transform for a render request.

    ``rotation_turns`` is always stored reduced mod 4 and ``rect`` is always
    stored normalized, whatever the caller passed in.
    """

    aspect: Optional[float] = None
    rect: Optional[NormalizedRect] = None
    rotation_turns: int = 0
    straighten_degrees: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "rotation_turns", normalize_rotation_turns(self.rotation_turns))
        if self.rect is not None:
            object.__setattr__(self, "rect", normalize_rect(self.rect))
        if self.aspect is not None and not self.aspect > MIN_ASPECT:
            object.__setattr__(self, "aspect", None)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> Optional["GeometrySpec"]:
        """Parse the wire geometry object; ``None`` passes through."""

        if raw is None:
            return None
        if not isinstance(raw, Mapping):
            raise InputError(f"geometry must be a mapping, got {type(raw).__name__}")

        aspect = raw.get("aspect")
        rect = raw.get("rect")
        turns = raw.get("rotationTurns", 0)
        straighten_value = raw.get("straighten", 0.0)

        if isinstance(turns, bool) or not isinstance(turns, int):
            raise InputError(f"rotationTurns must be an integer, got {turns!r}")

        return cls(
            aspect=None if aspect is None else _finite_float(aspect, "aspect"),
            rect=None if rect is None else NormalizedRect.from_mapping(rect),
            rotation_turns=turns,
            straighten_degrees=_finite_float(straighten_value, "straighten"),
        )

    @property
    def is_identity(self) -> bool:
        return (
            self.aspect is None
            and self.rect is None
            and self.rotation_turns == 0
            and abs(math.radians(self.straighten_degrees)) <= STRAIGHTEN_EPSILON
        )


def _finite_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InputError(f"{name} must be a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise InputError(f"{name} must be finite, got {value!r}")
    return number


def apply_exif_orientation(arr: np.ndarray, orientation: int) -> np.ndarray:
    """Present *arr* upright according to an EXIF orientation code (1-8)."""

    if orientation == 2:
        return arr[:, ::-1]
    if orientation == 3:
        return arr[::-1, ::-1]
    if orientation == 4:
        return arr[::-1, :]
    if orientation == 5:
        return np.swapaxes(arr, 0, 1)
    if orientation == 6:
        return np.rot90(arr, k=-1)
    if orientation == 7:
        return np.swapaxes(arr[::-1, ::-1], 0, 1)
    if orientation == 8:
        return np.rot90(arr, k=1)
    return arr


def rotate_quarter_turns(arr: np.ndarray, turns: int) -> np.ndarray:
    """Rotate *arr* clockwise by ``turns`` quarter turns."""

    return apply_exif_orientation(arr, _TURN_TO_EXIF[normalize_rotation_turns(turns)])


def straighten_scale(width: float, height: float, radians: float) -> float:
    """Zoom factor that keeps a rotated frame covering the original extent."""

    cos_a = abs(math.cos(radians))
    sin_a = abs(math.sin(radians))
    return max(
        (width * cos_a + height * sin_a) / width,
        (width * sin_a + height * cos_a) / height,
    )


def straighten(arr: np.ndarray, degrees: float) -> np.ndarray:
    """Rotate *arr* counter-clockwise by *degrees* without changing its extent.

    The rotated frame is scaled up just enough to leave no empty corners.
    Angles below :data:`STRAIGHTEN_EPSILON` radians return *arr* unchanged.
    """

    radians = math.radians(degrees)
    if abs(radians) <= STRAIGHTEN_EPSILON:
        return arr

    height, width = arr.shape[:2]
    scale = straighten_scale(width, height, radians)
    cos_a = math.cos(radians) / scale
    sin_a = math.sin(radians) / scale
    center = np.array([(height - 1) / 2.0, (width - 1) / 2.0])
    matrix = np.array([[cos_a, sin_a], [-sin_a, cos_a]])
    offset = center - matrix @ center
    LOGGER.debug("Straighten %.3f deg (scale %.4f)", degrees, scale)

    channels = [
        ndimage.affine_transform(
            arr[:, :, index], matrix, offset=offset, order=1, mode="nearest"
        )
        for index in range(arr.shape[2])
    ]
    return np.stack(channels, axis=-1).astype(np.float32, copy=False)


def center_crop_aspect(arr: np.ndarray, aspect: float) -> np.ndarray:
    """Crop *arr* to ``width / height == aspect`` around its centre."""

    height, width = arr.shape[:2]
    if width <= 1 or height <= 1:
        return arr

    if width / height > aspect:
        target_h = float(height)
        target_w = target_h * aspect
    else:
        target_w = float(width)
        target_h = target_w / aspect

    extent = Extent(
        x=width / 2.0 - target_w / 2.0,
        y=height / 2.0 - target_h / 2.0,
        width=target_w,
        height=target_h,
    )
    rows, cols = extent.pixel_slices(height, width)
    return arr[rows, cols]


def crop_normalized_rect(arr: np.ndarray, rect: NormalizedRect) -> np.ndarray:
    """Crop *arr* to the caller's top-left-origin fractional *rect*."""

    height, width = arr.shape[:2]
    if width <= 1 or height <= 1:
        return arr

    rect = normalize_rect(rect)
    flipped_y = _clamp(1.0 - rect.y - rect.height, 0.0, 1.0 - rect.height)
    extent = Extent(
        x=rect.x * width,
        y=flipped_y * height,
        width=rect.width * width,
        height=rect.height * height,
    )
    rows, cols = extent.pixel_slices(height, width)
    return arr[rows, cols]


def apply_geometry(
    arr: np.ndarray, spec: Optional[GeometrySpec], *, orientation: int = 1
) -> np.ndarray:
    """Normalize *arr*: orientation, quarter turns, straighten, then crop.

    An explicit ``rect`` takes precedence over an ``aspect``-only request.
    """

    out = apply_exif_orientation(arr, orientation)
    if spec is None:
        return np.ascontiguousarray(out)

    if spec.rotation_turns:
        out = rotate_quarter_turns(out, spec.rotation_turns)
    out = straighten(out, spec.straighten_degrees)

    if spec.rect is not None:
        out = crop_normalized_rect(out, spec.rect)
    elif spec.aspect is not None:
        out = center_crop_aspect(out, spec.aspect)

    LOGGER.debug("Geometry normalized to %sx%s", out.shape[1], out.shape[0])
    return np.ascontiguousarray(out)


__all__ = [
    "Extent",
    "GeometrySpec",
    "MIN_RECT_EXTENT",
    "NormalizedRect",
    "STRAIGHTEN_EPSILON",
    "apply_exif_orientation",
    "apply_geometry",
    "center_crop_aspect",
    "crop_normalized_rect",
    "normalize_rect",
    "normalize_rotation_turns",
    "rotate_quarter_turns",
    "straighten",
    "straighten_scale",
]

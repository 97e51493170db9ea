from __future__ import annotations

import dataclasses
import numbers
from typing import Any, Optional

import numpy as np

from .adjustments import AdjustmentParameters
from .errors import InputError, RenderError, error_code_for
from .geometry import GeometrySpec
from .io_utils import clamp_quality


def require_max_side(value: Any) -> int:
    """Return *value* as a resampling bound, or raise :class:`InputError`."""

    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 1:
        raise InputError(f"max_side must be a positive integer, got {value!r}")
    return int(value)


@dataclasses.dataclass(frozen=True)
class SourceImage:
    """Decoded linear-light pixels plus the orientation they were stored with."""

    pixels: np.ndarray
    orientation: int = 1

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 3:
            raise InputError(f"Source pixels must have shape (H, W, 3), got {self.pixels.shape}")
        if not 1 <= int(self.orientation) <= 8:
            object.__setattr__(self, "orientation", 1)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclasses.dataclass(frozen=True)
class RenderRequest:
    """Immutable render request; ``quality`` is stored clamped to ``[0, 1]``."""

    image: SourceImage
    parameters: AdjustmentParameters = dataclasses.field(default_factory=AdjustmentParameters)
    geometry: Optional[GeometrySpec] = None
    max_side: Optional[int] = None
    quality: float = 1.0
    request_id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_side is not None:
            object.__setattr__(self, "max_side", require_max_side(self.max_side))
        object.__setattr__(self, "quality", clamp_quality(self.quality))


@dataclasses.dataclass(frozen=True)
class RenderResult:
    """Encoded bytes or a tagged error, echoing the caller's ``request_id``."""

    data: Optional[bytes] = None
    error_code: Optional[str] = None
    message: str = ""
    request_id: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error_code is None

    @classmethod
    def success(cls, data: bytes, request_id: Optional[int] = None) -> "RenderResult":
        return cls(data=data, request_id=request_id)

    @classmethod
    def failure(cls, exc: RenderError, request_id: Optional[int] = None) -> "RenderResult":
        return cls(error_code=error_code_for(exc), message=str(exc), request_id=request_id)

    @classmethod
    def cancelled(cls, request_id: Optional[int] = None) -> "RenderResult":
        return cls(error_code="cancelled", message="Request cancelled before rendering", request_id=request_id)

    def unwrap(self) -> bytes:
        if self.data is None:
            raise RenderError(f"{self.error_code}: {self.message}")
        return self.data


__all__ = ["RenderRequest", "RenderResult", "SourceImage", "require_max_side"]

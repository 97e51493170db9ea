"""Five-point tone curve derived from contrast, blacks and whites.

The curve is sampled at fixed x positions ``0, 0.25, 0.5, 0.75, 1`` and
interpolated with a monotone piecewise cubic Hermite spline (PCHIP), which
never overshoots between samples. Together with non-decreasing samples this
keeps the curve free of tone inversions.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Tuple

import numpy as np
from scipy.interpolate import PchipInterpolator

LOGGER = logging.getLogger("luma_renderer")

CURVE_X: Tuple[float, ...] = (0.0, 0.25, 0.50, 0.75, 1.0)
DEFAULT_LUT_SIZE = 1024


def _clamp(value: float, minimum: float = -1.0, maximum: float = 1.0) -> float:
    return max(minimum, min(maximum, value))


def _clamp01(value: float) -> float:
    return _clamp(value, 0.0, 1.0)


@dataclasses.dataclass(frozen=True)
class ToneCurve:
    """The y values of the curve at :data:`CURVE_X`."""

    points: Tuple[float, float, float, float, float]

    @property
    def is_identity(self) -> bool:
        return all(abs(y - x) <= 1e-9 for x, y in zip(CURVE_X, self.points))

    def is_monotonic(self) -> bool:
        return all(a <= b for a, b in zip(self.points, self.points[1:]))


def synthesize_tone_curve(contrast: float, blacks: float, whites: float) -> ToneCurve:
    """Build the curve for the given sliders, each clamped to ``[-1, 1]``.

    Positive ``contrast`` bends shadows down and highlights up around a
    slightly lifted midpoint. ``blacks`` lifts or crushes the low end and
    ``whites`` lifts or pulls the high end.
    """

    c = _clamp(contrast)
    b = _clamp(blacks)
    w = _clamp(whites)

    black_lift = max(0.0, b) * 0.10
    black_crush = max(0.0, -b) * 0.06
    white_lift = max(0.0, w) * 0.08
    white_pull = max(0.0, -w) * 0.12

    shadow_bend = -c * 0.10
    highlight_bend = c * 0.10
    mid_lift = c * 0.03

    y0 = max(0.0, black_lift - black_crush)
    y1 = _clamp01(0.25 + shadow_bend + black_lift * 0.10 - black_crush * 0.12)
    y2 = _clamp01(0.50 + mid_lift)
    y3 = _clamp01(0.75 + highlight_bend + white_lift * 0.12 - white_pull * 0.18)
    y4 = _clamp01(1.00 - white_pull * 0.35 + white_lift * 0.20)

    # The coefficients already keep the samples ordered over the clamped
    # domain; the running maximum makes that a hard guarantee.
    ordered = np.maximum.accumulate(np.array([y0, y1, y2, y3, y4], dtype=np.float64))
    return ToneCurve(tuple(float(y) for y in ordered))  # type: ignore[arg-type]


def tone_curve_lut(curve: ToneCurve, size: int = DEFAULT_LUT_SIZE) -> np.ndarray:
    """Return a read-only lookup table sampling *curve* over ``[0, 1]``."""

    if size < 2:
        raise ValueError(f"LUT size must be at least 2, got {size}")
    interpolator = PchipInterpolator(np.array(CURVE_X), np.array(curve.points))
    xs = np.linspace(0.0, 1.0, int(size))
    lut = np.clip(interpolator(xs), 0.0, 1.0).astype(np.float32)
    lut.setflags(write=False)
    return lut


def apply_tone_curve(arr: np.ndarray, curve: ToneCurve, lut: np.ndarray | None = None) -> np.ndarray:
    """Map every channel of *arr* through *curve*; inputs are clipped to ``[0, 1]``."""

    if lut is None:
        lut = tone_curve_lut(curve)
    xs = np.linspace(0.0, 1.0, lut.size, dtype=np.float32)
    LOGGER.debug("Tone curve points=%s", curve.points)
    return np.interp(np.clip(arr, 0.0, 1.0), xs, lut).astype(np.float32)


__all__ = [
    "CURVE_X",
    "DEFAULT_LUT_SIZE",
    "ToneCurve",
    "apply_tone_curve",
    "synthesize_tone_curve",
    "tone_curve_lut",
]

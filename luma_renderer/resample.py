"""Uniform downscaling that bounds the longest side of the preview tier."""
from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from .adjustments import gaussian_blur
from .geometry import Extent

LOGGER = logging.getLogger("luma_renderer")


def target_extent(width: int, height: int, max_side: Optional[int]) -> Tuple[int, int]:
    """Return the integral ``(width, height)`` after bounding the longest side.

    Both axes are scaled by the same ``max_side / max(width, height)`` factor;
    a missing bound or one at least as large as the longest side keeps the
    original extent.
    """

    long_edge = max(width, height)
    if max_side is None or long_edge <= 0 or long_edge <= max_side:
        return width, height
    scale = max_side / float(long_edge)
    x0, y0, x1, y1 = Extent(0.0, 0.0, width * scale, height * scale).integral()
    return max(1, x1 - x0), max(1, y1 - y0)


def resize_bilinear(arr: np.ndarray, new_width: int, new_height: int) -> np.ndarray:
    height, width = arr.shape[:2]
    if width == new_width and height == new_height:
        return arr
    x = np.linspace(0, width - 1, new_width, dtype=np.float32)
    y = np.linspace(0, height - 1, new_height, dtype=np.float32)
    x0 = np.floor(x).astype(int)
    x1 = np.clip(x0 + 1, 0, width - 1)
    y0 = np.floor(y).astype(int)
    y1 = np.clip(y0 + 1, 0, height - 1)
    x_weight = (x - x0).astype(np.float32).reshape(1, -1, 1)
    y_weight = (y - y0).astype(np.float32).reshape(-1, 1, 1)

    Ia = arr[np.ix_(y0, x0)]
    Ib = arr[np.ix_(y0, x1)]
    Ic = arr[np.ix_(y1, x0)]
    Id = arr[np.ix_(y1, x1)]

    top = Ia * (1.0 - x_weight) + Ib * x_weight
    bottom = Ic * (1.0 - x_weight) + Id * x_weight
    return (top * (1.0 - y_weight) + bottom * y_weight).astype(np.float32)


def downscale_to_max_side(arr: np.ndarray, max_side: Optional[int]) -> np.ndarray:
    """Shrink *arr* so its longest side is at most *max_side*; never upscales.

    Large reductions are pre-filtered with a Gaussian sized to the scale
    factor so fine detail does not alias into the preview.
    """

    height, width = arr.shape[:2]
    new_width, new_height = target_extent(width, height, max_side)
    if (new_width, new_height) == (width, height):
        return arr

    scale = new_width / float(width) if width >= height else new_height / float(height)
    sigma = (1.0 / scale - 1.0) / 2.0
    source = gaussian_blur(arr, sigma) if sigma > 0.5 else arr
    LOGGER.debug("Resampling %sx%s -> %sx%s", width, height, new_width, new_height)
    return resize_bilinear(source, new_width, new_height)


__all__ = [
    "downscale_to_max_side",
    "resize_bilinear",
    "target_extent",
]

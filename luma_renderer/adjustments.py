"""Adjustment parameters and the fixed-order operator chain.

Every operator takes a linear-light float32 ``(height, width, 3)`` array and
plain numeric strengths, and returns a new array. The tone curve and every
contrast pivot operate on sRGB-encoded values, so their 0.5 is perceptual mid
grey rather than linear 0.5. Operators whose driving value is below
:data:`EPSILON` return their input untouched, so a neutral parameter set is an
exact identity.
"""
from __future__ import annotations

import dataclasses
import logging
import math
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import numpy as np
from scipy.ndimage import gaussian_filter

from .errors import InputError
from .io_utils import linear_to_srgb, srgb_to_linear
from .profiles import DEFAULT_TUNING, RenderTuning
from .tone_curve import ToneCurve, apply_tone_curve, synthesize_tone_curve, tone_curve_lut

LOGGER = logging.getLogger("luma_renderer")

EPSILON = 1e-4
REFERENCE_TEMPERATURE = 6500.0

LutProvider = Callable[[ToneCurve], np.ndarray]


@dataclasses.dataclass(frozen=True)
class AdjustmentParameters:
    """Named slider values; every field defaults to the neutral ``0.0``."""

    exposure: float = 0.0
    contrast: float = 0.0
    saturation: float = 0.0
    vibrance: float = 0.0
    highlights: float = 0.0
    shadows: float = 0.0
    whites: float = 0.0
    blacks: float = 0.0
    color_balance: float = 0.0
    tint: float = 0.0
    noise: float = 0.0
    color_noise: float = 0.0
    clarity: float = 0.0
    texture: float = 0.0
    sharpen: float = 0.0
    dehaze: float = 0.0
    vignette: float = 0.0
    grain: float = 0.0

    def __post_init__(self) -> None:
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InputError(f"{field.name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise InputError(f"{field.name} must be finite, got {value!r}")
            object.__setattr__(self, field.name, float(value))

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]]) -> "AdjustmentParameters":
        """Build parameters from a string-keyed mapping; absent keys stay neutral."""

        if values is None:
            return cls()
        if not isinstance(values, Mapping):
            raise InputError(f"parameters must be a mapping, got {type(values).__name__}")
        unknown = sorted(str(key) for key in values if key not in PARAMETER_NAMES)
        if unknown:
            raise InputError(f"Unknown adjustment parameter(s): {', '.join(unknown)}")
        return cls(**dict(values))

    def to_mapping(self) -> Dict[str, float]:
        return dataclasses.asdict(self)

    def is_neutral(self) -> bool:
        return all(abs(value) < EPSILON for value in self.to_mapping().values())


PARAMETER_NAMES: Tuple[str, ...] = tuple(field.name for field in dataclasses.fields(AdjustmentParameters))


def clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def luminance(arr: np.ndarray) -> np.ndarray:
    """Rec. 709 luminance of an RGB array."""
    return arr[:, :, 0] * 0.2126 + arr[:, :, 1] * 0.7152 + arr[:, :, 2] * 0.0722


def gaussian_blur(arr: np.ndarray, radius: float) -> np.ndarray:
    """Blur the spatial axes of *arr* with a Gaussian of standard deviation *radius*."""

    sigma = (radius, radius) if arr.ndim == 2 else (radius, radius, 0.0)
    return gaussian_filter(arr, sigma=sigma, mode="reflect").astype(np.float32, copy=False)


def kelvin_to_rgb(temperature: float) -> np.ndarray:
    """Approximate RGB multipliers of a black body at *temperature* Kelvin."""

    temp = temperature / 100.0
    if temp <= 0:
        temp = 0.1

    if temp <= 66:
        red = 1.0
        green = np.clip(0.39008157876901960784 * math.log(temp) - 0.63184144378862745098, 0, 1)
        blue = 0 if temp <= 19 else np.clip(0.54320678911019607843 * math.log(temp - 10) - 1.19625408914, 0, 1)
    else:
        red = np.clip(1.29293618606274509804 * (temp - 60) ** -0.1332047592, 0, 1)
        green = np.clip(1.12989086089529411765 * (temp - 60) ** -0.0755148492, 0, 1)
        blue = 1.0
    return np.array([red, green, blue], dtype=np.float32)


def rgb_to_hsv(arr: np.ndarray) -> np.ndarray:
    """Convert RGB to HSV with hue, saturation and value in ``[0, 1]``."""

    r, g, b = arr[..., 0], arr[..., 1], arr[..., 2]
    maxc = np.max(arr, axis=-1)
    minc = np.min(arr, axis=-1)
    diff = maxc - minc

    hue = np.zeros_like(maxc)
    mask = diff != 0
    rc = np.zeros_like(maxc)
    gc = np.zeros_like(maxc)
    bc = np.zeros_like(maxc)

    # Divide only where diff is non-zero to keep grey pixels warning free.
    np.copyto(rc, maxc)
    rc -= r
    np.divide(rc, diff, out=rc, where=mask)
    np.copyto(gc, maxc)
    gc -= g
    np.divide(gc, diff, out=gc, where=mask)
    np.copyto(bc, maxc)
    bc -= b
    np.divide(bc, diff, out=bc, where=mask)

    hue[maxc == r] = (bc - gc)[maxc == r]
    hue[maxc == g] = 2.0 + (rc - bc)[maxc == g]
    hue[maxc == b] = 4.0 + (gc - rc)[maxc == b]
    hue = (hue / 6.0) % 1.0

    saturation = np.zeros_like(maxc)
    non_zero = maxc != 0
    saturation[non_zero] = diff[non_zero] / maxc[non_zero]

    return np.stack([hue, saturation, maxc], axis=-1)


def hsv_to_rgb(arr: np.ndarray) -> np.ndarray:
    """Convert HSV back to RGB."""

    h, s, v = arr[..., 0], arr[..., 1], arr[..., 2]
    i = np.floor(h * 6.0).astype(int)
    f = h * 6.0 - i
    p = v * (1.0 - s)
    q = v * (1.0 - f * s)
    t = v * (1.0 - (1.0 - f) * s)

    i_mod = i % 6
    rgb = np.zeros(h.shape + (3,), dtype=np.float32)
    conditions = [
        (i_mod == 0, np.stack([v, t, p], axis=-1)),
        (i_mod == 1, np.stack([q, v, p], axis=-1)),
        (i_mod == 2, np.stack([p, v, t], axis=-1)),
        (i_mod == 3, np.stack([p, q, v], axis=-1)),
        (i_mod == 4, np.stack([t, p, v], axis=-1)),
        (i_mod == 5, np.stack([v, p, q], axis=-1)),
    ]
    for condition, value in conditions:
        rgb[condition] = value[condition]
    return rgb


_RGB_TO_YUV = np.array(
    [
        [0.2126, 0.7152, 0.0722],
        [-0.1146, -0.3854, 0.5000],
        [0.5000, -0.4542, -0.0458],
    ],
    dtype=np.float32,
)
_YUV_TO_RGB = np.array(
    [
        [1.0, 0.0, 1.5748],
        [1.0, -0.1873, -0.4681],
        [1.0, 1.8556, 0.0],
    ],
    dtype=np.float32,
)


def rgb_to_yuv(arr: np.ndarray) -> np.ndarray:
    return arr @ _RGB_TO_YUV.T


def yuv_to_rgb(arr: np.ndarray) -> np.ndarray:
    return arr @ _YUV_TO_RGB.T


# --------------------------
# Operators, in chain order
# --------------------------


def apply_exposure(arr: np.ndarray, stops: float) -> np.ndarray:
    """Multiply linear light by ``2 ** stops``."""

    if abs(stops) < EPSILON:
        return arr
    factor = float(2.0 ** stops)
    LOGGER.debug("Exposure %s stops (factor %.3f)", stops, factor)
    return arr * np.float32(factor)


def highlight_shadow_amounts(highlights: float, shadows: float) -> Tuple[float, float]:
    """Map the sliders to ``(shadow_amount, highlight_amount)``; 0.5 is neutral for both."""

    return clamp01(0.5 + shadows * 0.5), clamp01(0.5 - highlights * 0.5)


def apply_highlight_shadow(
    arr: np.ndarray, shadow_amount: float, highlight_amount: float
) -> np.ndarray:
    """Local tone compression driven by a blurred luminance mask.

    ``shadow_amount`` above 0.5 lifts dark regions, below 0.5 deepens them.
    ``highlight_amount`` below 0.5 pulls bright regions down, above 0.5
    brightens them.
    """

    shadow_strength = (shadow_amount - 0.5) * 2.0
    highlight_strength = (0.5 - highlight_amount) * 2.0
    if abs(shadow_strength) < EPSILON and abs(highlight_strength) < EPSILON:
        return arr

    height, width = arr.shape[:2]
    lum = luminance(arr)
    lum_clipped = np.clip(lum, 0.0, 1.0)
    local = np.clip(gaussian_blur(lum, max(1.0, 0.01 * max(height, width))), 0.0, 1.0)
    adjusted = lum.copy()

    if abs(shadow_strength) >= EPSILON:
        if shadow_strength > 0:
            gamma = 1.0 / (1.0 + shadow_strength * 1.5)
        else:
            gamma = 1.0 - shadow_strength * 1.5
        adjusted += (np.power(lum_clipped, gamma) - lum_clipped) * (1.0 - local) ** 2

    if abs(highlight_strength) >= EPSILON:
        if highlight_strength > 0:
            gamma = 1.0 + highlight_strength * 1.5
        else:
            gamma = 1.0 / (1.0 - highlight_strength * 1.5)
        adjusted += (np.power(lum_clipped, gamma) - lum_clipped) * local ** 2

    LOGGER.debug(
        "Highlight/shadow shadow_amount=%.3f highlight_amount=%.3f", shadow_amount, highlight_amount
    )
    return arr + (adjusted - lum)[..., None]


def apply_temperature_tint(arr: np.ndarray, temperature: float, tint: float) -> np.ndarray:
    """Shift the white point from the 6500K reference to ``(temperature, tint)``.

    A target warmer than the reference warms the image. ``tint`` is in the
    green/magenta units of the target neutral; positive values skew magenta.
    """

    result = arr
    if abs(temperature - REFERENCE_TEMPERATURE) >= EPSILON:
        scale = kelvin_to_rgb(REFERENCE_TEMPERATURE) / kelvin_to_rgb(temperature)
        scale = scale / float(scale @ _RGB_TO_YUV[0])
        LOGGER.debug("Temperature %sK scale=%s", temperature, scale)
        result = result * scale.reshape((1, 1, 3))
    if abs(tint) >= EPSILON:
        tint_scale = np.array(
            [1.0 + tint * 0.00075, 1.0 - tint * 0.0015, 1.0 + tint * 0.00075], dtype=np.float32
        )
        LOGGER.debug("Tint %s scale=%s", tint, tint_scale)
        result = result * tint_scale.reshape((1, 1, 3))
    return result


def apply_color_controls(
    arr: np.ndarray, *, contrast: float = 1.0, saturation: float = 1.0, brightness: float = 0.0
) -> np.ndarray:
    """Saturation about luminance, brightness offset, then contrast about sRGB mid grey."""

    if abs(contrast - 1.0) < EPSILON and abs(saturation - 1.0) < EPSILON and abs(brightness) < EPSILON:
        return arr
    result = arr
    if abs(saturation - 1.0) >= EPSILON:
        grey = luminance(result)[..., None]
        result = grey + (result - grey) * np.float32(saturation)
    if abs(brightness) >= EPSILON:
        result = result + np.float32(brightness)
    if abs(contrast - 1.0) >= EPSILON:
        encoded = linear_to_srgb(result)
        result = srgb_to_linear((encoded - 0.5) * np.float32(contrast) + 0.5)
    LOGGER.debug("Color controls contrast=%.3f saturation=%.3f brightness=%.3f", contrast, saturation, brightness)
    return result.astype(np.float32, copy=False)


def apply_vibrance(arr: np.ndarray, amount: float) -> np.ndarray:
    """Saturation boost that favours muted pixels over already vivid ones."""

    if abs(amount) < EPSILON:
        return arr
    hsv = rgb_to_hsv(np.clip(arr, 0.0, None))
    saturation = hsv[..., 1]
    hsv[..., 1] = np.clip(
        saturation + amount * (1.0 - saturation) * np.sqrt(np.clip(saturation, 0.0, 1.0)),
        0.0,
        1.0,
    )
    LOGGER.debug("Vibrance amount=%s", amount)
    return hsv_to_rgb(hsv)


def noise_reduction_settings(noise: float, color_noise: float) -> Tuple[float, float]:
    """Return ``(noise_level, sharpness)`` for the luminance denoiser."""

    noise_level = 0.02 + min(1.0, noise + color_noise * 0.6) * 0.08
    sharpness = 0.4 + (1.0 - min(1.0, noise)) * 0.4
    return noise_level, sharpness


def apply_noise_reduction(arr: np.ndarray, noise_level: float, sharpness: float) -> np.ndarray:
    """Soft-threshold fine luminance detail below *noise_level*.

    Surviving detail is re-amplified by up to 20 percent as *sharpness* rises
    from 0.4 to 0.8, restoring edges the shrinkage softened.
    """

    if noise_level < EPSILON:
        return arr
    lum = luminance(arr)
    base = gaussian_blur(lum, 1.0)
    detail = lum - base
    shrunk = np.sign(detail) * np.maximum(np.abs(detail) - noise_level, 0.0)
    edge_gain = 1.0 + max(0.0, sharpness - 0.4) * 0.5
    denoised = base + shrunk * edge_gain
    LOGGER.debug("Noise reduction level=%.3f sharpness=%.3f", noise_level, sharpness)
    return arr + (denoised - lum)[..., None]


def apply_chroma_denoise(arr: np.ndarray, amount: float) -> np.ndarray:
    """Reduce colour noise by blending chrominance with a blurred copy."""

    if amount < EPSILON:
        return arr
    amount = min(1.0, amount)
    yuv = rgb_to_yuv(arr)
    radius = max(1, int(round(1 + amount * 4)))
    for channel in (1, 2):
        channel_data = yuv[..., channel]
        blurred = gaussian_blur(channel_data, radius)
        yuv[..., channel] = channel_data * (1.0 - amount) + blurred * amount
    LOGGER.debug("Chroma denoise amount=%s radius=%s", amount, radius)
    return yuv_to_rgb(yuv)


def apply_sharpen_luminance(arr: np.ndarray, amount: float, radius: float) -> np.ndarray:
    """Unsharp-mask the luminance only, leaving chroma untouched."""

    if amount < EPSILON:
        return arr
    lum = luminance(arr)
    detail = lum - gaussian_blur(lum, radius)
    LOGGER.debug("Sharpen luminance amount=%.3f radius=%.2f", amount, radius)
    return arr + (detail * np.float32(amount))[..., None]


def apply_unsharp_mask(arr: np.ndarray, intensity: float, radius: float) -> np.ndarray:
    """Larger-radius local contrast boost used for clarity and texture."""

    if intensity < EPSILON:
        return arr
    high_pass = arr - gaussian_blur(arr, radius)
    LOGGER.debug("Unsharp mask intensity=%.3f radius=%.2f", intensity, radius)
    return arr + high_pass * np.float32(intensity)


def apply_vignette(arr: np.ndarray, intensity: float, radius: float) -> np.ndarray:
    """Radial darkening towards the corners; non-positive *intensity* is a no-op."""

    if intensity < EPSILON:
        return arr
    height, width = arr.shape[:2]
    yy, xx = np.mgrid[0:height, 0:width].astype(np.float32)
    cx, cy = (width - 1) / 2.0, (height - 1) / 2.0
    half_diagonal = max(math.hypot(width / 2.0, height / 2.0), 1e-6)
    distance = np.sqrt((xx - cx) ** 2 + (yy - cy) ** 2) / half_diagonal
    falloff = np.clip(distance * (2.0 / radius), 0.0, 1.0)
    weight = falloff * falloff * (3.0 - 2.0 * falloff)
    mask = np.clip(1.0 - 0.5 * intensity * weight, 0.0, None)
    LOGGER.debug("Vignette intensity=%.3f radius=%.2f", intensity, radius)
    return arr * mask[..., None].astype(np.float32)


def apply_grain(arr: np.ndarray, alpha: float, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Composite a black, randomly translucent field over *arr* (source-over).

    The overlay carries zero colour and a per-pixel alpha of
    ``alpha * uniform(0, 1)``, so the composite is ``dst * (1 - a)``.
    """

    if alpha < EPSILON:
        return arr
    if rng is None:
        rng = np.random.default_rng()
    height, width = arr.shape[:2]
    overlay_alpha = rng.random((height, width), dtype=np.float32) * np.float32(alpha)
    LOGGER.debug("Grain alpha=%.3f", alpha)
    return arr * (1.0 - overlay_alpha)[..., None]


def apply_adjustments(
    arr: np.ndarray,
    params: AdjustmentParameters,
    *,
    tuning: RenderTuning = DEFAULT_TUNING,
    rng: Optional[np.random.Generator] = None,
    lut_provider: Optional[LutProvider] = None,
) -> np.ndarray:
    """Run the full chain in its fixed order and clip the result to ``[0, 1]``.

    Tone and colour correction come first, noise reduction precedes all
    detail enhancement, and the stylistic overlays (vignette, grain) come
    last. The order is independent of how *params* was specified.
    """

    p = params
    arr = apply_exposure(arr, p.exposure)

    shadow_amount, highlight_amount = highlight_shadow_amounts(p.highlights, p.shadows)
    if abs(p.highlights) >= EPSILON or abs(p.shadows) >= EPSILON:
        arr = apply_highlight_shadow(arr, shadow_amount, highlight_amount)

    if tuning.fold_whites_blacks_into_curve:
        curve = synthesize_tone_curve(p.contrast, p.blacks, p.whites)
        brightness = 0.0
    else:
        curve = synthesize_tone_curve(p.contrast, 0.0, 0.0)
        brightness = (p.whites - p.blacks) * tuning.brightness_gain
    if not curve.is_identity:
        lut = lut_provider(curve) if lut_provider is not None else tone_curve_lut(curve)
        arr = srgb_to_linear(apply_tone_curve(linear_to_srgb(arr), curve, lut))

    if abs(p.color_balance) >= EPSILON or abs(p.tint) >= EPSILON:
        arr = apply_temperature_tint(
            arr, REFERENCE_TEMPERATURE + p.color_balance * 1800.0, p.tint * 120.0
        )

    if abs(p.contrast) >= EPSILON or abs(p.saturation) >= EPSILON or abs(brightness) >= EPSILON:
        arr = apply_color_controls(
            arr,
            contrast=1.0 + p.contrast * tuning.contrast_gain,
            saturation=1.0 + p.saturation * tuning.saturation_gain,
            brightness=brightness,
        )
    arr = np.clip(arr, 0.0, 1.0)

    arr = apply_vibrance(arr, p.vibrance * tuning.vibrance_gain)

    if p.noise >= EPSILON or p.color_noise >= EPSILON:
        noise_level, sharpness = noise_reduction_settings(max(0.0, p.noise), max(0.0, p.color_noise))
        arr = apply_noise_reduction(arr, noise_level, sharpness)
        if p.color_noise >= EPSILON:
            arr = apply_chroma_denoise(arr, p.color_noise * 0.6)
            arr = apply_color_controls(arr, saturation=1.0 - min(0.25, p.color_noise * 0.15))

    arr = apply_sharpen_luminance(arr, max(0.0, p.sharpen) * tuning.sharpen_gain, tuning.sharpen_radius)
    arr = apply_unsharp_mask(
        arr,
        max(0.0, p.texture) * tuning.texture_gain + max(0.0, p.clarity) * tuning.clarity_gain,
        tuning.unsharp_radius,
    )

    if abs(p.dehaze) >= EPSILON:
        arr = apply_color_controls(
            arr,
            contrast=1.0 + p.dehaze * tuning.dehaze_contrast_gain,
            saturation=1.0 + p.dehaze * tuning.dehaze_saturation_gain,
        )

    arr = apply_vignette(arr, max(0.0, p.vignette) * tuning.vignette_gain, tuning.vignette_radius)
    arr = apply_grain(arr, max(0.0, p.grain) * tuning.grain_alpha, rng)
    return np.clip(arr, 0.0, 1.0).astype(np.float32, copy=False)


__all__ = [
    "AdjustmentParameters",
    "EPSILON",
    "PARAMETER_NAMES",
    "apply_adjustments",
    "apply_chroma_denoise",
    "apply_color_controls",
    "apply_exposure",
    "apply_grain",
    "apply_highlight_shadow",
    "apply_noise_reduction",
    "apply_sharpen_luminance",
    "apply_temperature_tint",
    "apply_unsharp_mask",
    "apply_vibrance",
    "apply_vignette",
    "gaussian_blur",
    "highlight_shadow_amounts",
    "hsv_to_rgb",
    "kelvin_to_rgb",
    "luminance",
    "noise_reduction_settings",
    "rgb_to_hsv",
]

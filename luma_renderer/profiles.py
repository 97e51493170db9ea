"""Render tiers and the presentation constants shared by both of them.

Two tiers exist:

- **preview**: latency-sensitive, bounded by ``maxSide`` and encoded at 0.82
- **export**: full resolution, encoded at 0.92, written to the asset store

Both tiers run the identical adjustment chain with the identical
:class:`RenderTuning`, so a preview is the export scaled down.

Example Usage
-------------

    from luma_renderer import RENDER_PROFILES

    profile = RENDER_PROFILES["preview"]
    profile.resolve_quality(None)   # 0.82
    profile.resolve_quality(1.5)    # 1.0
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class RenderTuning:
    """Gain constants translating slider values into operator strengths.

    Attributes:
        contrast_gain: Secondary contrast gain per unit of ``contrast``.
        saturation_gain: Saturation gain per unit of ``saturation``.
        brightness_gain: Brightness offset per unit of ``whites - blacks``
            when those sliders are not folded into the tone curve.
        vibrance_gain: Vibrance amount per unit of ``vibrance``.
        sharpen_gain: Luminance sharpen amount per unit of ``sharpen``.
        texture_gain: Unsharp intensity per unit of ``texture``.
        clarity_gain: Unsharp intensity per unit of ``clarity``.
        unsharp_radius: Gaussian radius in pixels of the detail pass.
        sharpen_radius: Gaussian radius in pixels of the luminance sharpen.
        dehaze_contrast_gain: Contrast gain per unit of ``dehaze``.
        dehaze_saturation_gain: Saturation gain per unit of ``dehaze``.
        vignette_gain: Vignette intensity per unit of ``vignette``.
        vignette_radius: Falloff radius relative to the half diagonal.
        grain_alpha: Grain overlay alpha per unit of ``grain``.
        fold_whites_blacks_into_curve: Encode whites/blacks in the tone curve
            instead of the secondary brightness offset.
    """

    contrast_gain: float = 0.18
    saturation_gain: float = 0.85
    brightness_gain: float = 0.10
    vibrance_gain: float = 0.9
    sharpen_gain: float = 0.9
    texture_gain: float = 0.9
    clarity_gain: float = 1.2
    unsharp_radius: float = 1.8
    sharpen_radius: float = 1.69
    dehaze_contrast_gain: float = 0.15
    dehaze_saturation_gain: float = 0.08
    vignette_gain: float = 1.2
    vignette_radius: float = 2.0
    grain_alpha: float = 0.12
    fold_whites_blacks_into_curve: bool = True


DEFAULT_TUNING = RenderTuning()


@dataclass(frozen=True)
class RenderProfile:
    """Configuration of one render tier.

    Attributes:
        name: Tier identifier.
        default_quality: Quality used when the caller supplies none.
        resample: Whether ``max_side`` downscaling applies to this tier.
        tuning: Operator constants, identical across tiers.
    """

    name: str
    default_quality: float
    resample: bool
    tuning: RenderTuning = field(default_factory=RenderTuning)

    def resolve_quality(self, requested: Optional[float]) -> float:
        """Return *requested* clamped to ``[0, 1]``, or the tier default."""

        value = self.default_quality if requested is None else float(requested)
        return min(1.0, max(0.0, value))

    def resolve_max_side(self, requested: Optional[int]) -> Optional[int]:
        """Return the bound for the resampler, or ``None`` when it is disabled."""

        if not self.resample:
            return None
        return requested


PREVIEW_PROFILE_NAME = "preview"
EXPORT_PROFILE_NAME = "export"

RENDER_PROFILES: Dict[str, RenderProfile] = {
    PREVIEW_PROFILE_NAME: RenderProfile(
        name=PREVIEW_PROFILE_NAME,
        default_quality=0.82,
        resample=True,
    ),
    EXPORT_PROFILE_NAME: RenderProfile(
        name=EXPORT_PROFILE_NAME,
        default_quality=0.92,
        resample=False,
    ),
}


__all__ = [
    "DEFAULT_TUNING",
    "EXPORT_PROFILE_NAME",
    "PREVIEW_PROFILE_NAME",
    "RENDER_PROFILES",
    "RenderProfile",
    "RenderTuning",
]

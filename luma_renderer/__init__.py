"""Photo adjustment rendering for interactive previews and library exports.

This package turns a decoded source photo, an optional geometry transform and
a fixed set of named slider values into encoded JPEG bytes. Two tiers share
one operator chain: a fast bounded-size preview tier for interactive
scrubbing, and a full-resolution export tier that publishes to an asset
library.

Module Organization
-------------------

geometry
    Orientation correction, quarter turns, straighten and crop normalization.

tone_curve
    Five-point monotonic curve synthesized from contrast, blacks and whites.

adjustments
    Parameter model and the fixed-order operator chain: exposure through
    grain, all in a linear-light working space.

resample
    Uniform downscaling that bounds the preview's longest side.

io_utils
    Decoding into the working space and explicit-sRGB JPEG encoding.

profiles
    Preview and export render tiers with their shared tuning constants.

renderer
    The :class:`Renderer` object owning a compute context, with the
    ``render_preview`` and ``export_full_res`` entry points.

assets
    Asset store protocol and a directory-backed implementation.

service
    Thread-pool dispatch, cancellation tokens and the method-channel handler.

cli
    ``luma-render preview`` / ``luma-render export`` command-line interface.

Example Usage
-------------

    from luma_renderer import DirectoryAssetStore, Renderer

    renderer = Renderer(DirectoryAssetStore("~/Pictures/library"))
    jpeg = renderer.render_preview(
        "2024/beach.jpg",
        {"exposure": 0.3, "vibrance": 0.4},
        {"rotationTurns": 1, "aspect": 1.5},
        max_side=1024,
        request_id=17,
    )
    renderer.export_full_res("2024/beach.jpg", {"exposure": 0.3, "vibrance": 0.4})
"""
from __future__ import annotations

import logging

from .adjustments import PARAMETER_NAMES, AdjustmentParameters, apply_adjustments
from .assets import AssetStore, DirectoryAssetStore, SourceAsset
from .cli import main, parse_args, run
from .errors import (
    AssetNotFound,
    DecodeError,
    EncodeError,
    InputError,
    PermissionDenied,
    RenderError,
    WriteError,
    error_code_for,
)
from .geometry import GeometrySpec, NormalizedRect, apply_geometry, normalize_rect, normalize_rotation_turns
from .io_utils import OUTPUT_COLOR_SPACE, decode_source, encode_jpeg, rasterize_srgb8
from .profiles import EXPORT_PROFILE_NAME, PREVIEW_PROFILE_NAME, RENDER_PROFILES, RenderProfile, RenderTuning
from .renderer import EXPORT_SAVED, RenderContext, Renderer
from .request import RenderRequest, RenderResult, SourceImage
from .resample import downscale_to_max_side, target_extent
from .service import CancellationToken, MethodChannelHandler, MethodResult, PreviewDispatcher
from .tone_curve import ToneCurve, synthesize_tone_curve

LOGGER = logging.getLogger("luma_renderer")

__all__ = [
    "AdjustmentParameters",
    "AssetNotFound",
    "AssetStore",
    "CancellationToken",
    "DecodeError",
    "DirectoryAssetStore",
    "EXPORT_PROFILE_NAME",
    "EXPORT_SAVED",
    "EncodeError",
    "GeometrySpec",
    "InputError",
    "MethodChannelHandler",
    "MethodResult",
    "NormalizedRect",
    "OUTPUT_COLOR_SPACE",
    "PARAMETER_NAMES",
    "PREVIEW_PROFILE_NAME",
    "PermissionDenied",
    "PreviewDispatcher",
    "RENDER_PROFILES",
    "RenderContext",
    "RenderError",
    "RenderProfile",
    "RenderRequest",
    "RenderResult",
    "RenderTuning",
    "Renderer",
    "SourceAsset",
    "SourceImage",
    "ToneCurve",
    "WriteError",
    "apply_adjustments",
    "apply_geometry",
    "decode_source",
    "downscale_to_max_side",
    "encode_jpeg",
    "error_code_for",
    "main",
    "normalize_rect",
    "normalize_rotation_turns",
    "parse_args",
    "rasterize_srgb8",
    "run",
    "synthesize_tone_curve",
    "target_extent",
]

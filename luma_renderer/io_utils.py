"""Pixel acquisition and final encoding at the colour-space boundary.

Decoding brings any source into linear-light float32 with sRGB primaries.
Encoding goes the other way: sRGB transfer curve, 8 bits per channel, and an
embedded sRGB ICC profile, so the output never depends on an implicit device
colour space.

Functions
---------

decode_source
    Decode encoded source bytes into the linear working space.

rasterize_srgb8
    Quantize a working-space array into an explicit sRGB RGB8 raster.

encode_jpeg
    Compress an RGB8 raster at a clamped quality.
"""
from __future__ import annotations

import io
import logging
from typing import Optional

import numpy as np
from PIL import Image, ImageCms, UnidentifiedImageError

from .errors import DecodeError, EncodeError

LOGGER = logging.getLogger("luma_renderer")

OUTPUT_COLOR_SPACE = "sRGB"
JPEG_UNIFORM_TYPE = "public.jpeg"


def srgb_to_linear(srgb: np.ndarray) -> np.ndarray:
    """Decode sRGB to linear (expects 0..1)."""
    srgb = np.clip(srgb, 0.0, 1.0).astype(np.float32)
    out = np.where(
        srgb <= 0.04045,
        srgb / 12.92,
        ((srgb + 0.055) / 1.055) ** 2.4,
    )
    return out.astype(np.float32)


def linear_to_srgb(lin: np.ndarray) -> np.ndarray:
    """Encode linear to sRGB (clamped to 0..1)."""
    lin = np.clip(lin, 0.0, 1.0).astype(np.float32)
    out = np.where(
        lin <= 0.0031308,
        lin * 12.92,
        1.055 * np.power(lin, 1.0 / 2.4) - 0.055,
    )
    return np.clip(out, 0.0, 1.0).astype(np.float32)


def srgb_profile_bytes() -> bytes:
    """Serialized sRGB ICC profile embedded into every encoded output."""

    return ImageCms.ImageCmsProfile(ImageCms.createProfile(OUTPUT_COLOR_SPACE)).tobytes()


def clamp_quality(quality: float) -> float:
    return min(1.0, max(0.0, float(quality)))


def _coerce_to_srgb(image: Image.Image) -> Image.Image:
    """Convert an image carrying an embedded ICC profile into sRGB.

    Profiles that LittleCMS cannot parse are logged and the pixels are
    treated as sRGB already.
    """

    icc_profile = image.info.get("icc_profile") if isinstance(image.info, dict) else None
    if not icc_profile:
        return image
    try:
        source_profile = ImageCms.ImageCmsProfile(io.BytesIO(icc_profile))
        target_profile = ImageCms.createProfile(OUTPUT_COLOR_SPACE)
        if image.mode not in {"RGB", "CMYK", "L"}:
            image = image.convert("RGB")
        return ImageCms.profileToProfile(image, source_profile, target_profile, outputMode="RGB")
    except (ImageCms.PyCMSError, OSError) as exc:
        LOGGER.warning("Ignoring unusable embedded ICC profile: %s", exc)
        return image


def image_to_float(image: Image.Image) -> np.ndarray:
    """Convert a PIL image to sRGB-encoded RGB float32 in ``[0, 1]``."""

    if image.mode not in {"RGB", "L", "I;16", "I;16L", "I;16B"}:
        image = image.convert("RGB")

    arr = np.array(image)
    if arr.ndim == 2:
        arr = arr[:, :, None]

    if np.issubdtype(arr.dtype, np.integer):
        dtype_info = np.iinfo(arr.dtype)
        scale = float(dtype_info.max - dtype_info.min) or 1.0
        normalised = (arr.astype(np.float32) - dtype_info.min) / scale
    else:
        normalised = arr.astype(np.float32)
    normalised = np.clip(normalised, 0.0, 1.0)

    if normalised.shape[2] == 1:
        normalised = np.repeat(normalised, 3, axis=2)
    return np.ascontiguousarray(normalised[:, :, :3], dtype=np.float32)


def decode_source(data: bytes) -> np.ndarray:
    """Decode encoded image *data* into a linear-light RGB float32 array.

    Raises:
        DecodeError: If the bytes are empty or not a readable image.
    """

    if not data:
        raise DecodeError("No image data returned")
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            srgb = image_to_float(_coerce_to_srgb(image))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"Image decode failed: {exc}") from exc
    LOGGER.debug("Decoded source %sx%s", srgb.shape[1], srgb.shape[0])
    return srgb_to_linear(srgb)


def rasterize_srgb8(arr: np.ndarray) -> np.ndarray:
    """Quantize a linear working-space array into an sRGB ``uint8`` raster.

    Raises:
        EncodeError: If either side of the raster is 1px or smaller.
    """

    if arr.ndim != 3 or arr.shape[2] < 3:
        raise EncodeError(f"Unsupported working array shape {arr.shape}")
    height, width = arr.shape[:2]
    if width <= 1 or height <= 1:
        raise EncodeError(f"Degenerate output extent {width}x{height}")
    encoded = linear_to_srgb(arr[:, :, :3])
    return np.ascontiguousarray(np.round(encoded * 255.0).astype(np.uint8))


def encode_jpeg(raster: np.ndarray, quality: float, icc_profile: Optional[bytes] = None) -> bytes:
    """Compress an RGB8 *raster* to JPEG bytes.

    ``quality`` is clamped to ``[0, 1]`` and mapped onto the encoder's
    1-100 scale. High qualities keep full-resolution chroma.

    Raises:
        EncodeError: If the encoder rejects the raster.
    """

    quality = clamp_quality(quality)
    jpeg_quality = max(1, int(round(quality * 100)))
    image = Image.fromarray(raster)
    buffer = io.BytesIO()
    save_kwargs = {
        "format": "JPEG",
        "quality": jpeg_quality,
        "subsampling": 0 if quality >= 0.9 else 2,
    }
    if icc_profile:
        save_kwargs["icc_profile"] = icc_profile
    try:
        image.save(buffer, **save_kwargs)
    except (OSError, ValueError) as exc:
        raise EncodeError(f"JPEG encode failed: {exc}") from exc
    LOGGER.debug("Encoded %sx%s JPEG at quality %s", raster.shape[1], raster.shape[0], jpeg_quality)
    return buffer.getvalue()


__all__ = [
    "JPEG_UNIFORM_TYPE",
    "OUTPUT_COLOR_SPACE",
    "clamp_quality",
    "decode_source",
    "encode_jpeg",
    "image_to_float",
    "linear_to_srgb",
    "rasterize_srgb8",
    "srgb_profile_bytes",
    "srgb_to_linear",
]

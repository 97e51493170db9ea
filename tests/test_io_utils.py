from __future__ import annotations

import io

import pytest

from .documentation import documents
from .imaging import encode_png, gradient_rgb8

np = pytest.importorskip("numpy")
pytest.importorskip("PIL.ImageCms")
from PIL import Image, ImageCms  # noqa: E402  # pylint: disable=wrong-import-position

from luma_renderer import io_utils  # noqa: E402  # pylint: disable=wrong-import-position
from luma_renderer.errors import DecodeError, EncodeError  # noqa: E402  # pylint: disable=wrong-import-position


def test_srgb_transfer_round_trips():
    ramp = np.linspace(0.0, 1.0, 256, dtype=np.float32)

    back = io_utils.linear_to_srgb(io_utils.srgb_to_linear(ramp))

    assert np.allclose(back, ramp, atol=1e-5)


def test_decode_source_returns_linear_rgb():
    rgb8 = gradient_rgb8(8, 4)

    linear = io_utils.decode_source(encode_png(rgb8))

    assert linear.shape == (4, 8, 3)
    assert linear.dtype == np.float32
    expected = io_utils.srgb_to_linear(rgb8.astype(np.float32) / 255.0)
    assert np.allclose(linear, expected, atol=1e-6)


def test_decode_source_expands_greyscale_and_drops_alpha():
    grey = Image.fromarray(np.full((3, 5), 200, dtype=np.uint8))
    rgba = Image.fromarray(np.full((3, 5, 4), 100, dtype=np.uint8))
    for image in (grey, rgba):
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")

        decoded = io_utils.decode_source(buffer.getvalue())

        assert decoded.shape == (3, 5, 3)


@pytest.mark.parametrize("data", [b"", b"definitely not an image"])
def test_decode_source_rejects_unreadable_bytes(data):
    with pytest.raises(DecodeError):
        io_utils.decode_source(data)


def test_embedded_profile_is_honoured():
    image = Image.fromarray(gradient_rgb8(6, 6))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", icc_profile=io_utils.srgb_profile_bytes())

    decoded = io_utils.decode_source(buffer.getvalue())
    plain = io_utils.decode_source(encode_png(gradient_rgb8(6, 6)))

    assert np.allclose(decoded, plain, atol=0.01)


@pytest.mark.parametrize("shape", [(1, 10, 3), (10, 1, 3), (1, 1, 3)])
@documents("Degenerate extents fail with an encode error instead of crashing")
def test_rasterize_rejects_degenerate_extents(shape):
    with pytest.raises(EncodeError):
        io_utils.rasterize_srgb8(np.zeros(shape, dtype=np.float32))


def test_rasterize_quantizes_to_srgb8():
    arr = np.array([[[0.0, 0.214, 1.0], [1.5, -0.5, 0.5]]] * 2, dtype=np.float32)

    raster = io_utils.rasterize_srgb8(arr)

    assert raster.dtype == np.uint8
    assert raster[0, 0].tolist()[0] == 0
    assert raster[0, 0].tolist()[2] == 255
    assert raster[0, 1].tolist()[:2] == [255, 0]
    # Linear 0.214 is roughly sRGB 0.5.
    assert abs(int(raster[0, 0, 1]) - 128) <= 2


@pytest.mark.parametrize("quality, expected", [(1.5, 1.0), (-1.0, 0.0), (0.82, 0.82)])
def test_quality_is_clamped(quality, expected):
    assert io_utils.clamp_quality(quality) == pytest.approx(expected)


@documents("Out-of-range quality behaves like the nearest bound")
def test_encode_clamps_quality_before_compressing():
    raster = gradient_rgb8(32, 16)

    assert io_utils.encode_jpeg(raster, 1.5) == io_utils.encode_jpeg(raster, 1.0)
    assert io_utils.encode_jpeg(raster, -1.0) == io_utils.encode_jpeg(raster, 0.0)


def test_encoded_jpeg_embeds_srgb_profile():
    data = io_utils.encode_jpeg(gradient_rgb8(16, 8), 0.9, io_utils.srgb_profile_bytes())

    with Image.open(io.BytesIO(data)) as image:
        assert image.format == "JPEG"
        assert image.size == (16, 8)
        icc = image.info.get("icc_profile")
    assert icc
    description = ImageCms.getProfileDescription(ImageCms.ImageCmsProfile(io.BytesIO(icc)))
    assert io_utils.OUTPUT_COLOR_SPACE in description


def test_lower_quality_produces_smaller_files():
    raster = (np.random.default_rng(5).random((64, 64, 3)) * 255).astype(np.uint8)

    assert len(io_utils.encode_jpeg(raster, 0.2)) < len(io_utils.encode_jpeg(raster, 0.95))

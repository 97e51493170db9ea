from __future__ import annotations

import pytest

from .documentation import documents

np = pytest.importorskip("numpy")
pytest.importorskip("scipy.ndimage")

from luma_renderer import resample  # noqa: E402  # pylint: disable=wrong-import-position


@documents("Preview bounds scale both axes by the same factor")
def test_max_side_bounds_the_longest_edge():
    assert resample.target_extent(2000, 1000, 500) == (500, 250)
    assert resample.target_extent(1000, 2000, 500) == (250, 500)


@pytest.mark.parametrize("max_side", [None, 2000, 5000])
def test_large_or_missing_bound_keeps_extent(max_side):
    assert resample.target_extent(2000, 1000, max_side) == (2000, 1000)


def test_fractional_extent_rounds_outward():
    assert resample.target_extent(1000, 333, 100) == (100, 34)


def test_downscale_never_upscales():
    arr = np.random.default_rng(1).random((20, 30, 3), dtype=np.float32)

    assert resample.downscale_to_max_side(arr, 64) is arr


def test_downscale_preserves_aspect_and_flat_colour():
    arr = np.full((100, 200, 3), 0.25, dtype=np.float32)

    out = resample.downscale_to_max_side(arr, 50)

    assert out.shape == (25, 50, 3)
    assert out.dtype == np.float32
    assert np.allclose(out, 0.25, atol=1e-5)


def test_downscale_prefilter_suppresses_aliasing():
    checker = (np.indices((128, 128)).sum(axis=0) % 2).astype(np.float32)
    arr = np.repeat(checker[:, :, None], 3, axis=2)

    out = resample.downscale_to_max_side(arr, 16)

    assert out.shape == (16, 16, 3)
    assert float(out.std()) < 0.1
    assert float(out.mean()) == pytest.approx(0.5, abs=0.05)


def test_resize_bilinear_hits_corners_exactly():
    arr = np.arange(16, dtype=np.float32).reshape(4, 4, 1)

    out = resample.resize_bilinear(arr, 2, 2)

    assert out[0, 0, 0] == arr[0, 0, 0]
    assert out[-1, -1, 0] == arr[-1, -1, 0]

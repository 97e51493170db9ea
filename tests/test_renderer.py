from __future__ import annotations

import threading

import pytest

from .documentation import documents
from .imaging import MemoryAssetStore, decode_jpeg, encode_png

np = pytest.importorskip("numpy")
pytest.importorskip("PIL.Image")
pytest.importorskip("scipy.ndimage")

from luma_renderer import renderer as renderer_module  # noqa: E402  # pylint: disable=wrong-import-position
from luma_renderer.adjustments import AdjustmentParameters  # noqa: E402  # pylint: disable=wrong-import-position
from luma_renderer.assets import SourceAsset  # noqa: E402  # pylint: disable=wrong-import-position
from luma_renderer.errors import (  # noqa: E402  # pylint: disable=wrong-import-position
    AssetNotFound,
    DecodeError,
    EncodeError,
    InputError,
    PermissionDenied,
    RenderError,
    WriteError,
)
from luma_renderer.geometry import GeometrySpec, NormalizedRect  # noqa: E402  # pylint: disable=wrong-import-position
from luma_renderer.io_utils import JPEG_UNIFORM_TYPE, decode_source  # noqa: E402  # pylint: disable=wrong-import-position
from luma_renderer.renderer import RenderContext, Renderer  # noqa: E402  # pylint: disable=wrong-import-position
from luma_renderer.request import RenderRequest, SourceImage  # noqa: E402  # pylint: disable=wrong-import-position
from luma_renderer.tone_curve import synthesize_tone_curve  # noqa: E402  # pylint: disable=wrong-import-position


def _mean_abs_diff(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.mean(np.abs(a.astype(np.int16) - b.astype(np.int16))))


@documents("Neutral parameters at full quality reproduce the source")
def test_neutral_preview_matches_source(memory_store, source_rgb8):
    jpeg = Renderer(memory_store).render_preview("gradient", {}, max_side=1000, quality=1.0)

    decoded = decode_jpeg(jpeg)

    assert decoded.shape == source_rgb8.shape
    assert _mean_abs_diff(decoded, source_rgb8) < 2.0


def test_preview_bounds_longest_side(memory_store):
    jpeg = Renderer(memory_store).render_preview("gradient", {"exposure": 0.2}, max_side=16)

    assert decode_jpeg(jpeg).shape == (8, 16, 3)


def test_preview_applies_geometry_before_resampling(memory_store):
    jpeg = Renderer(memory_store).render_preview(
        "gradient", None, {"rotationTurns": 1, "aspect": 1.0}, max_side=20
    )

    assert decode_jpeg(jpeg).shape == (20, 20, 3)


def test_preview_honours_source_orientation(source_rgb8):
    store = MemoryAssetStore({"rotated": SourceAsset(data=encode_png(source_rgb8), orientation=6)})

    jpeg = Renderer(store).render_preview("rotated", {}, max_side=1000, quality=1.0)

    assert decode_jpeg(jpeg).shape == (64, 32, 3)


@documents("Grain is the only source of run-to-run variation")
def test_identical_inputs_without_grain_are_byte_identical(memory_store):
    values = {"exposure": 0.4, "contrast": 0.3, "vibrance": 0.5, "vignette": 0.6}

    first = Renderer(memory_store).render_preview("gradient", values, max_side=48, quality=0.8)
    second = Renderer(memory_store).render_preview("gradient", values, max_side=48, quality=0.8)

    assert first == second


def test_grain_follows_the_injected_generator(memory_store):
    def make_renderer(seed):
        return Renderer(memory_store, rng_factory=lambda: np.random.default_rng(seed))

    values = {"grain": 1.0}

    first = make_renderer(1).render_preview("gradient", values, max_side=48)
    again = make_renderer(1).render_preview("gradient", values, max_side=48)
    other = make_renderer(2).render_preview("gradient", values, max_side=48)

    assert first == again
    assert first != other


def test_four_turns_render_like_zero_turns(memory_store):
    renderer = Renderer(memory_store)

    four = renderer.render_preview("gradient", {}, {"rotationTurns": 4}, max_side=64)
    zero = renderer.render_preview("gradient", {}, {"rotationTurns": 0}, max_side=64)

    assert four == zero


def test_preview_requires_positive_max_side(memory_store):
    with pytest.raises(InputError):
        Renderer(memory_store).render_preview("gradient", {}, max_side=0)
    assert memory_store.calls == []


@pytest.mark.parametrize("max_side", ["wide", "16", 2.7, None, True])
def test_preview_rejects_non_integer_max_side(memory_store, max_side):
    with pytest.raises(InputError):
        Renderer(memory_store).render_preview("gradient", {}, max_side=max_side)
    assert memory_store.calls == []


def test_render_request_rejects_fractional_max_side(source_rgb8):
    image = SourceImage(pixels=decode_source(encode_png(source_rgb8)))

    with pytest.raises(InputError):
        RenderRequest(image=image, max_side=2.7)
    assert RenderRequest(image=image, max_side=np.int64(12)).max_side == 12


def test_invalid_parameters_fail_before_fetching(memory_store):
    with pytest.raises(InputError):
        Renderer(memory_store).render_preview("gradient", {"glow": 1.0}, max_side=32)
    assert memory_store.calls == []


def test_missing_asset_is_reported(memory_store):
    with pytest.raises(AssetNotFound):
        Renderer(memory_store).render_preview("missing", {}, max_side=32)


def test_undecodable_asset_is_reported():
    store = MemoryAssetStore({"broken": SourceAsset(data=b"\x00\x01garbage")})

    with pytest.raises(DecodeError):
        Renderer(store).render_preview("broken", {}, max_side=32)


def test_renderer_without_store_rejects_asset_calls():
    with pytest.raises(InputError):
        Renderer().render_preview("gradient", {}, max_side=32)


def test_export_sequence_is_encode_permission_write(memory_store, source_rgb8, monkeypatch):
    order = []
    original_encode = renderer_module.encode_jpeg

    def spy_encode(*args, **kwargs):
        order.append("encode")
        return original_encode(*args, **kwargs)

    monkeypatch.setattr(renderer_module, "encode_jpeg", spy_encode)
    original_permission = memory_store.request_write_permission

    def spy_permission():
        order.append("permission")
        return original_permission()

    monkeypatch.setattr(memory_store, "request_write_permission", spy_permission)

    result = Renderer(memory_store).export_full_res("gradient", {"sharpen": 0.4})

    assert result == "saved"
    assert order == ["encode", "permission"]
    assert memory_store.calls[-1] == "write"
    data, uniform_type = memory_store.writes[0]
    assert uniform_type == JPEG_UNIFORM_TYPE
    assert decode_jpeg(data).shape == source_rgb8.shape


@documents("A permission denial is terminal and never reaches the store write")
def test_export_permission_denied_never_writes(source_rgb8):
    store = MemoryAssetStore({"gradient": SourceAsset(data=encode_png(source_rgb8))}, permission=False)

    with pytest.raises(PermissionDenied):
        Renderer(store).export_full_res("gradient", {})

    assert "write" not in store.calls
    assert store.writes == []


def test_export_reports_rejected_write(source_rgb8):
    store = MemoryAssetStore({"gradient": SourceAsset(data=encode_png(source_rgb8))}, write_result=False)

    with pytest.raises(WriteError):
        Renderer(store).export_full_res("gradient", {})


def test_export_wraps_store_exceptions(memory_store, monkeypatch):
    def failing_write(data, uniform_type):
        raise OSError("disk full")

    monkeypatch.setattr(memory_store, "write_new_asset", failing_write)

    with pytest.raises(WriteError, match="disk full"):
        Renderer(memory_store).export_full_res("gradient", {})


def test_export_encode_failure_skips_permission():
    tiny = np.full((1, 1, 3), 128, dtype=np.uint8)
    store = MemoryAssetStore({"dot": SourceAsset(data=encode_png(tiny))})

    with pytest.raises(EncodeError):
        Renderer(store).export_full_res("dot", {})

    assert store.calls == ["fetch"]


def test_export_uses_full_resolution_and_export_quality(memory_store, source_rgb8, monkeypatch):
    qualities = []
    original_encode = renderer_module.encode_jpeg

    def spy_encode(raster, quality, icc_profile=None):
        qualities.append(quality)
        return original_encode(raster, quality, icc_profile)

    monkeypatch.setattr(renderer_module, "encode_jpeg", spy_encode)

    Renderer(memory_store).export_full_res("gradient", {})

    assert qualities == [pytest.approx(0.92)]
    assert decode_jpeg(memory_store.writes[0][0]).shape == source_rgb8.shape


def test_render_returns_tagged_results(source_rgb8):
    image = SourceImage(pixels=decode_source(encode_png(source_rgb8)))
    renderer = Renderer()

    ok = renderer.render(RenderRequest(image=image, max_side=20, quality=0.7, request_id=5))
    failed = renderer.render(
        RenderRequest(
            image=image,
            geometry=GeometrySpec(rect=NormalizedRect(0.0, 0.0, 1.0, 0.0)),
            request_id=6,
        )
    )

    assert ok.ok and ok.request_id == 5 and ok.data
    assert decode_jpeg(ok.data).shape == (10, 20, 3)
    assert not failed.ok
    assert failed.error_code == "encode_error"
    assert failed.request_id == 6
    assert ok.unwrap() == ok.data
    with pytest.raises(RenderError, match="encode_error"):
        failed.unwrap()


def test_render_request_clamps_quality(source_rgb8):
    image = SourceImage(pixels=decode_source(encode_png(source_rgb8)))

    assert RenderRequest(image=image, quality=1.5).quality == 1.0
    assert RenderRequest(image=image, quality=-1.0).quality == 0.0


@pytest.mark.parametrize("values", [{"contrast": 1.0}, {"contrast": -1.0}, {"dehaze": 1.0}])
def test_contrast_sliders_keep_mid_grey_renders_near_mid_grey(values):
    grey = np.full((16, 16, 3), 128, dtype=np.uint8)
    image = SourceImage(pixels=decode_source(encode_png(grey)))

    result = Renderer().render(RenderRequest(image=image, parameters=AdjustmentParameters(**values)))

    assert abs(float(decode_jpeg(result.unwrap()).mean()) - 128.0) < 12.0


def test_context_caches_tone_curve_luts(memory_store):
    context = RenderContext()
    renderer = Renderer(memory_store, context=context)

    renderer.render_preview("gradient", {"contrast": 0.5}, max_side=16)
    renderer.render_preview("gradient", {"contrast": 0.5}, max_side=16)
    renderer.render_preview("gradient", {"contrast": -0.5}, max_side=16)

    assert context.cached_lut_count == 2


def test_context_evicts_oldest_lut_when_full():
    context = RenderContext(max_cached_luts=2)
    curves = [synthesize_tone_curve(c, 0.0, 0.0) for c in (0.1, 0.2, 0.3)]

    for curve in curves:
        context.lut_for(curve)

    assert context.cached_lut_count == 2


def test_shared_context_is_safe_across_threads(memory_store):
    context = RenderContext()
    results = []
    errors = []

    def work(contrast):
        try:
            renderer = Renderer(memory_store, context=context)
            results.append(renderer.render_preview("gradient", {"contrast": contrast}, max_side=16))
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=work, args=(c / 10.0,)) for c in range(-4, 5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(results) == 9


def test_parameters_object_is_accepted_directly(memory_store):
    renderer = Renderer(memory_store)

    from_object = renderer.render_preview("gradient", AdjustmentParameters(exposure=0.3), max_side=24)
    from_mapping = renderer.render_preview("gradient", {"exposure": 0.3}, max_side=24)

    assert from_object == from_mapping


def test_source_image_requires_rgb_pixels():
    with pytest.raises(InputError):
        SourceImage(pixels=np.zeros((4, 4), dtype=np.float32))
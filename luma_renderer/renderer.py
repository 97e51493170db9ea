"""The renderer object: one compute context, two render tiers.

A :class:`Renderer` is an ordinary object rather than a process-wide
singleton. It owns a :class:`RenderContext` holding reusable compute state
and talks to an optional :class:`~luma_renderer.assets.AssetStore` for the
``render_preview`` and ``export_full_res`` entry points. Independent
instances share nothing and can be constructed freely in tests.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Union

import numpy as np

from .adjustments import AdjustmentParameters, apply_adjustments
from .assets import AssetStore
from .errors import InputError, PermissionDenied, RenderError, WriteError
from .geometry import GeometrySpec, apply_geometry
from .io_utils import JPEG_UNIFORM_TYPE, decode_source, encode_jpeg, rasterize_srgb8, srgb_profile_bytes
from .profiles import EXPORT_PROFILE_NAME, PREVIEW_PROFILE_NAME, RENDER_PROFILES, RenderProfile
from .request import RenderRequest, RenderResult, SourceImage, require_max_side
from .resample import downscale_to_max_side
from .tone_curve import DEFAULT_LUT_SIZE, ToneCurve, tone_curve_lut

LOGGER = logging.getLogger("luma_renderer")

EXPORT_SAVED = "saved"

ParametersLike = Union[AdjustmentParameters, Mapping[str, Any], None]
GeometryLike = Union[GeometrySpec, Mapping[str, Any], None]


class RenderContext:
    """Reusable compute state shared by the requests of one renderer.

    Tone-curve lookup tables are cached per curve and the sRGB ICC profile is
    serialized once. Every mutation happens under ``lock``, so one context may
    serve several worker threads.
    """

    def __init__(self, lut_size: int = DEFAULT_LUT_SIZE, max_cached_luts: int = 64) -> None:
        self.lut_size = lut_size
        self.max_cached_luts = max_cached_luts
        self.lock = threading.Lock()
        self._luts: Dict[ToneCurve, np.ndarray] = {}
        self._icc_profile: Optional[bytes] = None

    def lut_for(self, curve: ToneCurve) -> np.ndarray:
        with self.lock:
            lut = self._luts.get(curve)
            if lut is None:
                if len(self._luts) >= self.max_cached_luts:
                    self._luts.pop(next(iter(self._luts)))
                lut = tone_curve_lut(curve, self.lut_size)
                self._luts[curve] = lut
            return lut

    @property
    def icc_profile(self) -> bytes:
        with self.lock:
            if self._icc_profile is None:
                self._icc_profile = srgb_profile_bytes()
            return self._icc_profile

    @property
    def cached_lut_count(self) -> int:
        with self.lock:
            return len(self._luts)


def coerce_parameters(parameters: ParametersLike) -> AdjustmentParameters:
    if isinstance(parameters, AdjustmentParameters):
        return parameters
    return AdjustmentParameters.from_mapping(parameters)


def coerce_geometry(geometry: GeometryLike) -> Optional[GeometrySpec]:
    if geometry is None or isinstance(geometry, GeometrySpec):
        return geometry
    return GeometrySpec.from_mapping(geometry)


class Renderer:
    """Render requests into encoded JPEG bytes.

    Args:
        asset_store: Collaborator used by :meth:`render_preview` and
            :meth:`export_full_res`. :meth:`render` works without one.
        context: Compute context to use; a fresh one by default.
        profiles: Mapping of tier name to :class:`RenderProfile`.
        rng_factory: Zero-argument callable returning the
            :class:`numpy.random.Generator` used for grain. Called once per
            render.
    """

    def __init__(
        self,
        asset_store: Optional[AssetStore] = None,
        *,
        context: Optional[RenderContext] = None,
        profiles: Optional[Mapping[str, RenderProfile]] = None,
        rng_factory: Optional[Callable[[], np.random.Generator]] = None,
    ) -> None:
        self.asset_store = asset_store
        self.context = context if context is not None else RenderContext()
        self.profiles: Dict[str, RenderProfile] = dict(RENDER_PROFILES if profiles is None else profiles)
        self._rng_factory = rng_factory if rng_factory is not None else np.random.default_rng

    def profile(self, name: Union[str, RenderProfile]) -> RenderProfile:
        if isinstance(name, RenderProfile):
            return name
        try:
            return self.profiles[name]
        except KeyError as exc:
            raise InputError(f"Unknown render profile {name!r}") from exc

    # ------------------------------------------------------------------
    # Pixel pipeline
    # ------------------------------------------------------------------

    def render_array(self, request: RenderRequest, profile: Union[str, RenderProfile]) -> np.ndarray:
        """Return the final working-space array for *request*, before encoding."""

        resolved = self.profile(profile)
        image = request.image
        arr = apply_geometry(image.pixels, request.geometry, orientation=image.orientation)
        arr = apply_adjustments(
            arr,
            request.parameters,
            tuning=resolved.tuning,
            rng=self._rng_factory(),
            lut_provider=self.context.lut_for,
        )
        max_side = resolved.resolve_max_side(request.max_side)
        if max_side is not None:
            arr = downscale_to_max_side(arr, max_side)
        return arr

    def encode_request(self, request: RenderRequest, profile: Union[str, RenderProfile]) -> bytes:
        """Run the full pipeline for *request* and return JPEG bytes.

        Raises:
            EncodeError: If the final extent is degenerate or compression fails.
        """

        start = time.perf_counter()
        raster = rasterize_srgb8(self.render_array(request, profile))
        data = encode_jpeg(raster, request.quality, self.context.icc_profile)
        LOGGER.info(
            "Rendered %sx%s (%s) in %.3fs",
            raster.shape[1],
            raster.shape[0],
            self.profile(profile).name,
            time.perf_counter() - start,
        )
        return data

    def render(
        self, request: RenderRequest, profile: Union[str, RenderProfile] = PREVIEW_PROFILE_NAME
    ) -> RenderResult:
        """Render *request*, reporting taxonomy failures as a tagged result."""

        try:
            data = self.encode_request(request, profile)
        except RenderError as exc:
            LOGGER.warning("Render %s failed: %s", request.request_id, exc)
            return RenderResult.failure(exc, request.request_id)
        return RenderResult.success(data, request.request_id)

    # ------------------------------------------------------------------
    # Asset-store entry points
    # ------------------------------------------------------------------

    def _store(self) -> AssetStore:
        if self.asset_store is None:
            raise InputError("Renderer has no asset store configured")
        return self.asset_store

    def load_source(self, asset_ref: str) -> SourceImage:
        """Fetch *asset_ref* from the store and decode it into the working space."""

        asset = self._store().fetch(asset_ref)
        return SourceImage(pixels=decode_source(asset.data), orientation=asset.orientation)

    def build_request(
        self,
        asset_ref: str,
        parameters: ParametersLike,
        geometry: GeometryLike,
        *,
        profile: RenderProfile,
        max_side: Optional[int] = None,
        quality: Optional[float] = None,
        request_id: Optional[int] = None,
    ) -> RenderRequest:
        # Validate everything the caller sent before touching any pixels.
        params = coerce_parameters(parameters)
        geometry_spec = coerce_geometry(geometry)
        resolved_quality = profile.resolve_quality(quality)
        return RenderRequest(
            image=self.load_source(asset_ref),
            parameters=params,
            geometry=geometry_spec,
            max_side=max_side,
            quality=resolved_quality,
            request_id=request_id,
        )

    def render_preview(
        self,
        asset_ref: str,
        parameters: ParametersLike = None,
        geometry: GeometryLike = None,
        *,
        max_side: int,
        quality: Optional[float] = None,
        request_id: Optional[int] = None,
    ) -> bytes:
        """Render a bounded-size preview of *asset_ref* and return JPEG bytes."""

        profile = self.profile(PREVIEW_PROFILE_NAME)
        max_side = require_max_side(max_side)
        LOGGER.info("Preview %s requested (request_id=%s, max_side=%s)", asset_ref, request_id, max_side)
        request = self.build_request(
            asset_ref,
            parameters,
            geometry,
            profile=profile,
            max_side=max_side,
            quality=quality,
            request_id=request_id,
        )
        return self.encode_request(request, profile)

    def export_full_res(
        self,
        asset_ref: str,
        parameters: ParametersLike = None,
        geometry: GeometryLike = None,
        *,
        quality: Optional[float] = None,
    ) -> str:
        """Render *asset_ref* at full resolution and publish it to the store.

        Encoding completes before write permission is requested, and the
        write is attempted only once permission is granted.

        Returns:
            The literal ``"saved"``.

        Raises:
            PermissionDenied: If the store refuses write access.
            WriteError: If the store raises or reports an unsuccessful write.
        """

        store = self._store()
        profile = self.profile(EXPORT_PROFILE_NAME)
        LOGGER.info("Export %s requested", asset_ref)
        request = self.build_request(asset_ref, parameters, geometry, profile=profile, quality=quality)
        data = self.encode_request(request, profile)

        if not store.request_write_permission():
            LOGGER.warning("Write permission denied for export of %s", asset_ref)
            raise PermissionDenied("Photo library write permission denied")

        try:
            written = store.write_new_asset(data, JPEG_UNIFORM_TYPE)
        except Exception as exc:
            raise WriteError(f"Asset store write failed: {exc}") from exc
        if not written:
            raise WriteError("Asset store reported an unsuccessful write")
        LOGGER.info("Export of %s saved (%d bytes)", asset_ref, len(data))
        return EXPORT_SAVED


__all__ = [
    "EXPORT_SAVED",
    "RenderContext",
    "Renderer",
    "coerce_geometry",
    "coerce_parameters",
]

"""Off-thread dispatch of render work and the method-channel boundary.

Preview requests arrive in storms while a slider is dragged, so they run on
a thread pool and resolve to :class:`~luma_renderer.request.RenderResult`
values that echo the caller's ``request_id``; the caller drops stale ones.
Exports publish to the asset store and are serialized through a single
worker.
"""
from __future__ import annotations

import dataclasses
import functools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Mapping, Optional

from .assets import AssetStore
from .errors import InputError, RenderError, error_code_for
from .renderer import GeometryLike, ParametersLike, Renderer, coerce_geometry, coerce_parameters
from .request import RenderRequest, RenderResult

LOGGER = logging.getLogger("luma_renderer")

CHANNEL_NAME = "luma/native_renderer"

BAD_ARGS = "bad_args"
RENDER_FAILED = "render_failed"
EXPORT_FAILED = "export_failed"
NOT_IMPLEMENTED = "not_implemented"


class CancellationToken:
    """Flag a caller sets to withdraw a request that has not started yet."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class PreviewDispatcher:
    """Run previews on a worker pool and exports on a single worker.

    Each worker thread lazily builds its own :class:`Renderer` through
    ``renderer_factory``, so no compute context is touched by two threads.
    """

    def __init__(
        self,
        asset_store: Optional[AssetStore] = None,
        *,
        renderer_factory: Optional[Callable[[], Renderer]] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        if renderer_factory is None:
            renderer_factory = lambda: Renderer(asset_store)  # noqa: E731
        self._renderer_factory = renderer_factory
        self._local = threading.local()
        self._preview_executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="luma-preview"
        )
        self._export_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="luma-export")

    def renderer(self) -> Renderer:
        """Return the renderer owned by the current thread."""

        renderer = getattr(self._local, "renderer", None)
        if renderer is None:
            renderer = self._renderer_factory()
            self._local.renderer = renderer
            LOGGER.debug("Created renderer for %s", threading.current_thread().name)
        return renderer

    def _run(
        self,
        request_id: Optional[int],
        token: Optional[CancellationToken],
        work: Callable[[Renderer], bytes],
    ) -> RenderResult:
        if token is not None and token.cancelled:
            LOGGER.warning("Request %s cancelled before rendering", request_id)
            return RenderResult.cancelled(request_id)
        try:
            data = work(self.renderer())
        except RenderError as exc:
            LOGGER.warning("Request %s failed: %s", request_id, exc)
            return RenderResult.failure(exc, request_id)
        return RenderResult.success(data, request_id)

    def submit_preview(
        self,
        asset_ref: str,
        parameters: ParametersLike = None,
        geometry: GeometryLike = None,
        *,
        max_side: int,
        quality: Optional[float] = None,
        request_id: Optional[int] = None,
        token: Optional[CancellationToken] = None,
    ) -> "Future[RenderResult]":
        def work(renderer: Renderer) -> bytes:
            return renderer.render_preview(
                asset_ref,
                parameters,
                geometry,
                max_side=max_side,
                quality=quality,
                request_id=request_id,
            )

        return self._preview_executor.submit(self._run, request_id, token, work)

    def submit_request(
        self,
        request: RenderRequest,
        profile: str,
        *,
        token: Optional[CancellationToken] = None,
    ) -> "Future[RenderResult]":
        """Render an already decoded *request* on the preview pool."""

        def work(renderer: Renderer) -> bytes:
            return renderer.encode_request(request, profile)

        return self._preview_executor.submit(self._run, request.request_id, token, work)

    def submit_export(
        self,
        asset_ref: str,
        parameters: ParametersLike = None,
        geometry: GeometryLike = None,
        *,
        quality: Optional[float] = None,
    ) -> "Future[str]":
        """Queue a full-resolution export.

        The future resolves to ``"saved"`` or carries the
        :class:`~luma_renderer.errors.RenderError` that ended the export.
        """

        def work() -> str:
            return self.renderer().export_full_res(asset_ref, parameters, geometry, quality=quality)

        return self._export_executor.submit(work)

    def shutdown(self, wait: bool = True) -> None:
        self._preview_executor.shutdown(wait=wait)
        self._export_executor.shutdown(wait=wait)

    def __enter__(self) -> "PreviewDispatcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.shutdown(wait=True)
        return False


@dataclasses.dataclass(frozen=True)
class MethodResult:
    """Reply sent back over the channel: a value, or an error code and message."""

    value: Any = None
    code: Optional[str] = None
    message: Optional[str] = None
    details: Any = None

    @property
    def ok(self) -> bool:
        return self.code is None

    @classmethod
    def success(cls, value: Any) -> "MethodResult":
        return cls(value=value)

    @classmethod
    def error(cls, code: str, message: str, details: Any = None) -> "MethodResult":
        return cls(code=code, message=message, details=details)


@dataclasses.dataclass(frozen=True)
class PreviewArguments:
    asset_id: str
    parameters: Any
    geometry: Any
    max_side: int
    quality: Optional[float]
    request_id: Optional[int]


@dataclasses.dataclass(frozen=True)
class ExportArguments:
    asset_id: str
    parameters: Any
    geometry: Any
    quality: Optional[float]


def _require_mapping(arguments: Any) -> Mapping[str, Any]:
    if not isinstance(arguments, Mapping):
        raise InputError("Arguments must be a mapping")
    return arguments


def _asset_id(arguments: Mapping[str, Any]) -> str:
    asset_id = arguments.get("assetId")
    if not isinstance(asset_id, str) or not asset_id:
        raise InputError("Missing assetId")
    return asset_id


def _values(arguments: Mapping[str, Any]) -> Any:
    values = arguments.get("values")
    if not isinstance(values, Mapping):
        raise InputError("Missing values")
    return coerce_parameters(values)


def _geometry(arguments: Mapping[str, Any]) -> Any:
    geometry = arguments.get("geometry")
    if geometry is not None and not isinstance(geometry, Mapping):
        raise InputError("geometry must be a mapping")
    return coerce_geometry(geometry)


def _optional_quality(arguments: Mapping[str, Any]) -> Optional[float]:
    quality = arguments.get("quality")
    if quality is None:
        return None
    if isinstance(quality, bool) or not isinstance(quality, (int, float)):
        raise InputError(f"quality must be a number, got {quality!r}")
    return float(quality)


def _optional_int(arguments: Mapping[str, Any], key: str) -> Optional[int]:
    value = arguments.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InputError(f"{key} must be an integer, got {value!r}")
    return value


def parse_preview_arguments(arguments: Any) -> PreviewArguments:
    """Validate ``renderPreview`` arguments; raises :class:`InputError`."""

    args = _require_mapping(arguments)
    max_side = _optional_int(args, "maxSide")
    if max_side is None or max_side < 1:
        raise InputError("Missing maxSide")
    return PreviewArguments(
        asset_id=_asset_id(args),
        parameters=_values(args),
        geometry=_geometry(args),
        max_side=max_side,
        quality=_optional_quality(args),
        request_id=_optional_int(args, "requestId"),
    )


def parse_export_arguments(arguments: Any) -> ExportArguments:
    """Validate ``exportFullRes`` arguments; raises :class:`InputError`."""

    args = _require_mapping(arguments)
    return ExportArguments(
        asset_id=_asset_id(args),
        parameters=_values(args),
        geometry=_geometry(args),
        quality=_optional_quality(args),
    )


def _completed(result: MethodResult) -> "Future[MethodResult]":
    future: "Future[MethodResult]" = Future()
    future.set_result(result)
    return future


def _chain(inner: Future, convert: Callable[[Future], MethodResult]) -> "Future[MethodResult]":
    outer: "Future[MethodResult]" = Future()

    def _done(completed: Future) -> None:
        try:
            outer.set_result(convert(completed))
        except Exception as exc:  # pragma: no cover - conversion bug
            LOGGER.exception("Failed to convert channel result")
            outer.set_exception(exc)

    inner.add_done_callback(_done)
    return outer


class MethodChannelHandler:
    """Translate ``renderPreview``/``exportFullRes`` calls into dispatcher work.

    Argument problems are reported as ``bad_args`` before any pixel work;
    failures after that surface as ``render_failed`` or ``export_failed``
    with the taxonomy code in ``details``.
    """

    channel = CHANNEL_NAME

    def __init__(self, dispatcher: PreviewDispatcher, *, timeout: Optional[float] = None) -> None:
        self.dispatcher = dispatcher
        self.timeout = timeout

    def submit(self, method: str, arguments: Any) -> "Future[MethodResult]":
        if method == "renderPreview":
            return self._submit_preview(arguments)
        if method == "exportFullRes":
            return self._submit_export(arguments)
        LOGGER.warning("Unknown channel method %r", method)
        return _completed(MethodResult.error(NOT_IMPLEMENTED, f"Unknown method {method!r}"))

    def handle(self, method: str, arguments: Any) -> MethodResult:
        """Run *method* and block until its reply is ready."""

        return self.submit(method, arguments).result(timeout=self.timeout)

    def _submit_preview(self, arguments: Any) -> "Future[MethodResult]":
        try:
            args = parse_preview_arguments(arguments)
        except InputError as exc:
            return _completed(MethodResult.error(BAD_ARGS, str(exc)))

        inner = self.dispatcher.submit_preview(
            args.asset_id,
            args.parameters,
            args.geometry,
            max_side=args.max_side,
            quality=args.quality,
            request_id=args.request_id,
        )
        return _chain(inner, functools.partial(_preview_reply, request_id=args.request_id))

    def _submit_export(self, arguments: Any) -> "Future[MethodResult]":
        try:
            args = parse_export_arguments(arguments)
        except InputError as exc:
            return _completed(MethodResult.error(BAD_ARGS, str(exc)))

        inner = self.dispatcher.submit_export(
            args.asset_id, args.parameters, args.geometry, quality=args.quality
        )
        return _chain(inner, _export_reply)


def _preview_reply(completed: Future, request_id: Optional[int] = None) -> MethodResult:
    exc = completed.exception()
    if exc is not None:
        LOGGER.error("Preview crashed: %s", exc, exc_info=exc)
        return MethodResult.error(RENDER_FAILED, str(exc), {"code": error_code_for(exc), "requestId": request_id})
    result: RenderResult = completed.result()
    if not result.ok:
        return MethodResult.error(
            RENDER_FAILED, result.message, {"code": result.error_code, "requestId": result.request_id}
        )
    return MethodResult.success(result.data)


def _export_reply(completed: Future) -> MethodResult:
    exc = completed.exception()
    if exc is not None:
        if not isinstance(exc, RenderError):
            LOGGER.error("Export crashed: %s", exc, exc_info=exc)
        return MethodResult.error(EXPORT_FAILED, str(exc), error_code_for(exc))
    return MethodResult.success(completed.result())


__all__ = [
    "BAD_ARGS",
    "CHANNEL_NAME",
    "CancellationToken",
    "EXPORT_FAILED",
    "MethodChannelHandler",
    "MethodResult",
    "NOT_IMPLEMENTED",
    "PreviewDispatcher",
    "RENDER_FAILED",
    "parse_export_arguments",
    "parse_preview_arguments",
]

"""Failure taxonomy shared by the renderer, the asset store and the boundary."""
from __future__ import annotations


class RenderError(RuntimeError):
    """Base class for terminal per-request failures."""

    code = "render_error"


class InputError(RenderError, ValueError):
    """Raised when a request is malformed or misses a required field."""

    code = "input_error"


class AssetNotFound(RenderError):
    """Raised when the asset store has no entry for the requested reference."""

    code = "asset_not_found"


class DecodeError(RenderError):
    """Raised when the source bytes cannot be decoded into pixels."""

    code = "decode_error"


class EncodeError(RenderError):
    """Raised when the final raster is degenerate or compression fails."""

    code = "encode_error"


class PermissionDenied(RenderError):
    """Raised when the asset store refuses write access for an export."""

    code = "permission_denied"


class WriteError(RenderError):
    """Raised when the asset store rejects the final write."""

    code = "write_error"


def error_code_for(exc: BaseException) -> str:
    """Return the stable taxonomy code for *exc*."""

    if isinstance(exc, RenderError):
        return exc.code
    return RenderError.code


__all__ = [
    "AssetNotFound",
    "DecodeError",
    "EncodeError",
    "InputError",
    "PermissionDenied",
    "RenderError",
    "WriteError",
    "error_code_for",
]

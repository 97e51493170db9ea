"""Asset store collaborators: fetch source bytes, gate and persist exports."""
from __future__ import annotations

import contextlib
import dataclasses
import io
import logging
import os
import uuid
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

from PIL import Image, UnidentifiedImageError

from .errors import AssetNotFound, InputError
from .io_utils import JPEG_UNIFORM_TYPE

LOGGER = logging.getLogger("luma_renderer")

EXIF_ORIENTATION_TAG = 274

UNIFORM_TYPE_SUFFIXES = {
    JPEG_UNIFORM_TYPE: ".jpg",
}


@dataclasses.dataclass(frozen=True)
class SourceAsset:
    """Encoded source bytes and their EXIF orientation code (1-8)."""

    data: bytes
    orientation: int = 1


@runtime_checkable
class AssetStore(Protocol):
    """The three operations the renderer consumes from an asset library."""

    def fetch(self, asset_ref: str) -> SourceAsset:
        ...

    def request_write_permission(self) -> bool:
        ...

    def write_new_asset(self, data: bytes, uniform_type: str) -> object:
        ...


def read_orientation(data: bytes) -> int:
    """Return the EXIF orientation stored in *data*, defaulting to ``1``."""

    try:
        with Image.open(io.BytesIO(data)) as image:
            value = image.getexif().get(EXIF_ORIENTATION_TAG, 1)
    except (UnidentifiedImageError, OSError, ValueError):
        return 1
    try:
        orientation = int(value)
    except (TypeError, ValueError):
        return 1
    return orientation if 1 <= orientation <= 8 else 1


@dataclasses.dataclass
class StagedWrite:
    """Context manager for atomic file writes using staged temporary files.

    The bytes land in a hidden sibling of ``destination`` first and are
    moved into place with :func:`os.replace` only if the block succeeds.
    """

    destination: Path
    suffix: str = ".tmp"

    def __post_init__(self) -> None:
        self._staged_path: Optional[Path] = None

    def _temp_path(self) -> Path:
        unique = uuid.uuid4().hex
        return self.destination.parent / f".{self.destination.name}{self.suffix}-{unique}"

    def __enter__(self) -> Path:
        self.destination.parent.mkdir(parents=True, exist_ok=True)
        self._staged_path = self._temp_path()
        return self._staged_path

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._staged_path is None:
            return False

        staged = self._staged_path
        self._staged_path = None

        if exc_type is None:
            try:
                os.replace(staged, self.destination)
            except OSError:
                with contextlib.suppress(OSError):
                    staged.unlink()
                raise
        else:
            with contextlib.suppress(FileNotFoundError):
                staged.unlink()
        return False


class DirectoryAssetStore:
    """Asset store backed by a directory tree.

    Asset references are paths relative to ``root``. Exports are written into
    ``output_dir`` (``root / "exports"`` by default) under fresh unique names,
    so an existing asset is never overwritten.
    """

    def __init__(
        self,
        root: Union[str, Path],
        output_dir: Union[str, Path, None] = None,
        *,
        allow_writes: bool = True,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.output_dir = Path(output_dir).expanduser() if output_dir is not None else self.root / "exports"
        self.allow_writes = allow_writes

    def resolve(self, asset_ref: str) -> Path:
        if not isinstance(asset_ref, str) or not asset_ref:
            raise InputError("Asset reference must be a non-empty string")
        candidate = Path(asset_ref)
        path = (candidate if candidate.is_absolute() else self.root / candidate).resolve()
        if path != self.root and self.root not in path.parents:
            raise AssetNotFound(f"Asset {asset_ref!r} is outside {self.root}")
        return path

    def fetch(self, asset_ref: str) -> SourceAsset:
        path = self.resolve(asset_ref)
        if not path.is_file():
            raise AssetNotFound(f"Asset not found: {asset_ref}")
        data = path.read_bytes()
        orientation = read_orientation(data)
        LOGGER.debug("Fetched %s (%d bytes, orientation %d)", path, len(data), orientation)
        return SourceAsset(data=data, orientation=orientation)

    def request_write_permission(self) -> bool:
        return self.allow_writes

    def write_new_asset(self, data: bytes, uniform_type: str) -> Path:
        suffix = UNIFORM_TYPE_SUFFIXES.get(uniform_type)
        if suffix is None:
            raise InputError(f"Unsupported uniform type {uniform_type!r}")
        destination = self.output_dir / f"{uuid.uuid4().hex}{suffix}"
        with StagedWrite(destination) as staged:
            staged.write_bytes(data)
        LOGGER.info("Wrote %s", destination)
        return destination


__all__ = [
    "AssetStore",
    "DirectoryAssetStore",
    "EXIF_ORIENTATION_TAG",
    "SourceAsset",
    "StagedWrite",
    "read_orientation",
]

from __future__ import annotations

import numpy as np
import pytest

from luma_renderer.assets import SourceAsset

from .imaging import MemoryAssetStore, encode_png, gradient_rgb8


@pytest.fixture
def source_rgb8() -> np.ndarray:
    return gradient_rgb8(64, 32)


@pytest.fixture
def memory_store(source_rgb8: np.ndarray) -> MemoryAssetStore:
    return MemoryAssetStore({"gradient": SourceAsset(data=encode_png(source_rgb8))})

import numpy as np
import pytest


def rgba(values, alpha=255):
    """
    Build an RGBA uint8 raster from a 2D grid of gray values.
    """
    values = np.asarray(values, dtype=np.uint8)
    out = np.empty(values.shape + (4,), dtype=np.uint8)
    out[..., :3] = values[..., np.newaxis]
    out[..., 3] = alpha
    return out


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def random_rasters(rng):
    H, W = 9, 11
    source = rng.integers(0, 256, size=(H, W, 4), dtype=np.uint8)
    destination = rng.integers(0, 256, size=(H, W, 4), dtype=np.uint8)
    mask = np.zeros((H, W), dtype=np.uint8)
    mask[2:7, 3:9] = 255
    mask[4, 5] = 0
    return source, mask, destination

import numpy as np
import pytest

from surface_markup import SurfaceKind, SurfaceMask


@pytest.fixture
def gray_photo():
    """120x80 mid-gray BGR photo."""
    return np.full((80, 120, 3), 60, dtype=np.uint8)


@pytest.fixture
def noise_photo():
    rng = np.random.default_rng(0)
    return rng.integers(0, 256, size=(240, 320, 3), dtype=np.uint8)


@pytest.fixture
def left_half_wall():
    """Wall covering the left half of a 40x20 class map."""
    stencil = np.zeros((20, 40), dtype=np.uint8)
    stencil[:, :20] = 255
    return SurfaceMask.from_stencil(SurfaceKind.WALL, stencil)

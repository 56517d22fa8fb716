from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import numpy as np


class SurfaceKind(Enum):
    """Detectable surface types, in extraction order.

    Each kind lists the ADE20K class ids it covers; facade spans several
    dataset classes (building, house, skyscraper).
    """

    WALL = "wall"
    FLOOR = "floor"
    CEILING = "ceiling"
    FACADE = "facade"
    DOOR = "door"
    WINDOW = "window"

    @property
    def class_ids(self) -> Tuple[int, ...]:
        return _ADE20K_IDS[self]

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def color(self) -> Tuple[int, int, int]:
        """Display colour as RGB."""
        return _COLORS[self]


_ADE20K_IDS = {
    SurfaceKind.WALL: (0,),
    SurfaceKind.FLOOR: (3,),
    SurfaceKind.CEILING: (5,),
    SurfaceKind.FACADE: (1, 25, 49),
    SurfaceKind.DOOR: (14,),
    SurfaceKind.WINDOW: (8,),
}

_COLORS = {
    SurfaceKind.WALL: (69, 133, 242),
    SurfaceKind.FLOOR: (242, 153, 51),
    SurfaceKind.CEILING: (115, 217, 166),
    SurfaceKind.FACADE: (153, 102, 204),
    SurfaceKind.DOOR: (217, 89, 89),
    SurfaceKind.WINDOW: (140, 89, 230),
}


def default_class_map():
    """Kind -> class id set for every SurfaceKind, in enumeration order."""
    return {kind: kind.class_ids for kind in SurfaceKind}


@dataclass(frozen=True, eq=False)
class SurfaceMask:
    """Pixels of one surface kind on the model's class map.

    indices are flat (row-major) positions in a width x height grid, sorted
    ascending. The array is made read-only on construction.
    """

    kind: SurfaceKind
    indices: np.ndarray
    width: int
    height: int
    coverage: float  # fraction of width*height, 0..1

    def __post_init__(self):
        idx = np.array(self.indices, dtype=np.int64).ravel()
        if idx.size and (idx.min() < 0 or idx.max() >= self.width * self.height):
            raise ValueError("mask index outside the width x height grid")
        idx.setflags(write=False)
        object.__setattr__(self, 'indices', idx)

    @classmethod
    def from_stencil(cls, kind: SurfaceKind, stencil: np.ndarray) -> "SurfaceMask":
        """Build a mask from a (H, W) boolean or 0/255 image."""
        st = np.asarray(stencil)
        h, w = st.shape[:2]
        idx = np.flatnonzero(st.reshape(-1) > 0)
        return cls(kind=kind, indices=idx, width=w, height=h, coverage=idx.size / float(max(1, w * h)))

    @property
    def pixel_count(self) -> int:
        return int(self.indices.size)

    @property
    def coverage_percent(self) -> float:
        return self.coverage * 100.0

    @property
    def display_name(self) -> str:
        return self.kind.display_name

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def to_stencil(self) -> np.ndarray:
        """Return the mask as a (height, width) uint8 image, 255 inside, 0 outside."""
        st = np.zeros(self.width * self.height, dtype=np.uint8)
        st[self.indices] = 255
        return st.reshape(self.height, self.width)

    def __repr__(self):
        return (f"SurfaceMask({self.kind.value}, {self.pixel_count} px, "
                f"{self.width}×{self.height}, {self.coverage_percent:.1f}%)")

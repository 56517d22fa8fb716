"""Mapping between canvas space and pixel space.

Canvas space is where the user draws (widget points, origin top-left, y
down). Pixel space is a concrete buffer: the model's class map, the diff
scratch buffer or the full-resolution photo. Both share the same origin and
orientation, so a mapping is an independent scale per axis.

Mapping is undefined for an empty canvas size; the functions raise
ValueError and callers check ``Size.is_empty`` before using them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Tuple

import numpy as np


class Size(NamedTuple):
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @classmethod
    def of_image(cls, img) -> "Size":
        """(width, height) of an (H, W[, C]) numpy image."""
        return cls(int(img.shape[1]), int(img.shape[0]))


def _as_size(size) -> Size:
    return size if isinstance(size, Size) else Size(*size)


def scale_factor(canvas_size, pixel_size) -> Tuple[float, float]:
    """(sx, sy) multipliers taking canvas coordinates to pixel coordinates."""
    canvas_size = _as_size(canvas_size)
    pixel_size = _as_size(pixel_size)
    if canvas_size.is_empty:
        raise ValueError("canvas size is empty; mapping is undefined")
    return float(pixel_size.width) / float(canvas_size.width), float(pixel_size.height) / float(canvas_size.height)


def to_pixel_space(point, canvas_size, pixel_size) -> Tuple[float, float]:
    sx, sy = scale_factor(canvas_size, pixel_size)
    return float(point[0]) * sx, float(point[1]) * sy


def to_canvas_space(point, canvas_size, pixel_size) -> Tuple[float, float]:
    pixel_size = _as_size(pixel_size)
    if pixel_size.is_empty:
        raise ValueError("pixel size is empty; mapping is undefined")
    sx, sy = scale_factor(canvas_size, pixel_size)
    return float(point[0]) / sx, float(point[1]) / sy


@dataclass(frozen=True)
class CanvasGeometry:
    """Canvas-to-pixel mapping for one target buffer. Recomputed on every resize."""

    canvas_size: Size
    pixel_size: Size

    def __post_init__(self):
        object.__setattr__(self, 'canvas_size', _as_size(self.canvas_size))
        object.__setattr__(self, 'pixel_size', _as_size(self.pixel_size))

    @property
    def is_empty(self) -> bool:
        return self.canvas_size.is_empty or self.pixel_size.is_empty

    @property
    def scale(self) -> Tuple[float, float]:
        return scale_factor(self.canvas_size, self.pixel_size)

    @property
    def width_scale(self) -> float:
        """Brush widths scale by the mean of the two axis ratios."""
        sx, sy = self.scale
        return (sx + sy) / 2.0

    def map_points(self, points) -> np.ndarray:
        """Canvas points (N, 2) -> pixel points (N, 2) as float64."""
        sx, sy = self.scale
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        return pts * np.array([sx, sy])

    def map_width(self, width: float) -> float:
        return float(width) * self.width_scale

    def to_canvas(self, point) -> Tuple[float, float]:
        return to_canvas_space(point, self.canvas_size, self.pixel_size)

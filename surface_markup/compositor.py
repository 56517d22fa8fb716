"""Flatten photo + accepted surface + strokes into one bitmap.

The mask highlight and the strokes are accumulated in a separate premultiplied
BGRA overlay. Paint strokes blend source-over into it, erase strokes scale it
down by their coverage (so they remove highlight and earlier strokes, never the
photo), and the overlay is composited onto the photo once at the end.

Bitmaps are numpy uint8 arrays in OpenCV order: (H, W, 3) BGR, (H, W) gray
or (H, W, 4) BGRA.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from .config import MARKUP_DEFAULTS
from .errors import InvalidImageError, ResourceError, allocate
from .geometry import CanvasGeometry, Size
from .strokes import Stroke, Tool
from .surfaces import SurfaceMask

logger = logging.getLogger(__name__)

_SHIFT = 4  # cv2 sub-pixel bits for stroke vertices
_MAX_THICKNESS = 32767


def to_bgr(img: np.ndarray) -> np.ndarray:
    """Normalize a photo to (H, W, 3) uint8 BGR."""
    if img is None:
        raise InvalidImageError("no image")
    g = np.asarray(img)
    if g.ndim not in (2, 3) or g.shape[0] == 0 or g.shape[1] == 0:
        raise InvalidImageError(f"unsupported image shape {g.shape}")
    if g.dtype != np.uint8:
        g = cv2.normalize(g, None, alpha=0, beta=255, norm_type=cv2.NORM_MINMAX).astype(np.uint8)
    if g.ndim == 2:
        return cv2.cvtColor(g, cv2.COLOR_GRAY2BGR)
    if g.shape[2] == 4:
        return cv2.cvtColor(g, cv2.COLOR_BGRA2BGR)
    if g.shape[2] == 1:
        return cv2.cvtColor(g[..., 0], cv2.COLOR_GRAY2BGR)
    if g.shape[2] != 3:
        raise InvalidImageError(f"unsupported channel count {g.shape[2]}")
    return g


def rgb_to_bgr(color) -> Tuple[float, float, float]:
    return float(color[2]), float(color[1]), float(color[0])


# ---- stroke rasterization (shared with edit_diff) ----
def stroke_coverage(points_px: np.ndarray, width_px: float, shape_hw) -> Optional[tuple]:
    """Rasterize an anti-aliased round-capped polyline.

    Returns (y0, y1, x0, x1, coverage) where coverage is float32 0..1 for the
    clipped region [y0:y1, x0:x1] of a buffer with the given (H, W), or None
    when the stroke lies entirely outside it.
    """
    h, w = int(shape_hw[0]), int(shape_hw[1])
    pts = np.asarray(points_px, dtype=np.float64).reshape(-1, 2)
    if pts.shape[0] < 2 or h <= 0 or w <= 0:
        return None
    thickness = int(min(_MAX_THICKNESS, max(1, round(float(width_px)))))
    pad = thickness / 2.0 + 2.0
    x0 = int(max(0, np.floor(pts[:, 0].min() - pad)))
    y0 = int(max(0, np.floor(pts[:, 1].min() - pad)))
    x1 = int(min(w, np.ceil(pts[:, 0].max() + pad) + 1))
    y1 = int(min(h, np.ceil(pts[:, 1].max() + pad) + 1))
    if x1 <= x0 or y1 <= y0:
        return None
    roi = allocate((y1 - y0, x1 - x0), np.uint8)
    local = np.round((pts - np.array([x0, y0])) * (1 << _SHIFT)).astype(np.int32).reshape(-1, 1, 2)
    cv2.polylines(roi, [local], isClosed=False, color=255, thickness=thickness,
                  lineType=cv2.LINE_AA, shift=_SHIFT)
    return y0, y1, x0, x1, roi.astype(np.float32) / 255.0


class Overlay:
    """Premultiplied BGRA accumulation buffer (float32)."""

    def __init__(self, width: int, height: int):
        self.width = int(width)
        self.height = int(height)
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"overlay size must be positive, got {self.width}×{self.height}")
        self.color = allocate((self.height, self.width, 3), np.float32)
        self.alpha = allocate((self.height, self.width), np.float32)

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)

    def fill_stencil(self, stencil: np.ndarray, bgr):
        """Opaque fill through a (h, w) uint8 stencil of any resolution.

        The stencil is resampled bilinearly to the overlay size and used as
        coverage, so a low-resolution mask has soft rather than blocky edges.
        """
        st = stencil
        if st.shape[:2] != (self.height, self.width):
            st = cv2.resize(st, (self.width, self.height), interpolation=cv2.INTER_LINEAR)
        cov = st.astype(np.float32) / 255.0
        self._paint(cov, bgr, 1.0, (slice(None), slice(None)))

    def draw_stroke(self, stroke: Stroke, geometry: CanvasGeometry, bgr=None):
        if not stroke.is_drawable:
            return
        pts = geometry.map_points(stroke.points)
        hit = stroke_coverage(pts, geometry.map_width(stroke.width), (self.height, self.width))
        if hit is None:
            return
        y0, y1, x0, x1, cov = hit
        region = (slice(y0, y1), slice(x0, x1))
        if stroke.tool is Tool.ERASE:
            keep = 1.0 - cov
            self.color[region] *= keep[..., None]
            self.alpha[region] *= keep
        else:
            if bgr is None:
                bgr = rgb_to_bgr(stroke.color)
            self._paint(cov, bgr, stroke.alpha, region)

    def _paint(self, cov, bgr, opacity, region):
        a_s = cov * float(opacity)
        inv = 1.0 - a_s
        col = self.color[region]
        col *= inv[..., None]
        col += a_s[..., None] * np.asarray(bgr, dtype=np.float32)
        alpha = self.alpha[region]
        alpha *= inv
        alpha += a_s

    def to_bgra(self) -> np.ndarray:
        """Straight-alpha uint8 BGRA copy of the overlay."""
        a = self.alpha
        with np.errstate(divide='ignore', invalid='ignore'):
            straight = np.where(a[..., None] > 0, self.color / a[..., None], 0.0)
        out = np.empty((self.height, self.width, 4), dtype=np.uint8)
        out[..., :3] = np.clip(np.round(straight), 0, 255).astype(np.uint8)
        out[..., 3] = np.clip(np.round(a * 255.0), 0, 255).astype(np.uint8)
        return out

    def flatten_onto(self, base_bgr: np.ndarray) -> np.ndarray:
        """Composite the overlay over a same-sized BGR image in one pass."""
        base = base_bgr.astype(np.float32)
        out = self.color + base * (1.0 - self.alpha)[..., None]
        return np.clip(np.round(out), 0, 255).astype(np.uint8)


def build_overlay(
    size,
    mask: Optional[SurfaceMask],
    strokes: Sequence[Stroke],
    canvas_size,
    highlight_color=None,
) -> Overlay:
    """Render mask highlight then strokes (in commit order) into a fresh Overlay."""
    size = Size(*size)
    if highlight_color is None:
        highlight_color = MARKUP_DEFAULTS["highlight_color"]
    ov = Overlay(int(size.width), int(size.height))
    if mask is not None:
        ov.fill_stencil(mask.to_stencil(), rgb_to_bgr(highlight_color))
    drawable = [s for s in strokes if s.is_drawable]
    if drawable:
        geometry = CanvasGeometry(Size(*canvas_size), ov.size)
        if geometry.canvas_size.is_empty:
            raise ValueError("canvas size is empty; strokes cannot be mapped")
        for s in drawable:
            ov.draw_stroke(s, geometry)
    return ov


def render_composite(
    photo: np.ndarray,
    mask: Optional[SurfaceMask],
    strokes: Sequence[Stroke],
    canvas_size,
    highlight_color=None,
) -> np.ndarray:
    """Return the flattened (H, W, 3) BGR composite at the photo's native resolution."""
    base = to_bgr(photo)
    h, w = base.shape[:2]
    try:
        ov = build_overlay((w, h), mask, strokes, canvas_size, highlight_color)
        out = ov.flatten_onto(base)
    except MemoryError as e:
        raise ResourceError(f"Could not allocate a {w}×{h} render buffer") from e
    logger.debug(f"Composite {w}×{h}: mask={'yes' if mask is not None else 'no'}, strokes={len(strokes)}")
    return out


def render_mask_layer(mask: SurfaceMask, size, highlight_color=None) -> np.ndarray:
    """Highlight-only BGRA layer of the accepted surface at `size` (width, height).

    Used to preview an accepted surface on the canvas without re-rendering strokes.
    """
    size = Size(*size)
    if size.is_empty:
        raise ValueError("overlay size is empty")
    try:
        ov = build_overlay(size, mask, (), size, highlight_color)
        return ov.to_bgra()
    except MemoryError as e:
        raise ResourceError(f"Could not allocate a {int(size.width)}×{int(size.height)} overlay") from e

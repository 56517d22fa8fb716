"""Decide whether a session shows any markup, from rasterized pixels alone.

The accepted surface and the committed strokes are redrawn into a small
grayscale scratch buffer with the compositor's paint/erase rules. The session
"has markup" if any scratch pixel is brighter than a noise threshold. A
surface that has been erased completely therefore no longer counts.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from .compositor import stroke_coverage
from .config import MARKUP_DEFAULTS
from .errors import allocate
from .geometry import CanvasGeometry, Size
from .strokes import Stroke, Tool
from .surfaces import SurfaceMask

logger = logging.getLogger(__name__)


def rasterize_markup(
    mask: Optional[SurfaceMask],
    strokes: Sequence[Stroke],
    canvas_size,
    working_size=None,
) -> np.ndarray:
    """Draw mask + strokes into a float32 (H, W) scratch buffer, 0..255.

    The buffer has the mask's resolution when a mask is given, otherwise
    working_size (default 512×512). Strokes are skipped when the canvas size
    is empty, since they cannot be mapped.
    """
    if mask is not None:
        w, h = mask.width, mask.height
    else:
        if working_size is None:
            working_size = MARKUP_DEFAULTS["diff_working_size"]
        w, h = int(working_size[0]), int(working_size[1])
    scratch = allocate((h, w), np.float32)
    if mask is not None:
        scratch.reshape(-1)[mask.indices] = 255.0

    drawable = [s for s in strokes if s.is_drawable]
    if not drawable:
        return scratch
    canvas = Size(*canvas_size) if canvas_size is not None else Size(0, 0)
    if canvas.is_empty:
        logger.warning(f"Canvas size {tuple(canvas)} is empty; {len(drawable)} strokes ignored in diff")
        return scratch

    geometry = CanvasGeometry(canvas, Size(w, h))
    for s in drawable:
        hit = stroke_coverage(geometry.map_points(s.points), geometry.map_width(s.width), (h, w))
        if hit is None:
            continue
        y0, y1, x0, x1, cov = hit
        sub = scratch[y0:y1, x0:x1]
        sub *= (1.0 - cov)
        if s.tool is Tool.PAINT:
            sub += 255.0 * cov
    return scratch


def has_visible_markup(
    mask: Optional[SurfaceMask],
    strokes: Sequence[Stroke],
    canvas_size,
    working_size=None,
    noise_threshold=None,
) -> bool:
    """True if any rasterized pixel exceeds noise_threshold (default ~5% of 255)."""
    if mask is None and not any(s.is_drawable for s in strokes):
        return False
    if noise_threshold is None:
        noise_threshold = MARKUP_DEFAULTS["diff_noise_threshold"]
    scratch = rasterize_markup(mask, strokes, canvas_size, working_size)
    return bool(np.any(scratch > float(noise_threshold)))

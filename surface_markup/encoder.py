"""Fit a bitmap under a byte-size and side-length budget as JPEG.

Order of attempts:
1. downscale so the longer side is at most max_dimension
2. encode at initial_quality
3. re-encode down the quality ladder
4. shrink by shrink_factor and re-encode at shrink_quality, until the
   budget is met or min_dimension / max_shrink_iterations stops the loop

The result depends only on the input pixels and the budget, so encoding
the same bitmap twice yields identical bytes.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image

from .compositor import to_bgr
from .config import MARKUP_DEFAULTS
from .errors import BudgetExceededError, CompressionFailedError, InvalidImageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    width: int
    height: int
    quality: int
    scale: float  # final width / source width

    def __len__(self):
        return len(self.data)

    def decode(self) -> np.ndarray:
        """Decode the delivered bytes back to a BGR bitmap."""
        img = cv2.imdecode(np.frombuffer(self.data, dtype=np.uint8), cv2.IMREAD_COLOR)
        if img is None:
            raise InvalidImageError("encoded data could not be decoded")
        return img


def jpeg_bytes(bgr: np.ndarray, quality: int) -> bytes:
    """Encode a BGR bitmap as baseline JPEG with Pillow."""
    try:
        img = Image.fromarray(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB))
        buf = io.BytesIO()
        img.save(buf, format='JPEG', quality=int(quality), optimize=False)
        return buf.getvalue()
    except (OSError, ValueError, MemoryError) as e:
        raise CompressionFailedError(str(e)) from e


def resize_to_max_dimension(bgr: np.ndarray, max_dimension: int) -> np.ndarray:
    h, w = bgr.shape[:2]
    longest = max(w, h)
    if longest <= max_dimension:
        return bgr
    ratio = float(max_dimension) / float(longest)
    new_w = max(1, int(round(w * ratio)))
    new_h = max(1, int(round(h * ratio)))
    return cv2.resize(bgr, (new_w, new_h), interpolation=cv2.INTER_AREA)


def downscale(bgr: np.ndarray, factor: float) -> np.ndarray:
    h, w = bgr.shape[:2]
    new_w = max(1, int(w * factor))
    new_h = max(1, int(h * factor))
    return cv2.resize(bgr, (new_w, new_h), interpolation=cv2.INTER_AREA)


def encode_within_budget(
    bitmap: np.ndarray,
    max_bytes: int = None,
    max_dimension: int = None,
    initial_quality: int = None,
    quality_ladder=None,
    shrink_factor: float = None,
    shrink_quality: int = None,
    min_dimension: int = None,
    max_shrink_iterations: int = None,
) -> EncodedImage:
    """Encode `bitmap` as JPEG no larger than max_bytes with no side above max_dimension.

    Raises BudgetExceededError when the shrink loop hits its cap without
    meeting the byte budget; the error carries the last (smallest) encoding
    as `best`. CompressionFailedError means encoding itself failed.
    """
    d = MARKUP_DEFAULTS
    max_bytes = d["max_bytes"] if max_bytes is None else int(max_bytes)
    max_dimension = d["max_dimension"] if max_dimension is None else int(max_dimension)
    initial_quality = d["initial_quality"] if initial_quality is None else int(initial_quality)
    quality_ladder = d["quality_ladder"] if quality_ladder is None else tuple(quality_ladder)
    shrink_factor = d["shrink_factor"] if shrink_factor is None else float(shrink_factor)
    shrink_quality = d["shrink_quality"] if shrink_quality is None else int(shrink_quality)
    min_dimension = d["min_dimension"] if min_dimension is None else int(min_dimension)
    max_shrink_iterations = d["max_shrink_iterations"] if max_shrink_iterations is None else int(max_shrink_iterations)
    if max_dimension < 1:
        raise ValueError("max_dimension must be >= 1")
    if not 0.0 < shrink_factor < 1.0:
        raise ValueError("shrink_factor must be in (0, 1)")

    src = to_bgr(bitmap)
    src_w = src.shape[1]
    img = resize_to_max_dimension(src, max_dimension)

    def _result(data, quality):
        h, w = img.shape[:2]
        return EncodedImage(data=data, width=w, height=h, quality=quality, scale=w / float(src_w))

    quality = initial_quality
    data = jpeg_bytes(img, quality)
    logger.debug(f"Encode {img.shape[1]}×{img.shape[0]} q={initial_quality}: {len(data)} bytes")
    if len(data) <= max_bytes:
        return _result(data, initial_quality)

    for q in quality_ladder:
        quality = q
        data = jpeg_bytes(img, q)
        logger.debug(f"Re-encode q={q}: {len(data)} bytes")
        if len(data) <= max_bytes:
            return _result(data, q)

    for i in range(max_shrink_iterations):
        h, w = img.shape[:2]
        if min(int(w * shrink_factor), int(h * shrink_factor)) < min_dimension:
            break
        img = downscale(img, shrink_factor)
        quality = shrink_quality
        data = jpeg_bytes(img, quality)
        logger.debug(f"Shrink #{i + 1} to {img.shape[1]}×{img.shape[0]} q={shrink_quality}: {len(data)} bytes")
        if len(data) <= max_bytes:
            return _result(data, shrink_quality)

    raise BudgetExceededError(len(data), max_bytes, (img.shape[1], img.shape[0]), best=_result(data, quality))


def encode_bytes_within_budget(data: bytes, **options) -> EncodedImage:
    """Decode an encoded image (any format OpenCV reads) and re-encode it within budget."""
    arr = np.frombuffer(bytes(data), dtype=np.uint8) if data else np.zeros(0, np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED) if arr.size else None
    if img is None:
        raise InvalidImageError("data is not a decodable image")
    return encode_within_budget(img, **options)

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np

from .config import MARKUP_DEFAULTS
from .surfaces import SurfaceKind, SurfaceMask, default_class_map

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ClassTensor:
    """Segmentation output: per-class scores (C, H, W) or a class-id grid (H, W)."""

    data: np.ndarray
    is_scores: bool

    def __post_init__(self):
        arr = np.asarray(self.data)
        want = 3 if self.is_scores else 2
        if arr.ndim != want:
            raise ValueError(f"expected a {want}-D array, got shape {arr.shape}")
        object.__setattr__(self, 'data', arr)

    @property
    def width(self) -> int:
        return int(self.data.shape[-1])

    @property
    def height(self) -> int:
        return int(self.data.shape[-2])

    @property
    def num_classes(self) -> int:
        return int(self.data.shape[0]) if self.is_scores else 1

    @classmethod
    def from_model_output(cls, output) -> Optional["ClassTensor"]:
        """Interpret a raw model output array, or return None if its rank is unsupported.

        - (N, C, H, W): per-class scores, first batch item is used
        - (1, H, W): class ids
        - (C, H, W), C > 1: per-class scores
        - (H, W): class ids

        Score tensors with no classes are unsupported too.
        """
        if output is None:
            return None
        arr = np.asarray(output)
        if arr.ndim == 4:
            if arr.shape[0] < 1 or arr.shape[1] < 1:
                return None
            return cls(arr[0], is_scores=True)
        if arr.ndim == 3:
            if arr.shape[0] == 1:
                return cls(arr[0], is_scores=False)
            if arr.shape[0] == 0:
                return None
            return cls(arr, is_scores=True)
        if arr.ndim == 2:
            return cls(arr, is_scores=False)
        return None


def argmax_class_map(scores: np.ndarray, workers: int = None) -> np.ndarray:
    """Reduce (C, H, W) scores to an (H, W) int32 class-id grid.

    Ties go to the lowest class id. Rows are split into bands reduced on a
    thread pool; each band reads the shared scores and writes only its own
    output rows.
    """
    scores = np.asarray(scores)
    if scores.ndim != 3:
        raise ValueError(f"scores must be (C, H, W), got {scores.shape}")
    num_cls, h, w = scores.shape
    out = np.zeros((h, w), dtype=np.int32)
    if num_cls == 0 or h == 0:
        return out
    if workers is None:
        workers = MARKUP_DEFAULTS["reduction_workers"]
    workers = max(1, min(int(workers), h))

    def _reduce_rows(r0, r1):
        # np.argmax returns the first maximum, i.e. the lowest class id
        out[r0:r1] = np.argmax(scores[:, r0:r1, :], axis=0)

    bounds = np.linspace(0, h, workers + 1).astype(int)
    bands = [(int(a), int(b)) for a, b in zip(bounds[:-1], bounds[1:]) if b > a]
    if len(bands) == 1:
        _reduce_rows(*bands[0])
        return out
    with ThreadPoolExecutor(max_workers=len(bands)) as pool:
        for fut in [pool.submit(_reduce_rows, a, b) for a, b in bands]:
            fut.result()
    return out


def extract_surfaces(
    tensor,
    class_map: Optional[Mapping[SurfaceKind, Sequence[int]]] = None,
    min_coverage: Optional[float] = None,
    workers: Optional[int] = None,
):
    """Turn a class tensor into SurfaceMasks, one per kind meeting min_coverage.

    `tensor` may be a ClassTensor or a raw model output array. Unsupported
    shapes return an empty list rather than raising: detection is an optional
    enrichment and "nothing found" is a valid outcome. Output order follows the
    class_map iteration order (SurfaceKind order by default).
    """
    if not isinstance(tensor, ClassTensor):
        try:
            tensor = ClassTensor.from_model_output(tensor)
        except (TypeError, ValueError):
            tensor = None
    if tensor is None or (tensor.is_scores and tensor.num_classes == 0):
        logger.debug("Unsupported class tensor; no surfaces extracted")
        return []
    if class_map is None:
        class_map = default_class_map()
    if min_coverage is None:
        min_coverage = MARKUP_DEFAULTS["min_coverage"]

    w, h = tensor.width, tensor.height
    total = w * h
    if total == 0:
        return []

    if tensor.is_scores:
        ids = argmax_class_map(tensor.data, workers=workers)
    else:
        ids = np.asarray(tensor.data).astype(np.int64, copy=False)
    flat_ids = ids.reshape(-1)

    result = []
    for kind, class_ids in class_map.items():
        idx = np.flatnonzero(np.isin(flat_ids, np.asarray(list(class_ids))))
        coverage = idx.size / float(total)
        if coverage < min_coverage:
            logger.debug(f"{kind.display_name}: {coverage * 100:.2f}% below threshold, dropped")
            continue
        result.append(SurfaceMask(kind=kind, indices=idx, width=w, height=h, coverage=coverage))
        logger.debug(f"{kind.display_name}: {coverage * 100:.1f}% ({idx.size} px)")
    return result


def find_surface(surfaces, kind: SurfaceKind) -> Optional[SurfaceMask]:
    """First mask of the requested kind, or None when it was not detected."""
    for s in surfaces:
        if s.kind == kind:
            return s
    return None

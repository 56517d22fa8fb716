from __future__ import annotations

import logging
import os
from typing import Callable, Optional

import cv2
import numpy as np

from .compositor import to_bgr
from .config import MARKUP_DEFAULTS
from .errors import (
    InvalidImageError,
    ModelNotFoundError,
    ModelNotLoadedError,
    NoResultsError,
)
from .mask_extraction import extract_surfaces

logger = logging.getLogger(__name__)


class SurfaceDetector:
    """Adapter around a black-box segmentation model.

    `model` is any callable taking an (H, W, 3) uint8 RGB array at
    model_input_size and returning a class tensor (scores or class ids) as an
    array-like. The detector resizes the photo, runs the model and extracts
    surface masks from its output.
    """

    def __init__(
        self,
        model: Optional[Callable[[np.ndarray], object]] = None,
        model_input_size=None,
        min_coverage: float = None,
        class_map=None,
    ):
        self.model = model
        self.model_input_size = tuple(model_input_size or MARKUP_DEFAULTS["model_input_size"])
        self.min_coverage = MARKUP_DEFAULTS["min_coverage"] if min_coverage is None else float(min_coverage)
        self.class_map = class_map

    @classmethod
    def from_path(cls, path: str, loader: Callable[[str], Callable], **kwargs) -> "SurfaceDetector":
        """Load a model file with `loader`; ModelNotFoundError if the file is missing."""
        if not path or not os.path.exists(path):
            raise ModelNotFoundError(os.path.splitext(os.path.basename(path or ''))[0] or str(path))
        model = loader(path)
        logger.info(f"Loaded segmentation model: {os.path.basename(path)}")
        return cls(model=model, **kwargs)

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    def prepare_input(self, image: np.ndarray) -> np.ndarray:
        try:
            bgr = to_bgr(image)
        except (TypeError, ValueError, cv2.error) as e:
            raise InvalidImageError(str(e)) from e
        w, h = self.model_input_size
        resized = cv2.resize(bgr, (int(w), int(h)), interpolation=cv2.INTER_LINEAR)
        return cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)

    def run_model(self, image: np.ndarray):
        if self.model is None:
            raise ModelNotLoadedError()
        model_input = self.prepare_input(image)
        output = self.model(model_input)
        if output is None or np.asarray(output).size == 0:
            raise NoResultsError()
        return output

    def detect(self, image: np.ndarray):
        """Return the SurfaceMasks found in `image` (possibly an empty list)."""
        output = self.run_model(image)
        surfaces = extract_surfaces(output, class_map=self.class_map, min_coverage=self.min_coverage)
        logger.info(f"Detected {len(surfaces)} surfaces: {', '.join(s.display_name for s in surfaces) or 'none'}")
        return surfaces

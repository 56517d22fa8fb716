"""Exceptions raised by the markup pipeline.

Every exception carries the short user-facing message shown in the editor's
status bar. Unsupported class-tensor shapes are deliberately NOT an error:
mask extraction is best-effort and degrades to "no surfaces detected".
"""
import numpy as np


class MarkupError(Exception):
    """Base class for all markup pipeline failures."""


# ---- detection ----
class DetectorError(MarkupError):
    pass


class ModelNotFoundError(DetectorError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Model '{name}' not found")


class ModelNotLoadedError(DetectorError):
    def __init__(self):
        super().__init__("Model not loaded")


class InvalidImageError(DetectorError):
    def __init__(self, detail=None):
        self.detail = detail
        super().__init__("Invalid image" if not detail else f"Invalid image: {detail}")


class NoResultsError(DetectorError):
    def __init__(self):
        super().__init__("No results")


# ---- resources ----
class ResourceError(MarkupError):
    """A buffer could not be allocated or a required file could not be read."""


# ---- encoding ----
class ImageProcessingError(MarkupError):
    pass


class CompressionFailedError(ImageProcessingError):
    def __init__(self, detail=None):
        self.detail = detail
        super().__init__("Compression failed" if not detail else f"Compression failed: {detail}")


class BudgetExceededError(CompressionFailedError):
    """The byte budget was still exceeded when the shrink loop hit its cap."""

    def __init__(self, size, max_bytes, dimensions, best=None):
        self.size = size
        self.max_bytes = max_bytes
        self.dimensions = dimensions
        # smallest encoding produced before the loop stopped (an EncodedImage)
        self.best = best
        super().__init__(
            f"{size} bytes at {dimensions[0]}×{dimensions[1]} still exceeds the {max_bytes} byte limit"
        )


def allocate(shape, dtype, fill=0):
    """np.full wrapper that turns MemoryError into ResourceError."""
    try:
        return np.full(shape, fill, dtype=dtype)
    except MemoryError as e:
        raise ResourceError(f"Could not allocate buffer of shape {tuple(shape)}") from e

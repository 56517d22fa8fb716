"""
Markup pipeline configuration and default parameters.

All numeric defaults used by the extractor, compositor, diff engine and
encoder live here. Modules import from this module rather than hardcoding
values; callers override per call with keyword arguments or through a
MarkupConfig built with ``MarkupConfig.from_defaults(**overrides)``.
"""
from dataclasses import dataclass, fields
from typing import Tuple

MARKUP_DEFAULTS = {
    # Mask extraction
    "min_coverage": 0.01,
    # Surfaces covering less than this fraction of the class map are dropped.
    # The comparison is inclusive: coverage == min_coverage is kept.

    "model_input_size": (1024, 1024),
    # (width, height) the photo is resized to before it is handed to the model.

    "reduction_workers": 4,
    # Threads used for the row-parallel argmax over per-class scores.

    # Drawing
    "highlight_color": (190, 190, 190),
    # RGB of the accepted-surface highlight; also the default brush colour.

    "brush_width": 40.0,
    "eraser_width": 60.0,
    "brush_width_range": (10.0, 100.0),
    # Widths are in canvas units.

    # Edit diff
    "diff_working_size": (512, 512),
    # Scratch buffer (width, height) when no surface mask is accepted.

    "diff_noise_threshold": 12,
    # Scratch pixels above this value (~5% of 255) count as visible markup.
    # Anti-aliased stroke fringes stay below it.

    # Size-constrained encoding
    "max_bytes": 10 * 1024 * 1024,
    "max_dimension": 4096,
    "initial_quality": 90,
    "quality_ladder": (80, 70, 60, 50, 40, 30, 20, 10),
    "shrink_factor": 0.9,
    "shrink_quality": 70,
    "min_dimension": 16,
    "max_shrink_iterations": 64,
    # The shrink loop stops at whichever of min_dimension/max_shrink_iterations
    # is reached first and reports BudgetExceededError.
}


def get_min_coverage() -> float:
    return MARKUP_DEFAULTS["min_coverage"]


def get_highlight_color() -> Tuple[int, int, int]:
    """RGB highlight colour used for accepted surfaces and the default brush."""
    return MARKUP_DEFAULTS["highlight_color"]


def get_diff_working_size() -> Tuple[int, int]:
    return MARKUP_DEFAULTS["diff_working_size"]


@dataclass(frozen=True)
class MarkupConfig:
    """Snapshot of the tunables a MarkupSession hands to each pipeline stage."""

    min_coverage: float = MARKUP_DEFAULTS["min_coverage"]
    model_input_size: Tuple[int, int] = MARKUP_DEFAULTS["model_input_size"]
    reduction_workers: int = MARKUP_DEFAULTS["reduction_workers"]
    highlight_color: Tuple[int, int, int] = MARKUP_DEFAULTS["highlight_color"]
    brush_width: float = MARKUP_DEFAULTS["brush_width"]
    eraser_width: float = MARKUP_DEFAULTS["eraser_width"]
    brush_width_range: Tuple[float, float] = MARKUP_DEFAULTS["brush_width_range"]
    diff_working_size: Tuple[int, int] = MARKUP_DEFAULTS["diff_working_size"]
    diff_noise_threshold: int = MARKUP_DEFAULTS["diff_noise_threshold"]
    max_bytes: int = MARKUP_DEFAULTS["max_bytes"]
    max_dimension: int = MARKUP_DEFAULTS["max_dimension"]
    initial_quality: int = MARKUP_DEFAULTS["initial_quality"]
    quality_ladder: Tuple[int, ...] = MARKUP_DEFAULTS["quality_ladder"]
    shrink_factor: float = MARKUP_DEFAULTS["shrink_factor"]
    shrink_quality: int = MARKUP_DEFAULTS["shrink_quality"]
    min_dimension: int = MARKUP_DEFAULTS["min_dimension"]
    max_shrink_iterations: int = MARKUP_DEFAULTS["max_shrink_iterations"]

    @classmethod
    def from_defaults(cls, **overrides) -> "MarkupConfig":
        """Build a config from MARKUP_DEFAULTS, replacing any given keys.

        Unknown keys raise TypeError so typos do not silently fall back to
        defaults.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown markup config keys: {sorted(unknown)}")
        values = {name: MARKUP_DEFAULTS[name] for name in known}
        values.update(overrides)
        return cls(**values)

    def encoder_options(self) -> dict:
        """Keyword arguments accepted by encoder.encode_within_budget."""
        return {
            "max_bytes": self.max_bytes,
            "max_dimension": self.max_dimension,
            "initial_quality": self.initial_quality,
            "quality_ladder": self.quality_ladder,
            "shrink_factor": self.shrink_factor,
            "shrink_quality": self.shrink_quality,
            "min_dimension": self.min_dimension,
            "max_shrink_iterations": self.max_shrink_iterations,
        }

"""Editable markup session: accepted surface + stroke ledger + derived state.

All state changes go through the session lock. Expensive work (edit diff,
auto-detect, finalize) runs on daemon threads against a snapshot taken at
request time; completions are handed to `dispatch` (for the Tk editor,
``widget.after(0, fn)``) so results land on the interactive thread.

Each ledger or mask mutation bumps a revision number. A diff result is only
applied if its revision is newer than the last applied one, so diffs that
finish out of order never overwrite a fresher answer.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np

from .compositor import render_composite, render_mask_layer
from .config import MarkupConfig
from .edit_diff import has_visible_markup
from .encoder import EncodedImage, encode_within_budget
from .errors import BudgetExceededError, MarkupError
from .geometry import Size
from .mask_extraction import find_surface
from .strokes import Stroke, StrokeLedger, Tool
from .surfaces import SurfaceKind, SurfaceMask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditorMode:
    """MANUAL_ONLY, or auto-detect of one target surface kind."""

    target: Optional[SurfaceKind] = None

    @property
    def is_auto_detect(self) -> bool:
        return self.target is not None

    @classmethod
    def auto_detect(cls, kind: SurfaceKind) -> "EditorMode":
        return cls(target=kind)


EditorMode.MANUAL_ONLY = EditorMode()


@dataclass(frozen=True)
class MarkupResult:
    image: np.ndarray  # BGR bitmap decoded from image_data
    image_data: bytes
    encoded: EncodedImage


@dataclass(frozen=True)
class _Snapshot:
    revision: int
    mask: Optional[SurfaceMask]
    strokes: tuple
    canvas_size: Size


def _call_now(fn):
    fn()


class MarkupSession:
    def __init__(
        self,
        mode: EditorMode = EditorMode.MANUAL_ONLY,
        config: MarkupConfig = None,
        dispatch: Callable[[Callable[[], None]], None] = None,
        on_change: Callable[["MarkupSession"], None] = None,
    ):
        self.mode = mode
        self.config = config or MarkupConfig.from_defaults()
        self._dispatch = dispatch or _call_now
        self._on_change = on_change
        self._lock = threading.RLock()

        self._ledger = StrokeLedger()
        self._mask: Optional[SurfaceMask] = None
        self._canvas_size = Size(0, 0)
        self._tool = Tool.PAINT
        self._widths = {Tool.PAINT: float(self.config.brush_width), Tool.ERASE: float(self.config.eraser_width)}

        self._revision = 0
        self._applied_revision = 0
        self._has_markup = False
        self._workers: List[threading.Thread] = []

        self.is_processing = mode.is_auto_detect
        self.processing_status = "Analyzing..." if mode.is_auto_detect else ""
        self.error_message: Optional[str] = None

    # ---- read-only derived state ----
    @property
    def has_markup(self) -> bool:
        return self._has_markup

    @property
    def can_undo(self) -> bool:
        return self._ledger.can_undo

    @property
    def can_redo(self) -> bool:
        return self._ledger.can_redo

    @property
    def strokes(self):
        return self._ledger.strokes

    @property
    def mask(self) -> Optional[SurfaceMask]:
        return self._mask

    @property
    def canvas_size(self) -> Size:
        return self._canvas_size

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def tool(self) -> Tool:
        return self._tool

    @property
    def current_width(self) -> float:
        return self._widths[self._tool]

    @property
    def brush_color(self):
        return (*self.config.highlight_color, 1.0)

    # ---- tool state ----
    def select_tool(self, tool: Tool):
        with self._lock:
            self._tool = Tool(tool)
        self._notify()

    def set_brush_width(self, width: float):
        """Set the width of the selected tool, clamped to brush_width_range."""
        lo, hi = self.config.brush_width_range
        with self._lock:
            self._widths[self._tool] = float(min(hi, max(lo, float(width))))
        self._notify()

    def update_canvas_size(self, size):
        size = Size(*size)
        with self._lock:
            if size == self._canvas_size:
                return
            self._canvas_size = size
            snap = self._bump()
        self._schedule_diff(snap)

    # ---- ledger / mask mutations ----
    def add_stroke(self, points: Sequence, tool: Tool = None, width: float = None, color=None) -> Optional[Stroke]:
        """Commit a stroke built from canvas points; strokes under 2 points are dropped."""
        points = tuple(points)
        if len(points) < 2:
            logger.debug(f"Dropped stroke with {len(points)} point(s)")
            return None
        stroke = Stroke(
            points=points,
            tool=self._tool if tool is None else Tool(tool),
            width=self.current_width if width is None else float(width),
            color=self.brush_color if color is None else tuple(color),
        )
        return self.commit_stroke(stroke)

    def commit_stroke(self, stroke: Stroke) -> Optional[Stroke]:
        if not stroke.is_drawable:
            logger.debug(f"Dropped stroke with {len(stroke.points)} point(s)")
            return None
        with self._lock:
            self._ledger.commit(stroke)
            snap = self._bump()
        self._schedule_diff(snap)
        return stroke

    def undo(self):
        with self._lock:
            if not self._ledger.can_undo:
                return
            self._ledger.undo()
            snap = self._bump()
        self._schedule_diff(snap)

    def redo(self):
        with self._lock:
            if not self._ledger.can_redo:
                return
            self._ledger.redo()
            snap = self._bump()
        self._schedule_diff(snap)

    def accept_detected_mask(self, mask: Optional[SurfaceMask]):
        """Make `mask` the active auto markup (None removes it)."""
        with self._lock:
            self._mask = mask
            snap = self._bump()
        self._schedule_diff(snap)

    def reset(self):
        """Drop strokes, redo history and the accepted surface (a new photo)."""
        with self._lock:
            self._ledger.clear()
            self._mask = None
            self.error_message = None
            snap = self._bump()
        self._schedule_diff(snap)

    def _bump(self) -> _Snapshot:
        self._revision += 1
        return _Snapshot(self._revision, self._mask, self._ledger.strokes, self._canvas_size)

    # ---- has-markup recomputation ----
    def _schedule_diff(self, snap: _Snapshot):
        self._notify()
        if snap.mask is None and not snap.strokes:
            self._apply_diff(snap.revision, False)
            return
        t = threading.Thread(target=self._diff_worker, args=(snap,), daemon=True)
        with self._lock:
            self._workers = [w for w in self._workers if w.is_alive()]
            self._workers.append(t)
        t.start()

    def _diff_worker(self, snap: _Snapshot):
        try:
            result = has_visible_markup(
                snap.mask, snap.strokes, snap.canvas_size,
                working_size=self.config.diff_working_size,
                noise_threshold=self.config.diff_noise_threshold,
            )
        except MarkupError as e:
            logger.error(f"Edit diff failed at revision {snap.revision}: {e}")
            return
        self._dispatch(lambda: self._apply_diff(snap.revision, result))

    def _apply_diff(self, revision: int, result: bool):
        with self._lock:
            if revision <= self._applied_revision:
                logger.debug(f"Discarded stale diff r{revision} (applied r{self._applied_revision})")
                return
            self._applied_revision = revision
            changed = result != self._has_markup
            self._has_markup = result
        logger.debug(f"has_markup={result} at r{revision}")
        if changed:
            self._notify()

    def wait_for_diffs(self, timeout: float = None):
        """Block until in-flight diff threads finish (used by tests and shutdown)."""
        with self._lock:
            workers = list(self._workers)
        for t in workers:
            t.join(timeout)

    def recompute_has_markup(self) -> bool:
        """Synchronous diff of the current state; applies and returns the result."""
        with self._lock:
            snap = _Snapshot(self._revision, self._mask, self._ledger.strokes, self._canvas_size)
        result = has_visible_markup(
            snap.mask, snap.strokes, snap.canvas_size,
            working_size=self.config.diff_working_size,
            noise_threshold=self.config.diff_noise_threshold,
        )
        with self._lock:
            if snap.revision >= self._applied_revision:
                self._applied_revision = snap.revision
                self._has_markup = result
        return result

    # ---- rendering ----
    def mask_overlay(self, size) -> Optional[np.ndarray]:
        """BGRA highlight layer of the accepted surface at `size`, or None."""
        mask = self._mask
        if mask is None or Size(*size).is_empty:
            return None
        return render_mask_layer(mask, size, self.config.highlight_color)

    def preview(self, photo: np.ndarray, canvas_size=None) -> Optional[np.ndarray]:
        """Un-encoded composite of the current state."""
        canvas = Size(*canvas_size) if canvas_size is not None else self._canvas_size
        if canvas.is_empty:
            return None
        with self._lock:
            mask, strokes = self._mask, self._ledger.strokes
        return render_composite(photo, mask, strokes, canvas, self.config.highlight_color)

    def finalize(self, photo: np.ndarray, canvas_size=None) -> Optional[MarkupResult]:
        """Render the full-resolution composite and encode it within budget.

        Outcomes:
        - MarkupResult on success. If the byte budget cannot be met after the
          capped shrink loop, the smallest encoding produced is returned and a
          warning is logged.
        - None when the canvas size is unknown (nothing can be mapped);
          error_message is set.
        - MarkupError (ResourceError, CompressionFailedError, ...) when
          rendering or encoding cannot proceed; error_message is set.
        """
        canvas = Size(*canvas_size) if canvas_size is not None else self._canvas_size
        if canvas.is_empty:
            self.error_message = "Canvas size unknown"
            return None
        with self._lock:
            mask, strokes = self._mask, self._ledger.strokes
            self.is_processing = True
            self.processing_status = "Preparing..."
        self._notify()
        try:
            composite = render_composite(photo, mask, strokes, canvas, self.config.highlight_color)
            self.processing_status = "Compressing..."
            self._notify()
            try:
                encoded = encode_within_budget(composite, **self.config.encoder_options())
            except BudgetExceededError as e:
                if e.best is None:
                    raise
                logger.warning(f"Byte budget not met, delivering best effort: {e}")
                encoded = e.best
            result = MarkupResult(image=encoded.decode(), image_data=encoded.data, encoded=encoded)
            logger.info(f"Finalized {encoded.width}×{encoded.height}, {len(encoded)} bytes, q={encoded.quality}")
            return result
        except MarkupError as e:
            self.error_message = str(e)
            logger.error(f"Finalize failed: {e}")
            raise
        finally:
            with self._lock:
                self.is_processing = False
                self.processing_status = ""
            self._notify()

    def start_finalize(self, photo, canvas_size=None, on_done=None, on_error=None) -> threading.Thread:
        """Run finalize() on a daemon thread; callbacks go through dispatch.

        on_done always receives a MarkupResult. Every failure, including an
        unknown canvas size, goes to on_error as a MarkupError.
        """
        def _worker():
            try:
                result = self.finalize(photo, canvas_size)
                if result is None:
                    raise MarkupError(self.error_message or "Nothing to export")
            except MarkupError as e:
                if on_error is not None:
                    self._dispatch(lambda: on_error(e))
                return
            if on_done is not None:
                self._dispatch(lambda: on_done(result))

        t = threading.Thread(target=_worker, daemon=True)
        t.start()
        return t

    # ---- auto detect ----
    def run_auto_detect(self, image: np.ndarray, detector, on_done=None, background: bool = True):
        """Detect the mode's target surface and accept it.

        Sets error_message to "<Kind> not detected — draw manually" when the
        surface is absent, or to the detector's message when detection fails.
        The session stays usable for manual drawing either way.
        """
        if not self.mode.is_auto_detect:
            raise ValueError("run_auto_detect requires an auto-detect EditorMode")
        with self._lock:
            self.is_processing = True
            self.processing_status = "Analyzing..."
            self.error_message = None
            self._mask = None
            snap = self._bump()
        self._schedule_diff(snap)

        def _work():
            target = self.mode.target
            try:
                found = find_surface(detector.detect(image), target)
                error = None if found is not None else f"{target.display_name} not detected — draw manually"
            except MarkupError as e:
                found, error = None, str(e)
            self._dispatch(lambda: self._finish_auto_detect(found, error, on_done))

        if not background:
            _work()
            return None
        t = threading.Thread(target=_work, daemon=True)
        t.start()
        return t

    def _finish_auto_detect(self, found, error, on_done):
        with self._lock:
            self.is_processing = False
            self.processing_status = ""
            self.error_message = error
        if found is not None:
            self.accept_detected_mask(found)
        else:
            self._notify()
        if error:
            logger.info(error)
        if on_done is not None:
            on_done(found)

    def _notify(self):
        if self._on_change is not None:
            self._dispatch(lambda: self._on_change(self))

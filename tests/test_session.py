import numpy as np
import pytest

from surface_markup import (
    EditorMode,
    MarkupConfig,
    MarkupSession,
    SurfaceDetector,
    SurfaceKind,
    Tool,
    render_composite,
)
from surface_markup.errors import InvalidImageError, MarkupError

CANVAS = (120, 80)


def _session(**config):
    s = MarkupSession(config=MarkupConfig.from_defaults(**config) if config else None)
    s.update_canvas_size(CANVAS)
    s.wait_for_diffs(5)
    return s


def _line(y=40):
    return [(10, y), (60, y), (110, y)]


class TestRevisions:
    def test_initial_state(self):
        s = MarkupSession()
        assert not s.has_markup
        assert not s.can_undo and not s.can_redo
        assert s.revision == 0
        assert s.canvas_size.is_empty

    def test_stroke_sets_has_markup(self):
        s = _session()
        r0 = s.revision
        stroke = s.add_stroke(_line())
        assert stroke is not None
        assert s.revision == r0 + 1
        s.wait_for_diffs(5)
        assert s.has_markup
        assert s.can_undo

    def test_undo_clears_has_markup(self):
        s = _session()
        s.add_stroke(_line())
        s.wait_for_diffs(5)
        s.undo()
        s.wait_for_diffs(5)
        assert not s.has_markup
        assert s.can_redo
        s.redo()
        s.wait_for_diffs(5)
        assert s.has_markup

    def test_degenerate_stroke_is_dropped(self):
        s = _session()
        r0 = s.revision
        assert s.add_stroke([(5, 5)]) is None
        assert s.add_stroke([]) is None
        assert s.revision == r0
        assert not s.can_undo

    def test_stale_diff_results_are_discarded(self):
        s = MarkupSession()
        s._apply_diff(5, True)
        s._apply_diff(3, False)
        assert s.has_markup
        s._apply_diff(6, False)
        assert not s.has_markup

    def test_erase_over_accepted_mask(self, left_half_wall):
        s = _session()
        s.accept_detected_mask(left_half_wall)
        s.wait_for_diffs(5)
        assert s.has_markup
        s.add_stroke([(0, 40), (120, 40)], tool=Tool.ERASE, width=300)
        s.wait_for_diffs(5)
        assert not s.has_markup
        assert s.recompute_has_markup() is False

    def test_reset_starts_a_clean_edit(self, left_half_wall):
        """Loading another photo drops strokes, redo history and the surface."""
        s = _session()
        s.accept_detected_mask(left_half_wall)
        s.add_stroke(_line())
        s.add_stroke(_line(60))
        s.undo()
        s.wait_for_diffs(5)
        r0 = s.revision
        s.reset()
        s.wait_for_diffs(5)
        assert s.strokes == ()
        assert s.mask is None
        assert not s.can_undo and not s.can_redo
        assert not s.has_markup
        assert s.revision == r0 + 1

    def test_on_change_is_notified(self):
        calls = []
        s = MarkupSession(on_change=calls.append)
        s.update_canvas_size(CANVAS)
        s.add_stroke(_line())
        s.wait_for_diffs(5)
        assert calls and all(c is s for c in calls)

    def test_dispatch_receives_completions(self):
        queued = []
        s = MarkupSession(dispatch=queued.append)
        s.update_canvas_size(CANVAS)
        s.add_stroke(_line())
        s.wait_for_diffs(5)
        assert not s.has_markup
        for fn in list(queued):
            fn()
        assert s.has_markup


class TestTools:
    def test_widths_follow_selected_tool(self):
        s = MarkupSession()
        assert s.tool is Tool.PAINT
        assert s.current_width == 40.0
        s.select_tool(Tool.ERASE)
        assert s.current_width == 60.0
        s.set_brush_width(500)
        assert s.current_width == 100.0
        s.select_tool(Tool.PAINT)
        assert s.current_width == 40.0
        s.set_brush_width(1)
        assert s.current_width == 10.0

    def test_new_strokes_use_tool_defaults(self):
        s = _session()
        s.select_tool(Tool.ERASE)
        stroke = s.add_stroke(_line())
        assert stroke.tool is Tool.ERASE
        assert stroke.width == 60.0
        assert stroke.color == (190, 190, 190, 1.0)


class TestRendering:
    def test_mask_overlay(self, left_half_wall):
        s = MarkupSession()
        assert s.mask_overlay((60, 30)) is None
        s.accept_detected_mask(left_half_wall)
        s.wait_for_diffs(5)
        layer = s.mask_overlay((60, 30))
        assert layer.shape == (30, 60, 4)

    def test_preview_matches_compositor(self, gray_photo, left_half_wall):
        s = _session()
        s.accept_detected_mask(left_half_wall)
        s.add_stroke(_line())
        s.wait_for_diffs(5)
        expected = render_composite(gray_photo, left_half_wall, s.strokes, CANVAS)
        np.testing.assert_array_equal(s.preview(gray_photo), expected)

    def test_preview_without_canvas(self, gray_photo):
        assert MarkupSession().preview(gray_photo) is None


class TestFinalize:
    def test_returns_decoded_bitmap_and_bytes(self, gray_photo):
        s = _session()
        s.add_stroke(_line())
        result = s.finalize(gray_photo)
        assert result.image.shape == gray_photo.shape
        assert result.image_data[:2] == b'\xff\xd8'
        assert result.encoded.quality == 90
        assert not s.is_processing
        s.wait_for_diffs(5)

    def test_empty_canvas_returns_none(self, gray_photo):
        s = MarkupSession()
        assert s.finalize(gray_photo) is None
        assert s.error_message == "Canvas size unknown"

    def test_budget_miss_delivers_smallest_encoding(self, noise_photo):
        s = _session(max_bytes=1)
        s.add_stroke(_line())
        result = s.finalize(noise_photo)
        assert result is not None
        assert len(result.image_data) > 1
        assert min(result.encoded.width, result.encoded.height) >= 16
        assert result.encoded.width < noise_photo.shape[1]
        assert result.image.shape == (result.encoded.height, result.encoded.width, 3)
        assert s.error_message is None
        assert not s.is_processing
        s.wait_for_diffs(5)

    def test_unchanged_session_gives_identical_bytes(self, noise_photo):
        """Two finalize runs over the same state deliver the same bytes."""
        s = _session(max_bytes=40_000)
        s.add_stroke(_line())
        s.wait_for_diffs(5)
        first = s.finalize(noise_photo)
        second = s.finalize(noise_photo)
        assert first.encoded.quality < 90
        assert first.image_data == second.image_data

    def test_start_finalize_runs_in_background(self, gray_photo):
        s = _session()
        done, failed = [], []
        t = s.start_finalize(gray_photo, on_done=done.append, on_error=failed.append)
        t.join(10)
        assert not failed
        assert done[0].image.shape == gray_photo.shape

    def test_start_finalize_best_effort_is_done(self, noise_photo):
        s = _session(max_bytes=1)
        done, failed = [], []
        s.start_finalize(noise_photo, on_done=done.append, on_error=failed.append).join(10)
        assert not failed
        assert len(done[0].image_data) > 1

    def test_start_finalize_unknown_canvas_is_error(self, gray_photo):
        s = MarkupSession()
        done, failed = [], []
        s.start_finalize(gray_photo, on_done=done.append, on_error=failed.append).join(10)
        assert not done
        assert isinstance(failed[0], MarkupError)
        assert str(failed[0]) == "Canvas size unknown"

    def test_render_failure_raises_and_sets_error(self):
        s = _session()
        with pytest.raises(InvalidImageError):
            s.finalize(np.zeros((0, 0, 3), dtype=np.uint8))
        assert s.error_message
        assert not s.is_processing


class _Model:
    def __init__(self, ids):
        self.ids = ids

    def __call__(self, image):
        return self.ids


class TestAutoDetect:
    def _detector(self, class_id):
        return SurfaceDetector(_Model(np.full((16, 16), class_id, dtype=np.int64)), model_input_size=(16, 16))

    def test_accepts_target_surface(self, gray_photo):
        s = MarkupSession(mode=EditorMode.auto_detect(SurfaceKind.WALL))
        assert s.is_processing
        found = []
        s.run_auto_detect(gray_photo, self._detector(0), on_done=found.append, background=False)
        s.wait_for_diffs(5)
        assert found[0].kind is SurfaceKind.WALL
        assert s.mask is found[0]
        assert s.error_message is None
        assert not s.is_processing
        assert s.has_markup

    def test_missing_surface_message(self, gray_photo):
        s = MarkupSession(mode=EditorMode.auto_detect(SurfaceKind.FLOOR))
        s.run_auto_detect(gray_photo, self._detector(0), background=False)
        assert s.mask is None
        assert s.error_message == "Floor not detected — draw manually"

    def test_detector_error_message(self, gray_photo):
        s = MarkupSession(mode=EditorMode.auto_detect(SurfaceKind.WALL))
        s.run_auto_detect(gray_photo, SurfaceDetector(), background=False)
        assert s.error_message == "Model not loaded"
        assert not s.is_processing

    def test_background_run(self, gray_photo):
        s = MarkupSession(mode=EditorMode.auto_detect(SurfaceKind.WALL))
        s.run_auto_detect(gray_photo, self._detector(0)).join(10)
        assert s.mask is not None

    def test_requires_auto_detect_mode(self, gray_photo):
        with pytest.raises(ValueError):
            MarkupSession().run_auto_detect(gray_photo, self._detector(0))

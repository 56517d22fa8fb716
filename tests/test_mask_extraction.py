import numpy as np
import pytest

from surface_markup import (
    ClassTensor,
    SurfaceKind,
    argmax_class_map,
    extract_surfaces,
    find_surface,
)


class TestArgmax:
    def test_ties_go_to_lowest_class_id(self):
        """Equal scores resolve to the lowest class id."""
        scores = np.zeros((3, 4, 5), dtype=np.float32)
        scores[1] = 1.0
        scores[2] = 1.0
        ids = argmax_class_map(scores, workers=2)
        assert ids.dtype == np.int32
        assert np.all(ids == 1)

    def test_result_independent_of_worker_count(self):
        rng = np.random.default_rng(3)
        scores = rng.random((6, 37, 23)).astype(np.float32)
        expected = np.argmax(scores, axis=0)
        for workers in (1, 2, 4, 16, 100):
            np.testing.assert_array_equal(argmax_class_map(scores, workers=workers), expected)

    def test_rejects_wrong_rank(self):
        with pytest.raises(ValueError):
            argmax_class_map(np.zeros((4, 4)))


class TestExtractSurfaces:
    def test_checkerboard_half_coverage(self):
        """4x4 checkerboard of classes 0/1: class 0 covers 8 pixels, 50%."""
        ids = (np.indices((4, 4)).sum(axis=0) % 2).astype(np.int64)
        wall_only = {SurfaceKind.WALL: [0]}
        masks = extract_surfaces(ClassTensor(ids, is_scores=False), class_map=wall_only, min_coverage=0.3)
        assert len(masks) == 1
        m = masks[0]
        assert m.kind is SurfaceKind.WALL
        assert m.pixel_count == 8
        assert m.coverage == pytest.approx(0.5)
        np.testing.assert_array_equal(m.indices, np.flatnonzero(ids.ravel() == 0))

    def test_threshold_is_inclusive(self):
        ids = np.full((10, 10), 3, dtype=np.int64)
        ids[0, :5] = 0  # 5 of 100 pixels
        masks = extract_surfaces(ids, min_coverage=0.05)
        assert find_surface(masks, SurfaceKind.WALL) is not None
        masks = extract_surfaces(ids, min_coverage=0.06)
        assert find_surface(masks, SurfaceKind.WALL) is None
        assert find_surface(masks, SurfaceKind.FLOOR).coverage == pytest.approx(0.95)

    def test_multi_id_kind_and_order(self):
        """Facade collects all of its class ids; output follows SurfaceKind order."""
        ids = np.array([[1, 25, 49, 8],
                        [0, 0, 3, 3]], dtype=np.int64)
        masks = extract_surfaces(ids, min_coverage=0.0)
        kinds = [m.kind for m in masks]
        assert kinds == [SurfaceKind.WALL, SurfaceKind.FLOOR, SurfaceKind.CEILING,
                         SurfaceKind.FACADE, SurfaceKind.DOOR, SurfaceKind.WINDOW]
        facade = find_surface(masks, SurfaceKind.FACADE)
        np.testing.assert_array_equal(facade.indices, [0, 1, 2])

    def test_scores_are_reduced_by_argmax(self):
        scores = np.zeros((4, 2, 2), dtype=np.float32)
        scores[3] = 0.9  # floor everywhere
        scores[0, 0, 0] = 1.0  # wall wins one pixel
        masks = extract_surfaces(scores, min_coverage=0.2)
        assert find_surface(masks, SurfaceKind.WALL).pixel_count == 1
        assert find_surface(masks, SurfaceKind.FLOOR).pixel_count == 3

    def test_deterministic(self):
        rng = np.random.default_rng(11)
        scores = rng.random((1, 10, 32, 32)).astype(np.float32)
        a = extract_surfaces(scores, workers=3)
        b = extract_surfaces(scores, workers=1)
        assert [m.kind for m in a] == [m.kind for m in b]
        for ma, mb in zip(a, b):
            np.testing.assert_array_equal(ma.indices, mb.indices)

    def test_unsupported_shapes_return_empty(self):
        assert extract_surfaces(np.zeros(16)) == []
        assert extract_surfaces(np.zeros((1, 1, 2, 2, 2))) == []
        assert extract_surfaces(None) == []

    def test_zero_class_scores_detect_nothing(self):
        """Score tensors without classes must not fall back to class 0 (wall)."""
        assert extract_surfaces(np.zeros((0, 8, 8), dtype=np.float32)) == []
        assert extract_surfaces(np.zeros((1, 0, 8, 8), dtype=np.float32)) == []
        assert extract_surfaces(ClassTensor(np.zeros((0, 8, 8)), is_scores=True)) == []

    def test_indices_are_read_only(self):
        masks = extract_surfaces(np.zeros((3, 3), dtype=np.int64))
        with pytest.raises(ValueError):
            masks[0].indices[0] = 5


class TestClassTensorFromModelOutput:
    def test_batched_scores(self):
        t = ClassTensor.from_model_output(np.zeros((1, 5, 6, 7)))
        assert t.is_scores and t.num_classes == 5
        assert (t.width, t.height) == (7, 6)

    def test_single_channel_is_class_ids(self):
        t = ClassTensor.from_model_output(np.zeros((1, 6, 7)))
        assert not t.is_scores
        assert t.data.shape == (6, 7)

    def test_multi_channel_is_scores(self):
        t = ClassTensor.from_model_output(np.zeros((3, 6, 7)))
        assert t.is_scores and t.num_classes == 3

    def test_two_d_is_class_ids(self):
        t = ClassTensor.from_model_output(np.zeros((6, 7)))
        assert not t.is_scores

    def test_unsupported_rank_is_none(self):
        assert ClassTensor.from_model_output(np.zeros(5)) is None
        assert ClassTensor.from_model_output(np.zeros((2, 2, 2, 2, 2))) is None

    def test_zero_classes_is_none(self):
        assert ClassTensor.from_model_output(np.zeros((0, 6, 7))) is None
        assert ClassTensor.from_model_output(np.zeros((1, 0, 6, 7))) is None

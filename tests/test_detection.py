import numpy as np
import pytest

from surface_markup import SurfaceDetector, SurfaceKind, find_surface
from surface_markup.errors import (
    InvalidImageError,
    ModelNotFoundError,
    ModelNotLoadedError,
    NoResultsError,
)


class FakeModel:
    """Returns a fixed class-id grid and records its input."""

    def __init__(self, output):
        self.output = output
        self.inputs = []

    def __call__(self, image):
        self.inputs.append(image)
        return self.output


def _wall_and_floor(size=32):
    ids = np.zeros((size, size), dtype=np.int64)
    ids[size // 2:] = 3
    return ids


class TestSurfaceDetector:
    def test_model_receives_resized_rgb(self, gray_photo):
        model = FakeModel(_wall_and_floor())
        det = SurfaceDetector(model, model_input_size=(32, 16))
        gray_photo[..., 0] = 200  # blue channel in BGR
        det.detect(gray_photo)
        img = model.inputs[0]
        assert img.shape == (16, 32, 3)
        assert img.dtype == np.uint8
        assert img[0, 0, 2] == 200

    def test_detect_returns_surface_masks(self, gray_photo):
        det = SurfaceDetector(FakeModel(_wall_and_floor()), model_input_size=(32, 32))
        surfaces = det.detect(gray_photo)
        assert find_surface(surfaces, SurfaceKind.WALL).coverage == pytest.approx(0.5)
        assert find_surface(surfaces, SurfaceKind.FLOOR).coverage == pytest.approx(0.5)
        assert find_surface(surfaces, SurfaceKind.DOOR) is None

    def test_unsupported_output_is_empty(self, gray_photo):
        det = SurfaceDetector(FakeModel(np.zeros(7)), model_input_size=(8, 8))
        assert det.detect(gray_photo) == []

    def test_no_model(self, gray_photo):
        det = SurfaceDetector()
        assert not det.is_loaded
        with pytest.raises(ModelNotLoadedError, match="Model not loaded"):
            det.detect(gray_photo)

    def test_empty_output(self, gray_photo):
        for output in (None, np.zeros((0, 0))):
            det = SurfaceDetector(FakeModel(output), model_input_size=(8, 8))
            with pytest.raises(NoResultsError, match="No results"):
                det.detect(gray_photo)

    def test_invalid_image(self):
        det = SurfaceDetector(FakeModel(_wall_and_floor()), model_input_size=(8, 8))
        with pytest.raises(InvalidImageError):
            det.detect(None)
        with pytest.raises(InvalidImageError):
            det.detect(np.zeros((0, 0, 3), dtype=np.uint8))


class TestFromPath:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ModelNotFoundError, match="Model 'segformer' not found"):
            SurfaceDetector.from_path(str(tmp_path / 'segformer.onnx'), loader=lambda p: None)

    def test_loader_is_called(self, tmp_path):
        path = tmp_path / 'segformer.onnx'
        path.write_bytes(b'weights')
        model = FakeModel(_wall_and_floor())
        det = SurfaceDetector.from_path(str(path), loader=lambda p: model, model_input_size=(16, 16))
        assert det.is_loaded
        assert det.model is model
        assert det.model_input_size == (16, 16)

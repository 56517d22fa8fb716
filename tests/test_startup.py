import logging

import pytest

from surface_markup import MarkupConfig, startup


@pytest.fixture
def fresh_startup():
    startup._reset_for_tests()
    yield
    startup._reset_for_tests()


class TestInitialize:
    def test_only_first_call_initializes(self, tmp_path, fresh_startup):
        assert startup.initialize(log_dir=str(tmp_path)) is True
        assert startup.initialize(log_dir=str(tmp_path)) is False
        assert startup.is_initialized()
        handlers = [h for h in logging.getLogger('surface_markup').handlers
                    if isinstance(h, logging.FileHandler)]
        assert len(handlers) == 1

    def test_log_file_written(self, tmp_path, fresh_startup):
        startup.initialize(log_dir=str(tmp_path / 'logs'))
        logging.getLogger('surface_markup.session').info("hello")
        for h in logging.getLogger('surface_markup').handlers:
            h.flush()
        text = (tmp_path / 'logs' / 'markup.log').read_text()
        assert "surface_markup initialized" in text
        assert "hello" in text


class TestMarkupConfig:
    def test_overrides(self):
        cfg = MarkupConfig.from_defaults(max_bytes=1000)
        assert cfg.max_bytes == 1000
        assert cfg.encoder_options()["max_bytes"] == 1000
        assert cfg.brush_width == 40.0

    def test_unknown_key(self):
        with pytest.raises(TypeError):
            MarkupConfig.from_defaults(max_byte=10)

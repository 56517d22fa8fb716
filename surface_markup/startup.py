"""One-time process initialization.

`initialize()` attaches the pipeline's file log handler. It is guarded so
that calling it again (every editor window does) is a no-op.
"""
import logging
import os
import threading

_lock = threading.Lock()
_initialized = False

LOG_FORMAT = '%(asctime)s - %(name)s - %(message)s'


def default_log_dir():
    return os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'logs')


def initialize(log_dir=None, level=logging.INFO) -> bool:
    """Configure the 'surface_markup' logger once. Returns True on the first call only."""
    global _initialized
    with _lock:
        if _initialized:
            return False
        log_dir = log_dir or default_log_dir()
        os.makedirs(log_dir, exist_ok=True)
        logger = logging.getLogger('surface_markup')
        logger.setLevel(level)
        # Check if handler already exists to avoid duplicate logs
        if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
            fh = logging.FileHandler(os.path.join(log_dir, 'markup.log'))
            fh.setLevel(level)
            fh.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(fh)
        _initialized = True
        logger.info("surface_markup initialized")
        return True


def is_initialized() -> bool:
    return _initialized


def _reset_for_tests():
    global _initialized
    with _lock:
        logger = logging.getLogger('surface_markup')
        for h in list(logger.handlers):
            if isinstance(h, logging.FileHandler):
                logger.removeHandler(h)
                h.close()
        _initialized = False

"""Shared fixtures for filedrop tests."""
import logging

import pytest

from filedrop.models import UploadConfig


@pytest.fixture(autouse=True)
def _restore_logging():
    """CLI tests reconfigure the root logger; put it back after every test."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    logging.disable(logging.NOTSET)
    for handler in list(root_logger.handlers):
        if handler not in handlers:
            root_logger.removeHandler(handler)
    root_logger.setLevel(level)


@pytest.fixture
def fast_config():
    """Upload config without pacing delays."""
    return UploadConfig(step_delay=0)

"""
Shared fixtures.
"""

import logging

import pytest

from fakes import SleepRecorder, make_row


@pytest.fixture(autouse=True)
def reset_feedsync_logger():
    """Undo setup_logging() so caplog keeps seeing records in later tests."""
    yield
    logger = logging.getLogger("feedsync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def row():
    return make_row


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()

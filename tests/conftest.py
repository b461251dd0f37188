"""Shared fixtures."""

import logging

import pytest


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo configure_logging() calls made by a test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler.get_name() == "kafka_pusher":
            root.removeHandler(handler)
    root.setLevel(level)

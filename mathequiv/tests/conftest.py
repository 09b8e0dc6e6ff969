"""Shared fixtures."""

import logging

import pytest


@pytest.fixture(autouse=True)
def reset_package_logger():
    """configure_logging() detaches the package logger from the root; undo that."""
    yield
    logger = logging.getLogger("mathequiv")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)

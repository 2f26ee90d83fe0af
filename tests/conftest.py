"""
Shared fixtures.
"""

import os

import pytest
from loguru import logger


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during a test."""
    messages = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture(autouse=True)
def clean_frkr_env(monkeypatch):
    """Keep FRKR_* variables from the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("FRKR_"):
            monkeypatch.delenv(key)

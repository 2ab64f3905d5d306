"""
test_logging_config.py — Tests for app/logging_config.py

Verifies Loguru setup, stdlib logging interception (the services log via
logging.getLogger("subscout.*")), and production/development formats.

Called by: pytest
Depends on: app/logging_config.py
"""

import logging
import os
from unittest.mock import patch

import pytest
from loguru import logger

from app.logging_config import _is_production, setup_logging


@pytest.fixture(autouse=True)
def _clean_loguru():
    """Remove all handlers before/after each test for isolation."""
    logger.remove()
    yield
    logger.remove()


def test_setup_logging_adds_handler():
    assert len(logger._core.handlers) == 0
    with patch.dict(os.environ, {"APP_URL": "http://localhost:8000"}):
        setup_logging()
    assert len(logger._core.handlers) > 0


def test_service_loggers_are_intercepted():
    """A service's stdlib logger ends up in Loguru sinks."""
    with patch.dict(os.environ, {"APP_URL": "http://localhost:8000"}):
        setup_logging()

    messages = []
    logger.add(lambda m: messages.append(str(m)), format="{message}")

    logging.getLogger("subscout.ingestion").warning("cursor advanced")

    assert any("cursor advanced" in m for m in messages)


def test_log_level_from_env():
    with patch.dict(os.environ, {"APP_URL": "http://localhost:8000", "LOG_LEVEL": "WARNING"}):
        setup_logging()

    messages = []
    logger.add(lambda m: messages.append(str(m)), level="WARNING", format="{message}")

    logger.debug("should be filtered")
    logger.warning("should appear")

    assert any("should appear" in m for m in messages)
    assert not any("should be filtered" in m for m in messages)


def test_noisy_loggers_quieted():
    with patch.dict(os.environ, {"APP_URL": "http://localhost:8000"}):
        setup_logging()
    assert logging.getLogger("httpx").level == logging.WARNING


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://subscout.app", True),
        ("http://localhost:8000", False),
        ("http://127.0.0.1:8000", False),
        ("", False),
    ],
)
def test_is_production(url, expected):
    with patch.dict(os.environ, {"APP_URL": url}):
        assert _is_production() is expected


def test_production_mode_uses_serialize():
    with patch.dict(os.environ, {"APP_URL": "https://subscout.app"}):
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
            serialize_calls = [
                c for c in mock_add.call_args_list if c.kwargs.get("serialize") is True
            ]
            assert len(serialize_calls) >= 1

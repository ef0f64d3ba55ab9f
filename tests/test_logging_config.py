"""
test_logging_config.py — Tests for quotemaster/logging_config.py

Verifies Loguru setup, stdlib logging interception and request context
binding. Uses loguru sinks for assertions.

Called by: pytest
Depends on: quotemaster/logging_config.py
"""

import logging
import os
from unittest.mock import patch

import pytest
from loguru import logger

from quotemaster.logging_config import setup_logging

LOCAL = {"APP_URL": "http://localhost:8000"}


@pytest.fixture(autouse=True)
def _clean_loguru():
    """Remove all handlers before/after each test for isolation."""
    logger.remove()
    yield
    logger.remove()


def test_setup_logging_adds_handler():
    with patch.dict(os.environ, LOCAL):
        setup_logging()
    assert len(logger._core.handlers) > 0


def test_stdlib_logging_intercepted():
    with patch.dict(os.environ, LOCAL):
        setup_logging()
    messages = []
    logger.add(lambda m: messages.append(str(m)), format="{message}")

    logging.getLogger("quotemaster.comparison").warning("intercepted message")

    assert any("intercepted message" in m for m in messages)


def test_log_level_from_env():
    with patch.dict(os.environ, {**LOCAL, "LOG_LEVEL": "WARNING"}):
        setup_logging()
    messages = []
    logger.add(lambda m: messages.append(str(m)), level="WARNING", format="{message}")

    logger.debug("should be filtered")
    logger.warning("should appear")

    assert any("should appear" in m for m in messages)
    assert not any("should be filtered" in m for m in messages)


def test_request_id_defaults_and_binding():
    with patch.dict(os.environ, LOCAL):
        setup_logging()
    records = []
    logger.add(lambda m: records.append(m.record), format="{message}")

    logger.info("outside")
    with logger.contextualize(request_id="abc12345"):
        logger.info("inside")
    logger.info("after")

    assert [r["extra"]["request_id"] for r in records[-3:]] == ["-", "abc12345", "-"]


def test_production_mode_uses_serialize(tmp_path):
    with patch.dict(os.environ, {"APP_URL": "https://quotes.example.vn", "LOG_DIR": str(tmp_path)}):
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
    serialize_calls = [c for c in mock_add.call_args_list if c.kwargs.get("serialize") is True]
    assert len(serialize_calls) == 2
    file_call = next(c for c in serialize_calls if c.kwargs.get("rotation"))
    assert str(file_call.args[0]).startswith(str(tmp_path))


def test_noisy_loggers_quieted():
    with patch.dict(os.environ, LOCAL):
        setup_logging()
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

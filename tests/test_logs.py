"""
tests/test_logs.py - Logging setup tests.
"""

import json
import logging

import pytest
from pythonjsonlogger.json import JsonFormatter

from chainstate.logs import setup_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for h in root.handlers[:]:
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


def test_text_format(root_logger):
    setup_logging("text", "debug")
    assert root_logger.level == logging.DEBUG
    assert len(root_logger.handlers) == 1
    assert not isinstance(root_logger.handlers[0].formatter, JsonFormatter)


def test_json_format(root_logger):
    setup_logging("json", "WARNING")
    handler = root_logger.handlers[0]
    assert isinstance(handler.formatter, JsonFormatter)
    record = logging.LogRecord("chainstate.status", logging.ERROR, __file__, 1, "http://a down", None, None)
    payload = json.loads(handler.formatter.format(record))
    assert payload["message"] == "http://a down"
    assert payload["levelname"] == "ERROR"


def test_unknown_level_falls_back_to_info(root_logger):
    setup_logging("text", "chatty")
    assert root_logger.level == logging.INFO

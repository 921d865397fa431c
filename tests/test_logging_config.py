import json
import logging
import sys

import pytest
from rich.logging import RichHandler

from study_tracker.logging_config import JSONFormatter, init_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_json_formatter_single_line():
    record = logging.LogRecord("study_tracker.backup", logging.INFO, __file__, 1, "Backup created: %s", ("b1",), None)
    entry = json.loads(JSONFormatter().format(record))
    assert entry["level"] == "INFO"
    assert entry["logger"] == "study_tracker.backup"
    assert entry["message"] == "Backup created: b1"
    assert "exception" not in entry


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
    entry = json.loads(JSONFormatter().format(record))
    assert "RuntimeError: boom" in entry["exception"]


def test_init_logging_text_uses_rich():
    init_logging("DEBUG", "text")
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0], RichHandler)
    assert logging.getLogger("apscheduler").level == logging.WARNING


def test_init_logging_json():
    init_logging("warning", "json")
    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert isinstance(root.handlers[0].formatter, JSONFormatter)

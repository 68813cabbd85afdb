"""
Tests for structured JSON logging setup.
"""

import io
import json
import logging

import pytest

from modwallet.core.logging_config import get_logger, setup_logging


@pytest.fixture
def logger_name(request):
    name = f"modwallet.tests.{request.node.name}"
    yield name
    logger = logging.getLogger(name)
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []
    logger.setLevel(logging.NOTSET)


def test_records_are_json_with_event_fields(logger_name):
    stream = io.StringIO()
    logger = setup_logging(name=logger_name, level="DEBUG", environment="test", stream=stream)

    logger.info("Module installed", extra={"event": "wallet.module_installed", "module_address": "0xabc"})

    record = json.loads(stream.getvalue().strip())
    assert record["message"] == "Module installed"
    assert record["event"] == "wallet.module_installed"
    assert record["module_address"] == "0xabc"
    assert record["level"] == "info"
    assert record["environment"] == "test"
    assert record["service"] == "modwallet"
    assert record["source"]["function"] == "test_records_are_json_with_event_fields"
    assert "timestamp" in record


def test_level_filters_records(logger_name):
    stream = io.StringIO()
    logger = setup_logging(name=logger_name, level="WARNING", stream=stream)

    logger.info("hidden")
    logger.warning("shown")

    lines = stream.getvalue().strip().splitlines()
    assert [json.loads(line)["message"] for line in lines] == ["shown"]


def test_unknown_level_rejected(logger_name):
    with pytest.raises(ValueError):
        setup_logging(name=logger_name, level="LOUD")


def test_repeated_setup_does_not_duplicate_handlers(logger_name):
    setup_logging(name=logger_name, stream=io.StringIO())
    logger = setup_logging(name=logger_name, stream=io.StringIO())
    assert len(logger.handlers) == 1


def test_log_file_handler(logger_name, tmp_path):
    log_file = tmp_path / "logs" / "modwallet.log"
    logger = setup_logging(name=logger_name, log_file=str(log_file), enable_console=False)

    logger.warning("written", extra={"event": "test.file"})
    for handler in logger.handlers:
        handler.flush()

    record = json.loads(log_file.read_text(encoding="utf-8").strip())
    assert record["event"] == "test.file"


def test_get_logger_configures_once(logger_name):
    first = get_logger(logger_name, level="ERROR")
    assert first.level == logging.ERROR
    assert len(first.handlers) == 1

    second = get_logger(logger_name, level="DEBUG")
    assert second is first
    assert second.level == logging.ERROR

"""
Tests for logging setup.
"""

import logging

from loguru import logger

from subtunnel.models.enums import LogLevel
from subtunnel.utils.logger import configure_logging, format_traceback, get_logger


def test_standard_logging_is_routed_to_loguru():
    configure_logging(LogLevel.DEBUG)
    records = []
    handler_id = logger.add(lambda message: records.append(message.record))
    try:
        logging.getLogger("uvicorn.error").warning("listener ready")
    finally:
        logger.remove(handler_id)

    (record,) = [r for r in records if r["message"] == "listener ready"]
    assert record["level"].name == "WARNING"
    assert record["extra"]["name"] == "uvicorn.error"


def test_get_logger_binds_module_name():
    records = []
    handler_id = logger.add(lambda message: records.append(message.record))
    try:
        get_logger("subtunnel.test").info("bound")
    finally:
        logger.remove(handler_id)

    assert records[0]["extra"]["name"] == "subtunnel.test"


def test_format_traceback_includes_exception():
    try:
        raise ValueError("bad registry")
    except ValueError as e:
        text = format_traceback(e)

    assert "ValueError: bad registry" in text
    assert "Traceback" in text

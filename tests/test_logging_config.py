"""
Tests for logging configuration.
"""

import json
import logging

from reviewctx.logging_config import JsonFormatter, ScopedLogger, setup_logging, setup_logging_from_config


def make_record(msg="hello", **extra):
    record = logging.LogRecord("reviewctx.test", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter():
    data = json.loads(JsonFormatter().format(make_record(scope="octo/widgets")))

    assert data["message"] == "hello"
    assert data["level"] == "INFO"
    assert data["logger"] == "reviewctx.test"
    assert data["scope"] == "octo/widgets"
    assert "exception" not in data


def test_scoped_logger_prefixes_and_tags(caplog):
    log = ScopedLogger(logging.getLogger("reviewctx.test"), "octo/widgets")

    with caplog.at_level(logging.INFO, logger="reviewctx.test"):
        log.info("Indexed 12 files")

    record = caplog.records[-1]
    assert record.getMessage() == "[octo/widgets] Indexed 12 files"
    assert record.scope == "octo/widgets"


def test_setup_logging_with_file(restore_root_logger, temp_dir):
    log_file = temp_dir / "logs" / "reviewctx.log"

    setup_logging(level="DEBUG", log_file=log_file, json_format=True)
    logging.getLogger("reviewctx.test").debug("written to file")
    for handler in restore_root_logger.handlers:
        handler.flush()

    assert restore_root_logger.level == logging.DEBUG
    lines = [json.loads(line) for line in log_file.read_text().splitlines()]
    assert any(line["message"] == "written to file" for line in lines)


def test_setup_logging_replaces_handlers(restore_root_logger):
    setup_logging(level="WARNING")
    setup_logging(level="WARNING")

    assert len(restore_root_logger.handlers) == 1
    assert restore_root_logger.level == logging.WARNING


def test_setup_from_config_override(restore_root_logger, config):
    config.set("logging", "level", value="ERROR")

    setup_logging_from_config(config)
    assert restore_root_logger.level == logging.ERROR

    setup_logging_from_config(config, level="DEBUG")
    assert restore_root_logger.level == logging.DEBUG

from __future__ import annotations

import json
import logging
import sys

from studio_signals.utils.logging import _json_formatter, configure_logging

EXPECTED_TASKS = 3


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.tasks = EXPECTED_TASKS
    record.rule = "no_show_risk"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["tasks"] == EXPECTED_TASKS
    assert payload["rule"] == "no_show_risk"


def test_json_formatter_supports_nested_extra_field() -> None:
    record = _record()
    record.extra = {"owner_id": "abc"}

    payload = json.loads(_json_formatter(record))

    assert payload["owner_id"] == "abc"
    assert "extra" not in payload


def test_json_formatter_renders_exceptions() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord(
            "test.logger", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
        )

    payload = json.loads(_json_formatter(record))

    assert "ValueError: boom" in payload["exc_info"]


def test_configure_logging_quiets_pool_logger() -> None:
    configure_logging(level="DEBUG", json_logs=True)

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("psycopg.pool").level == logging.WARNING

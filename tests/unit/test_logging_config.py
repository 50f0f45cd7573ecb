from __future__ import annotations

import json
import logging
import sys

from doclens.logging_config import JsonLineFormatter, configure_logging


def _record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord(
        name="doclens.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )


def test_json_line_has_fixed_fields() -> None:
    record = _record("Indexed %d chunks for document_id=%s", 3, "doc-1")
    record.request_id = "ignored"

    payload = json.loads(JsonLineFormatter().format(record))

    assert set(payload) == {"ts", "level", "logger", "message"}
    assert payload["level"] == "INFO"
    assert payload["logger"] == "doclens.test"
    assert payload["message"] == "Indexed 3 chunks for document_id=doc-1"
    assert payload["ts"].endswith("Z")


def test_json_line_includes_exception_text() -> None:
    try:
        raise ValueError("bad pdf")
    except ValueError:
        record = _record("failed")
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonLineFormatter().format(record))

    assert "ValueError: bad pdf" in payload["exc_info"]


def test_configure_logging_selects_formatter() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(level="debug")
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, JsonLineFormatter)

        configure_logging(level="WARNING", log_format="text")
        assert root.level == logging.WARNING
        assert not isinstance(root.handlers[0].formatter, JsonLineFormatter)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

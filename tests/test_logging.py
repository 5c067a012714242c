from __future__ import annotations

import json
import logging

from az_review.logging import JsonFormatter, PlainFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="unit",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_keeps_serializable_extras_only() -> None:
    record = _record(good={"a": 1, "b": [1, 2]}, bad={"obj": object()}, workflow="Storage")

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello"
    assert payload["good"] == {"a": 1, "b": [1, 2]}
    assert payload["workflow"] == "Storage"
    assert "bad" not in payload
    assert "pathname" not in payload


def test_plain_formatter_renders_step_phase_and_duration() -> None:
    line = PlainFormatter().format(_record(step="evaluate", phase="complete", duration_ms=12))
    assert "[evaluate:complete] hello (duration_ms=12)" in line

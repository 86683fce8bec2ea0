from __future__ import annotations

import json
import logging

import pytest

from phenomena.utils.logging import _json_formatter, log_step


def test_json_formatter_promotes_extra_fields() -> None:
    record = logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )
    record.session = "karina"
    record.value = 1

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["session"] == "karina"
    assert payload["value"] == 1


def test_log_step_numbers_lines_in_order(caplog: pytest.LogCaptureFixture) -> None:
    log = logging.getLogger("test.steps")

    with caplog.at_level(logging.INFO, logger="test.steps"):
        first = log_step(log, "shinsro", "off days of Shins Ro: 0")
        second = log_step(log, "karina", "COMMIT")

    assert second == first + 1
    assert caplog.messages == [
        f"[{first:02d}:shinsro] off days of Shins Ro: 0",
        f"[{second:02d}:karina] COMMIT",
    ]
    assert caplog.records[1].session == "karina"

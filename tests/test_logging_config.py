from __future__ import annotations

import logging

from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.ingestion",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Reading ingested",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context_keys() -> None:
    formatter = ContextualFormatter(fmt="%(levelname)s %(message)s")

    output = formatter.format(_record(reading_id="abc", device_id="esp32-1", unrelated="x"))

    assert output == "INFO Reading ingested | reading_id=abc device_id=esp32-1"


def test_formatter_skips_missing_and_none_values() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["subscriber_count"])

    assert formatter.format(_record(subscriber_count=None)) == "Reading ingested"
    assert formatter.format(_record(subscriber_count=0)) == "Reading ingested | subscriber_count=0"

from __future__ import annotations

import logging

from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.sensor_reader",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Recorded temperature exceeds limit",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context_keys_in_order() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    message = formatter.format(_record(temperature=101.5, pin=4, unrelated="x"))

    assert message == "Recorded temperature exceeds limit | pin=4 temperature=101.5"


def test_formatter_skips_missing_and_none_values() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["pin", "contents"])

    assert formatter.format(_record(contents=None)) == "Recorded temperature exceeds limit"


def test_default_formatter_ignores_fields_outside_the_context_keys() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    message = formatter.format(_record(pin=4, humidity=55.0, pulses=12, keg_type="corny"))

    assert message == "Recorded temperature exceeds limit | pin=4"

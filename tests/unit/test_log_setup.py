"""Unit tests for relaylog.core.log_setup."""

from __future__ import annotations

import json
import logging

from relaylog.core.log_setup import JsonLineFormatter, configure_logging


def test_json_formatter_emits_one_object():
    record = logging.LogRecord(
        "relaylog.core.eventlog", logging.WARNING, __file__, 1, "sent %s", ("TX-1",), None
    )
    entry = json.loads(JsonLineFormatter().format(record))
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "relaylog.core.eventlog"
    assert entry["message"] == "sent TX-1"


def test_configure_logging_replaces_handlers():
    configure_logging("DEBUG", "json")
    configure_logging("WARNING", "text")
    logger = logging.getLogger("relaylog")
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING
    assert not isinstance(logger.handlers[0].formatter, JsonLineFormatter)

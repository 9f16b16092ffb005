"""Unit tests for the logging formatters and context binding."""

import json
import logging
from pathlib import Path

import pytest

from idleguild.core.logging.logger import (
    ConsoleFormatter,
    GameContextFilter,
    JsonLineFormatter,
    LoggingSettings,
    current_log_context,
    log_context,
)


def make_record(msg: str = "Service operation: collect", **extra) -> logging.LogRecord:
    record = logging.LogRecord("idleguild.modules.economy", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def plain_settings() -> LoggingSettings:
    return LoggingSettings(
        level=logging.INFO,
        json_output=False,
        colors=False,
        to_file=False,
        logs_dir=Path("."),
        environment="testing",
    )


@pytest.mark.unit
class TestLogContext:
    def test_nested_binding_restores_outer(self):
        with log_context(guild_id=7, action="collect"):
            with log_context(action="purchase"):
                assert current_log_context() == {"guild_id": 7, "action": "purchase"}
            assert current_log_context()["action"] == "collect"
        assert current_log_context() == {}

    def test_filter_copies_bound_fields(self):
        record = make_record()
        with log_context(guild_id=7, owner_id="555"):
            GameContextFilter().filter(record)

        assert (record.guild_id, record.owner_id, record.action) == (7, "555", None)

    def test_explicit_extra_wins(self):
        record = make_record(guild_id=9)
        with log_context(guild_id=7):
            GameContextFilter().filter(record)

        assert record.guild_id == 9


@pytest.mark.unit
class TestFormatters:
    def test_json_line(self):
        """Context fields sit at the top level; other extras are nested."""
        record = make_record(operation="collect", gold=600)
        with log_context(guild_id=7):
            GameContextFilter().filter(record)

        payload = json.loads(JsonLineFormatter().format(record))

        assert payload["message"] == "Service operation: collect"
        assert payload["guild_id"] == 7
        assert "owner_id" not in payload
        assert payload["extra"] == {"operation": "collect", "gold": 600}

    def test_console_appends_guild(self):
        record = make_record()
        with log_context(guild_id=7):
            GameContextFilter().filter(record)

        line = ConsoleFormatter(plain_settings()).format(record)

        assert line.endswith("Service operation: collect [guild=7]")

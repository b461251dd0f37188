"""
Tests for log output configuration.

Tests cover:
1. Level parsing with INFO fallback
2. Text and JSON formats
3. Reconfiguration replaces the previous handler
"""

import io
import json
import logging

import pytest

from kafka_pusher.config import LoggingSettings
from kafka_pusher.logging_config import configure_logging, parse_level


class TestParseLevel:

    @pytest.mark.parametrize("name,level", [
        ("debug", logging.DEBUG),
        ("INFO", logging.INFO),
        ("warn", logging.WARNING),
        ("warning", logging.WARNING),
        ("error", logging.ERROR),
        ("verbose", logging.INFO),
        ("", logging.INFO),
    ])
    def test_levels(self, name, level):
        assert parse_level(name) == level


class TestConfigureLogging:

    def test_text_format(self):
        stream = io.StringIO()
        configure_logging(LoggingSettings(level="info", format="text"), stream=stream)
        logging.getLogger("kafka_pusher.test").info("hello %s", "world")
        assert "INFO kafka_pusher.test: hello world" in stream.getvalue()

    def test_json_format_with_extra(self):
        stream = io.StringIO()
        configure_logging(LoggingSettings(level="debug", format="json"), stream=stream)
        logging.getLogger("kafka_pusher.test").debug("sent", extra={"topic": "orders", "count": 3})

        entry = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert entry["level"] == "DEBUG"
        assert entry["logger"] == "kafka_pusher.test"
        assert entry["msg"] == "sent"
        assert entry["topic"] == "orders"
        assert entry["count"] == 3

    def test_level_filters(self):
        stream = io.StringIO()
        configure_logging(LoggingSettings(level="error"), stream=stream)
        logging.getLogger("kafka_pusher.test").warning("quiet")
        assert stream.getvalue() == ""

    def test_reconfigure_replaces_handler(self):
        first, second = io.StringIO(), io.StringIO()
        configure_logging(LoggingSettings(), stream=first)
        configure_logging(LoggingSettings(), stream=second)
        logging.getLogger("kafka_pusher.test").info("once")

        assert first.getvalue() == ""
        assert second.getvalue().count("once") == 1

"""Tests for logging configuration."""

import json
import logging
import sys

from prepgen.logging_config import JSONFormatter, build_logging_config


def make_record(level=logging.INFO, msg="Generated question %d", args=(3,), exc_info=None):
    return logging.LogRecord(
        name="prepgen.generation.orchestrator",
        level=level,
        pathname="orchestrator.py",
        lineno=42,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self):
        """Test that the core fields are present."""
        entry = json.loads(JSONFormatter().format(make_record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "prepgen.generation.orchestrator"
        assert entry["message"] == "Generated question 3"
        assert "timestamp" in entry
        assert "source" not in entry

    def test_extra_fields(self):
        """Test that known extra attributes are included."""
        record = make_record()
        record.model = "model-a"
        record.attempt = 2
        record.unrelated = "ignored"

        entry = json.loads(JSONFormatter().format(record))

        assert entry["model"] == "model-a"
        assert entry["attempt"] == 2
        assert "unrelated" not in entry

    def test_error_includes_source_and_exception(self):
        """Test that errors carry their location and traceback."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record(level=logging.ERROR, msg="failed", args=(), exc_info=sys.exc_info())

        entry = json.loads(JSONFormatter().format(record))

        assert entry["source"] == "orchestrator.py:42"
        assert "RuntimeError: boom" in entry["exception"]


class TestBuildLoggingConfig:
    """Tests for build_logging_config."""

    def test_text_format(self):
        """Test the human-readable configuration."""
        config = build_logging_config(level="debug", json_format=False)

        assert config["handlers"]["console"]["formatter"] == "default"
        assert config["root"]["level"] == logging.DEBUG
        assert config["loggers"]["prepgen"]["level"] == logging.DEBUG
        assert config["loggers"]["openai"]["level"] == logging.WARNING

    def test_json_format(self):
        """Test the structured configuration."""
        config = build_logging_config(level="WARNING", json_format=True)
        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["formatters"]["json"]["()"] is JSONFormatter

    def test_unknown_level_falls_back_to_info(self):
        """Test that an unknown level name uses INFO."""
        config = build_logging_config(level="chatty", json_format=False)
        assert config["root"]["level"] == logging.INFO

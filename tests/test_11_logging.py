"""Tests for structured logging: levels, JSONL persistence and console output."""
from __future__ import annotations

import json
import logging

import pytest

from affirm_ms.core.logging import (
    ColoredConsoleFormatter,
    JsonlFormatter,
    LogLevel,
    coerce_level,
    configure_logging,
    get_level,
    get_level_name,
    get_logger,
    get_request_id,
    info,
    set_request_id,
    verbose,
    warn,
)
from affirm_ms.core.logging import formatters


@pytest.fixture
def log_dir(tmp_path, monkeypatch):
    """Route JSONL logs into tmp_path; restore default logging afterwards."""
    monkeypatch.setenv("AFFIRM_MS_LOG_DIR", str(tmp_path))
    monkeypatch.setenv("AFFIRM_MS_JSONL_FILE", "test.jsonl")
    yield tmp_path
    monkeypatch.delenv("AFFIRM_MS_LOG_DIR")
    monkeypatch.delenv("AFFIRM_MS_JSONL_FILE")
    monkeypatch.delenv("AFFIRM_MS_LOG_LEVEL", raising=False)
    configure_logging(force=True)
    set_request_id("-")


def _flush():
    for handler in logging.getLogger().handlers:
        handler.flush()


def _records(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


class TestLevels:
    def test_level_ordering(self):
        assert LogLevel.MINIMAL < LogLevel.NORMAL < LogLevel.VERBOSE < LogLevel.DEBUG

    @pytest.mark.parametrize("value,expected", [
        (1, LogLevel.MINIMAL),
        (4, LogLevel.DEBUG),
        ("verbose", LogLevel.VERBOSE),
        ("3", LogLevel.VERBOSE),
        ("WARNING", LogLevel.MINIMAL),
        ("INFO", LogLevel.NORMAL),
        (logging.WARNING, LogLevel.MINIMAL),
        (logging.INFO, LogLevel.NORMAL),
        ("nonsense", LogLevel.NORMAL),
        (None, LogLevel.NORMAL),
    ])
    def test_coerce_level(self, value, expected):
        assert coerce_level(value) == expected

    def test_env_level_applied(self, log_dir, monkeypatch):
        monkeypatch.setenv("AFFIRM_MS_LOG_LEVEL", "VERBOSE")
        configure_logging(force=True)
        assert get_level() == LogLevel.VERBOSE
        assert get_level_name() == "VERBOSE"


class TestJsonlPersistence:
    def test_record_written(self, log_dir):
        configure_logging(force=True)
        log = get_logger("affirm-ms.test")
        set_request_id("rid-1")
        info(log, "selection_served", event="select", tier="pooled", lines=6)
        _flush()

        payload = _records(log_dir / "test.jsonl")[-1]
        assert payload["message"] == "selection_served"
        assert payload["request_id"] == "rid-1"
        assert payload["event"] == "select"
        assert payload["tag"] == "INFO"
        assert payload["level"] == 2
        assert payload["extra"] == {"tier": "pooled", "lines": 6}

    def test_verbose_suppressed_at_normal(self, log_dir):
        configure_logging(level=LogLevel.NORMAL, force=True)
        log = get_logger("affirm-ms.test")
        verbose(log, "hidden_detail")
        warn(log, "line_skipped", position=3)
        _flush()

        messages = [r["message"] for r in _records(log_dir / "test.jsonl")]
        assert "hidden_detail" not in messages
        assert "line_skipped" in messages

    def test_verbose_written_at_verbose(self, log_dir):
        configure_logging(level=3, force=True)
        log = get_logger("affirm-ms.test")
        verbose(log, "shown_detail", seconds=0.5)
        _flush()

        payload = _records(log_dir / "test.jsonl")[-1]
        assert payload["message"] == "shown_detail"
        assert payload["level"] == 3
        assert payload["seconds"] == 0.5


class TestFormatters:
    def _record(self, **extra):
        record = logging.LogRecord("affirm-ms", logging.INFO, __file__, 1, "playlist_served", None, None)
        for k, v in extra.items():
            setattr(record, k, v)
        return record

    def test_console_plain_when_colors_off(self, monkeypatch):
        monkeypatch.setattr(formatters, "USE_COLORS", False)
        record = self._record(tag="SUCCESS", request_id="abc", extra_data={"tier": "exact"}, seconds=0.05)
        line = ColoredConsoleFormatter().format(record)
        assert "\033[" not in line
        assert "(abc)" in line
        assert "tier=exact" in line
        assert line.endswith("0.050s")

    def test_console_colors_tier_values(self, monkeypatch):
        monkeypatch.setattr(formatters, "USE_COLORS", True)
        record = self._record(tag="INFO", request_id="-", extra_data={"tier": "generated"})
        line = ColoredConsoleFormatter().format(record)
        assert formatters.Colors.MAGENTA + "tier=generated" in line

    def test_no_color_env(self, monkeypatch):
        monkeypatch.setenv("AFFIRM_MS_NO_COLOR", "1")
        assert formatters.supports_color() is False

    def test_jsonl_minimal_record(self):
        payload = json.loads(JsonlFormatter().format(self._record()))
        assert payload["message"] == "playlist_served"
        assert payload["request_id"] == "-"
        assert "extra" not in payload


def test_request_id_defaults_to_dash():
    import contextvars

    ctx = contextvars.Context()
    assert ctx.run(get_request_id) == "-"

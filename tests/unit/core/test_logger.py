"""
Unit tests for core.logger module.

Tests:
- format_kv_pairs() quoting and truncation
- StructuredFormatter output
- Logger key=value and JSON modes, bind()
- configure_logging() handler replacement
"""

import json
import logging

import pytest

from nostrbridge.core.logger import (
    Logger,
    StructuredFormatter,
    configure_logging,
    format_kv_pairs,
)


# =============================================================================
# format_kv_pairs() Tests
# =============================================================================


class TestFormatKvPairs:
    """format_kv_pairs() formatting."""

    def test_empty(self) -> None:
        """No fields gives an empty string."""
        assert format_kv_pairs({}) == ""

    def test_simple(self) -> None:
        """Plain values are not quoted."""
        assert format_kv_pairs({"relay": "wss://nos.lol", "count": 3}) == (
            " relay=wss://nos.lol count=3"
        )

    def test_quotes_whitespace(self) -> None:
        """Values with spaces are quoted."""
        assert format_kv_pairs({"reason": "timed out"}) == ' reason="timed out"'

    def test_escapes_quotes(self) -> None:
        """Embedded quotes are escaped."""
        assert format_kv_pairs({"msg": 'say "hi"'}) == ' msg="say \\"hi\\""'

    def test_empty_value_quoted(self) -> None:
        """Empty values are shown as empty quotes."""
        assert format_kv_pairs({"reason": ""}) == ' reason=""'

    def test_truncation(self) -> None:
        """Long values are truncated with a marker."""
        result = format_kv_pairs({"v": "x" * 20}, max_value_length=5)
        assert result == " v=xxxxx...<truncated 15 chars>"

    def test_custom_prefix(self) -> None:
        """The prefix is configurable."""
        assert format_kv_pairs({"a": 1}, prefix="") == "a=1"


# =============================================================================
# StructuredFormatter Tests
# =============================================================================


class TestStructuredFormatter:
    """StructuredFormatter output."""

    def test_plain_record(self) -> None:
        """Records without fields render as level, name and message."""
        record = logging.LogRecord("sync", logging.INFO, __file__, 1, "started", None, None)
        assert StructuredFormatter().format(record) == "info sync started"

    def test_structured_record(self) -> None:
        """Structured fields are appended."""
        record = logging.LogRecord("sync", logging.WARNING, __file__, 1, "skipped", None, None)
        record.structured_kv = {"reason": "reply"}
        assert StructuredFormatter().format(record) == "warning sync skipped reason=reply"


# =============================================================================
# Logger Tests
# =============================================================================


class TestLogger:
    """Logger behaviour."""

    def test_name(self) -> None:
        """The name maps to the stdlib logger name."""
        assert Logger("poller").name == "poller"

    def test_fields_attached(self, caplog: pytest.LogCaptureFixture) -> None:
        """Keyword arguments travel as structured fields."""
        with caplog.at_level(logging.INFO, logger="test.fields"):
            Logger("test.fields").info("cycle_started", relays=3)
        record = caplog.records[-1]
        assert record.getMessage() == "cycle_started"
        assert record.structured_kv == {"relays": 3}

    def test_string_values_truncated(self, caplog: pytest.LogCaptureFixture) -> None:
        """String values longer than the limit are truncated."""
        with caplog.at_level(logging.INFO, logger="test.trunc"):
            Logger("test.trunc", max_value_length=4).info("x", body="abcdefgh")
        assert caplog.records[-1].structured_kv["body"].startswith("abcd...")

    def test_bind(self, caplog: pytest.LogCaptureFixture) -> None:
        """bind() adds context to every record without changing the original."""
        base = Logger("test.bind")
        bound = base.bind(component="sync")
        with caplog.at_level(logging.DEBUG, logger="test.bind"):
            bound.debug("a", count=1)
            base.debug("b")
        assert caplog.records[-2].structured_kv == {"component": "sync", "count": 1}
        assert caplog.records[-1].structured_kv == {}

    def test_call_overrides_context(self, caplog: pytest.LogCaptureFixture) -> None:
        """Per-call fields win over bound context."""
        with caplog.at_level(logging.INFO, logger="test.override"):
            Logger("test.override").bind(relay="a").info("x", relay="b")
        assert caplog.records[-1].structured_kv == {"relay": "b"}

    def test_json_output(self, caplog: pytest.LogCaptureFixture) -> None:
        """JSON mode emits one object per record."""
        with caplog.at_level(logging.ERROR, logger="test.json"):
            Logger("test.json", json_output=True).error("failed", error="boom")
        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["message"] == "failed"
        assert payload["level"] == "error"
        assert payload["service"] == "test.json"
        assert payload["error"] == "boom"
        assert "timestamp" in payload

    def test_disabled_level_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        """Records below the logger level are not emitted."""
        with caplog.at_level(logging.WARNING, logger="test.level"):
            Logger("test.level").debug("hidden")
        assert not [r for r in caplog.records if r.name == "test.level"]

    def test_exception(self, caplog: pytest.LogCaptureFixture) -> None:
        """exception() attaches the active traceback."""
        with caplog.at_level(logging.ERROR, logger="test.exc"):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                Logger("test.exc").exception("unexpected")
        assert caplog.records[-1].exc_info is not None


# =============================================================================
# configure_logging() Tests
# =============================================================================


class TestConfigureLogging:
    """configure_logging() root setup."""

    def test_replaces_handlers(self) -> None:
        """Repeated calls leave exactly one structured handler."""
        root = logging.getLogger()
        saved_handlers = list(root.handlers)
        saved_level = root.level
        try:
            configure_logging("DEBUG")
            configure_logging("warning")
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
            assert root.level == logging.WARNING
        finally:
            for handler in list(root.handlers):
                root.removeHandler(handler)
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)

"""
Slashwatch Logger Tests
"""

import logging

import pytest

from slashwatch.constants import LOG_DATE_FORMAT, LOG_FORMAT
from slashwatch.logger import LogManager, TerminalSafeFormatter, get_logger


class TestFormatValidation:

    def test_valid_log_format_kept(self):
        assert LogManager.validate_log_format("%(levelname)s %(message)s") == "%(levelname)s %(message)s"

    @pytest.mark.parametrize("log_format", ["%(message", "%(no_such_field)s"])
    def test_broken_log_format_falls_back(self, log_format, capsys):
        assert LogManager.validate_log_format(log_format) == LOG_FORMAT.default()
        assert "invalid LOG_FORMAT" in capsys.readouterr().err

    def test_empty_log_format_falls_back(self):
        assert LogManager.validate_log_format("") == LOG_FORMAT.default()

    def test_valid_date_format_kept(self):
        assert LogManager.validate_date_format("%Y-%m-%d %H:%M") == "%Y-%m-%d %H:%M"

    def test_date_format_without_directive_falls_back(self, capsys):
        assert LogManager.validate_date_format("yesterday") == LOG_DATE_FORMAT.default()
        assert "invalid LOG_DATE_FORMAT" in capsys.readouterr().err


class TestTerminalSafeFormatter:

    def test_strips_escape_and_control_sequences(self):
        assert TerminalSafeFormatter.sanitize("\x1b[31mround 90\x1b[0m\r\x07") == "round 90"

    def test_keeps_tabs_and_newlines(self):
        assert TerminalSafeFormatter.sanitize("a\tb\nc") == "a\tb\nc"

    def test_format_sanitizes_message(self):
        record = logging.LogRecord(
            name="slashwatch", level=logging.INFO, pathname="", lineno=0,
            msg="payload \x1b]0;owned\x07name", args=(), exc_info=None,
        )
        assert TerminalSafeFormatter(fmt="%(message)s").format(record) == "payload 0;ownedname"


class TestLogManager:

    def test_singleton(self):
        assert LogManager() is LogManager()

    def test_set_level_updates_root_and_handlers(self):
        get_logger(__name__)
        root = logging.getLogger()
        previous = root.level
        try:
            LogManager().set_level("debug")
            assert root.level == logging.DEBUG
            assert all(h.level == logging.DEBUG for h in root.handlers)
        finally:
            LogManager().set_level(logging.getLevelName(previous))

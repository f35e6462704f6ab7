"""
Slashwatch Logging

Every module logs through ``get_logger(__name__)``. The first call configures
the root logger once: a rich console handler (or a plain stream handler when
highlighting is off) and an optional rotating file. Format strings come from
the environment and fall back to the defaults when they do not format.
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_FILE_OUTPUT,
)


PROJECT_ROOT = Path(__file__).parent.parent
LOG_FILE_PATH = PROJECT_ROOT / "logs" / "slashwatch.log"

_SAMPLE_RECORD = logging.LogRecord(
    name="slashwatch", level=logging.INFO, pathname="", lineno=0,
    msg="sample", args=(), exc_info=None,
)


def _warn_fallback(what: str, error: Exception) -> None:
    # Logging is not up yet, so write straight to stderr
    print(f"slashwatch.logger: invalid {what} ({error}), using default", file=sys.stderr)


class LogManager:
    """Singleton owner of the root logger configuration."""

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()


    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._configured = False
        return cls._instance


    @staticmethod
    def validate_log_format(log_format: str) -> str:
        """Return ``log_format`` if a record formats with it, else the default."""
        if not log_format:
            return str(LOG_FORMAT.default())
        try:
            logging.Formatter(fmt=str(log_format)).format(_SAMPLE_RECORD)
        except (ValueError, KeyError, TypeError) as e:
            _warn_fallback("LOG_FORMAT", e)
            return str(LOG_FORMAT.default())
        return str(log_format)


    @staticmethod
    def validate_date_format(date_format: str) -> str:
        """Return ``date_format`` if it holds a strftime directive, else the default."""
        if not date_format:
            return str(LOG_DATE_FORMAT.default())
        date_format = str(date_format)
        if not re.search(r"%[a-zA-Z]", date_format):
            _warn_fallback("LOG_DATE_FORMAT", ValueError("no strftime directive"))
            return str(LOG_DATE_FORMAT.default())
        try:
            time.strftime(date_format)
        except ValueError as e:
            _warn_fallback("LOG_DATE_FORMAT", e)
            return str(LOG_DATE_FORMAT.default())
        return date_format


    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install handlers on the root logger. Later calls are no-ops.

        Args:
            log_level: Level name, defaults to LOG_LEVEL
            log_file: Rotating log file, defaults to logs/slashwatch.log
            console_output: Log to the terminal
            file_output: Log to ``log_file``, defaults to LOG_FILE_OUTPUT
        """
        with self._lock:
            if self._configured:
                return

            numeric_level = _level(log_level or LOG_LEVEL)
            root_logger = logging.getLogger()
            root_logger.setLevel(numeric_level)
            root_logger.handlers.clear()

            # Per-request transport logs drown out the poll summaries
            for lib in ("httpx", "httpcore", "uvicorn.access"):
                logging.getLogger(lib).setLevel(logging.WARNING)
            for lib in ("uvicorn", "uvicorn.error", "uvicorn.asgi"):
                logging.getLogger(lib).setLevel(logging.ERROR)

            # UTC timestamps across hosts
            formatter = TerminalSafeFormatter(
                fmt=self.validate_log_format(LOG_FORMAT),
                datefmt=self.validate_date_format(LOG_DATE_FORMAT) + " UTC",
            )
            formatter.converter = time.gmtime

            handlers = []
            if console_output:
                handlers.append(_console_handler())
            if LOG_FILE_OUTPUT if file_output is None else file_output:
                handlers.append(_file_handler(log_file or LOG_FILE_PATH))
            for handler in handlers:
                handler.setLevel(numeric_level)
                handler.setFormatter(formatter)
                root_logger.addHandler(handler)

            self._configured = True


    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


    def set_level(self, log_level: str) -> None:
        """Change the level of the root logger and its handlers."""
        if not self._configured:
            self.configure(log_level=log_level)
            return
        numeric_level = _level(log_level)
        root_logger = logging.getLogger()
        root_logger.setLevel(numeric_level)
        for handler in root_logger.handlers:
            handler.setLevel(numeric_level)


def _level(name) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


_THEME = {
    "slashwatch.address":        "cyan",
    "slashwatch.level_critical": "bold red reverse",
    "slashwatch.level_debug":    "bold dim",
    "slashwatch.level_error":    "bold red",
    "slashwatch.level_info":     "bold green",
    "slashwatch.level_warning":  "bold yellow",
    "slashwatch.logger_name":    "magenta",
    "slashwatch.network_error":  "bold red",
    "slashwatch.round":          "bold white",
    "slashwatch.status_idle":    "dim",
    "slashwatch.status_alert":   "bold yellow",
    "slashwatch.status_urgent":  "bold red",
    "slashwatch.status_done":    "bold green",
    "slashwatch.tag":            "bold magenta",
    "slashwatch.timestamp":      "bold cyan",
    "slashwatch.url":            "cyan",
}


def _console_handler() -> logging.Handler:
    if not LOG_CONSOLE_HIGHLIGHTING:
        return logging.StreamHandler(sys.stdout)
    return RichHandler(
        console=Console(theme=Theme(_THEME), highlight=False),
        highlighter=SlashwatchLogHighlighter(),
        keywords=[],
        rich_tracebacks=True,
        omit_repeated_times=False,
        show_path=False,
        show_time=False,
        show_level=False,
        markup=False,
    )


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=str(path),
        maxBytes=LOG_MAX_FILE_SIZE,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )


class TerminalSafeFormatter(logging.Formatter):
    """
    A formatter that strips ANSI escape sequences and non-printable control
    characters, so data read from the chain or a remote node cannot rewrite
    the operator's terminal (CWE-117).
    """

    _ansi_escape_re = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"
        r"|\x1b[@-Z\\-_]"
    )
    # Control chars (0x00-0x1F) excluding Tab and Newline
    _control_chars_re = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
    _carriage_return_re = re.compile(r"\r")


    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        text = cls._ansi_escape_re.sub("", text)
        text = cls._carriage_return_re.sub("", text)
        text = cls._control_chars_re.sub("", text)
        return text


    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class SlashwatchLogHighlighter(RegexHighlighter):
    """
    Rich highlighter for monitor logs.

    Colors round references, round statuses by urgency, EVM addresses and
    RPC endpoints.
    """

    base_style = "slashwatch."
    highlights = [
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<network_error>NETWORK_ERROR)",
        r"(?P<round>\b[Rr]ound \d+\b)",
        r"(?P<status_idle>\b(voting|expired)\b)",
        r"(?P<status_alert>\bquorum-reached\b)",
        r"(?P<status_urgent>\b(in-veto-window|executable)\b)",
        r"(?P<status_done>\bexecuted\b)",
        r"(?P<tag>\[.*?\])",
        r"(?P<timestamp>^(.*?)UTC)",
        r"(?P<url>https?://\S+)",
    ]


_manager = LogManager()

def get_logger(name: str) -> logging.Logger:
    """Module logger, configuring logging on first use."""
    return _manager.get_logger(name)

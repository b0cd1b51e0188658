"""Standardized logging system.

Provides three output modes:
- Human mode: [LEVEL] message (colored if TTY)
- Verbose mode: [LEVEL][HH:MM:SS] logger: message
- JSON mode: {"level":"...","ts":"...","logger":"...","msg":"..."}

Background jobs log from worker threads; JSON mode adds the thread name so
interleaved job output can be separated.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TextIO

ROOT_LOGGER = "codeinsight"


class LogMode(Enum):
    """Logging output mode."""

    HUMAN = "human"
    VERBOSE = "verbose"
    JSON = "json"


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"
    GRAY = "\033[90m"


LEVEL_COLORS = {
    logging.DEBUG: Colors.GRAY,
    logging.INFO: Colors.GREEN,
    logging.WARNING: Colors.YELLOW,
    logging.ERROR: Colors.RED,
    logging.CRITICAL: Colors.RED,
}


def _is_tty(stream: TextIO | None = None) -> bool:
    """Check if the stream is a TTY (supports colors)."""
    if stream is None:
        stream = sys.stderr
    return hasattr(stream, "isatty") and stream.isatty()


class _LevelFormatter(logging.Formatter):
    """Base for the text formatters: a [LEVEL] tag, optionally colored."""

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def tag(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return f"[{record.levelname}]"
        color = LEVEL_COLORS.get(record.levelno, Colors.RESET)
        return f"{color}[{record.levelname}]{Colors.RESET}"

    def body(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


class HumanFormatter(_LevelFormatter):
    """[LEVEL] message"""

    def format(self, record: logging.LogRecord) -> str:
        return f"{self.tag(record)} {self.body(record)}"


class VerboseFormatter(_LevelFormatter):
    """[LEVEL][HH:MM:SS] logger: message"""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        return f"{self.tag(record)}[{timestamp}] {record.name}: {self.body(record)}"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with any structured fields merged in."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "level": record.levelname,
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }

        if hasattr(record, "extra_data"):
            log_entry.update(record.extra_data)

        if record.exc_info:
            log_entry["exc"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class CodeInsightLogger(logging.Logger):
    """Logger whose records can carry fields for the JSON formatter."""

    def structured(self, level: int, msg: str, **fields: Any) -> None:
        """Log ``msg`` with ``fields`` attached as ``extra_data``.

        Human and verbose output show only the message; JSON output merges
        the fields into the log line.
        """
        if self.isEnabledFor(level):
            self._log(level, msg, (), extra={"extra_data": fields}, stacklevel=2)


logging.setLoggerClass(CodeInsightLogger)


def get_logger(name: str = ROOT_LOGGER) -> CodeInsightLogger:
    """Return the named logger as a CodeInsightLogger."""
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(
    mode: LogMode = LogMode.HUMAN,
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> None:
    """Configure logging with the specified mode.

    Log output goes to stderr by default so command output on stdout stays
    machine-readable.

    Args:
        mode: Output mode (human, verbose, json)
        level: Minimum log level
        stream: Output stream (default: stderr)
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    use_colors = _is_tty(stream)

    if mode == LogMode.JSON:
        formatter: logging.Formatter = JSONFormatter()
    elif mode == LogMode.VERBOSE:
        formatter = VerboseFormatter(use_colors=use_colors)
    else:
        formatter = HumanFormatter(use_colors=use_colors)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # LiteLLM is chatty at INFO
    logging.getLogger("LiteLLM").setLevel(max(level, logging.WARNING))


def configure_from_cli(
    verbose: bool = False,
    quiet: bool = False,
    json_logs: bool = False,
) -> None:
    """Configure logging based on CLI flags.

    Args:
        verbose: Enable verbose mode with timestamps
        quiet: Suppress info messages (warnings and errors only)
        json_logs: Emit JSON lines
    """
    mode = LogMode.JSON if json_logs else LogMode.VERBOSE if verbose else LogMode.HUMAN
    # --quiet wins over --verbose for the level but keeps the verbose layout
    level = logging.WARNING if quiet else logging.DEBUG if verbose else logging.INFO
    setup_logging(mode=mode, level=level)

"""
Logging module for Planwise.
Simple, clean logging with rich console formatting.
"""
import os
import re
from datetime import datetime
from typing import Optional, List

from rich.console import Console

# stderr, stdout is reserved for resolved actions
console = Console(stderr=True)


# Patterns to filter out in quiet mode (pipeline internals, backend chatter)
QUIET_MODE_FILTERS: List[str] = [
    r"\[PROMPT\]",              # Prompt construction details
    r"\[PARSER\]",              # Response parser internals
    r"\[FALLBACK\]",            # Regex cascade matches
    r"\[LLAMACPP\]",            # Backend process / stream internals
    r"\[CATALOG\]",             # Model directory scans
    r"Raw response:",           # Raw model output dumps
    r"Generated \d+ chars",     # Generation stats
]

_quiet_mode_patterns: Optional[List[re.Pattern]] = None


def _get_quiet_filters() -> List[re.Pattern]:
    """Get compiled regex patterns for quiet mode filtering"""
    global _quiet_mode_patterns
    if _quiet_mode_patterns is None:
        _quiet_mode_patterns = [re.compile(p, re.IGNORECASE) for p in QUIET_MODE_FILTERS]
    return _quiet_mode_patterns


def _should_filter_quiet(message: str) -> bool:
    """Check if message should be filtered in quiet mode"""
    return any(pattern.search(message) for pattern in _get_quiet_filters())


class LogLevel:
    """Log level constants"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


LEVEL_PRIORITY = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARNING: 2,
    LogLevel.ERROR: 3,
    LogLevel.CRITICAL: 4,
}

LEVEL_COLORS = {
    LogLevel.DEBUG: "dim cyan",
    LogLevel.INFO: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "red",
    LogLevel.CRITICAL: "bold red",
}


class Logger:
    """Simple logger with timestamps and rich formatting"""

    def __init__(self, level: str = "INFO", quiet_mode: bool = False, out: Optional[Console] = None):
        self.level = level.upper()
        self.quiet_mode = quiet_mode
        self.console = out or console

    def _should_log(self, level: str) -> bool:
        """Check if message should be logged based on level"""
        return LEVEL_PRIORITY.get(level, 0) >= LEVEL_PRIORITY.get(self.level, 0)

    def _should_filter_message(self, message: str) -> bool:
        if not self.quiet_mode:
            return False
        return _should_filter_quiet(message)

    def _format_message(self, level: str, message: str) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        return f"[{timestamp}] [{level:8}] {message}"

    def log(self, level: str, message: str) -> None:
        """Log a message at the specified level"""
        if not self._should_log(level):
            return

        # Errors always get through, quiet mode only trims chatter
        if LEVEL_PRIORITY.get(level, 0) < LEVEL_PRIORITY[LogLevel.WARNING] and self._should_filter_message(message):
            return

        formatted = self._format_message(level, message)
        # markup=False: model output regularly contains [brackets]
        self.console.print(formatted, style=LEVEL_COLORS.get(level, "white"), markup=False, highlight=False)

    def debug(self, message: str) -> None:
        self.log(LogLevel.DEBUG, message)

    def info(self, message: str) -> None:
        self.log(LogLevel.INFO, message)

    def warning(self, message: str) -> None:
        self.log(LogLevel.WARNING, message)

    def error(self, message: str) -> None:
        self.log(LogLevel.ERROR, message)

    def critical(self, message: str) -> None:
        self.log(LogLevel.CRITICAL, message)


# Global logger instance
_global_logger: Optional[Logger] = None


def init_logger(level: str = "INFO", quiet_mode: bool = False) -> Logger:
    """
    Initialize global logger

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        quiet_mode: If True, filter out pipeline internals like raw model output
    """
    global _global_logger
    _global_logger = Logger(level, quiet_mode=quiet_mode)
    return _global_logger


def get_logger() -> Logger:
    """Get global logger instance"""
    global _global_logger
    if _global_logger is None:
        level = os.environ.get("PLANWISE_LOG_LEVEL", "INFO")
        quiet = os.environ.get("PLANWISE_QUIET_MODE", "false").lower() in ("true", "1", "yes")
        _global_logger = Logger(level, quiet_mode=quiet)
    return _global_logger


def set_quiet_mode(enabled: bool) -> None:
    """Enable or disable quiet mode on the global logger"""
    get_logger().quiet_mode = enabled

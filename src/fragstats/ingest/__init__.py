"""Input adapters that turn raw server log text into typed events."""

from .log_parser import LOG_RULES, LogParser, LogRule, iter_log_lines, parse_line
from .timestamps import TimestampFormatError, format_timestamp, parse_timestamp

__all__ = [
    "LOG_RULES",
    "LogParser",
    "LogRule",
    "iter_log_lines",
    "parse_line",
    "TimestampFormatError",
    "format_timestamp",
    "parse_timestamp",
]

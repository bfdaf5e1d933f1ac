"""Conversions for the fixed timestamp format used in server logs."""

from __future__ import annotations

from datetime import datetime


LOG_TIMESTAMP_FORMAT = "%m/%d/%Y - %H:%M:%S"


class TimestampFormatError(ValueError):
    """Raised when a log timestamp does not match ``MM/DD/YYYY - HH:MM:SS``."""

    def __init__(self, text: str):
        super().__init__(f"timestamp {text!r} does not match 'MM/DD/YYYY - HH:MM:SS'")
        self.text = text


def parse_timestamp(text: str) -> datetime:
    try:
        return datetime.strptime(text, LOG_TIMESTAMP_FORMAT)
    except ValueError:
        raise TimestampFormatError(text) from None


def format_timestamp(value: datetime) -> str:
    return f"{value.month:02d}/{value.day:02d}/{value.year:04d} - {value.hour:02d}:{value.minute:02d}:{value.second:02d}"

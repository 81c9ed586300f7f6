from __future__ import annotations

from typing import Iterable, Optional


class FeedError(Exception):
    """Base class for failures that send a refresh down the recovery path."""


class FetchError(FeedError):
    """The remote feed could not be retrieved (network or HTTP status)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EmptyResultError(FeedError):
    """The feed parsed cleanly but produced zero records."""


class MalformedFeedError(FeedError):
    """The feed text could not be tokenized (e.g. an unterminated quote)."""


class SchemaError(FeedError):
    """The header row lacks one or more required columns."""

    def __init__(self, missing: Iterable[str]):
        self.missing = sorted(missing)
        super().__init__(f"Missing required columns: {', '.join(self.missing)}")


class RowParseError(ValueError):
    """A single row could not be used. Never escapes the parser."""

    def __init__(self, row_number: int, reason: str):
        super().__init__(f"row {row_number}: {reason}")
        self.row_number = row_number
        self.reason = reason

"""Error taxonomy for the filtering engine."""

from typing import Optional


class FeedFilterError(Exception):
    """Base class for all feed filter errors."""


class OracleError(FeedFilterError):
    """The classification oracle could not produce a completion.

    ``status`` is the HTTP status of the failed call, or ``0`` when the request
    never got a response (network failure, timeout).
    """

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"Oracle error {status}: {message}")
        self.status = status
        self.message = message


class ParseError(FeedFilterError):
    """Oracle output did not contain the expected JSON structure."""

    def __init__(self, message: str, text: Optional[str] = None) -> None:
        super().__init__(message)
        self.text = text


class PersistenceError(FeedFilterError):
    """Durable storage read or write failed."""

"""Error taxonomy shared by workers, the repository and the CLI.

Every error carries an ``ErrorKind`` so the orchestrator can turn it into a
``Failed`` result without inspecting the concrete class.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NETWORK = "network"
    PARSE = "parse"
    STORAGE = "storage"
    COOKIE_STORE = "cookie_store"
    API = "api"
    UNKNOWN = "unknown"


class NewsdeskError(Exception):
    """Base class for all classified errors."""

    kind = ErrorKind.UNKNOWN


class NetworkError(NewsdeskError):
    """Connection failure, timeout or non-success HTTP status.

    ``transient`` is True for timeouts, connection resets and 429/5xx
    responses; those are the only failures eligible for a retry.
    """

    kind = ErrorKind.NETWORK

    def __init__(self, message: str, *, transient: bool = False, status: Optional[int] = None):
        super().__init__(message)
        self.transient = transient
        self.status = status


class ParseError(NewsdeskError):
    """Malformed feed, page or OPML document."""

    kind = ErrorKind.PARSE


class StorageError(NewsdeskError):
    """Database I/O failure."""

    kind = ErrorKind.STORAGE


class CookieStoreError(NewsdeskError):
    """Browser cookie database missing, locked or undecodable."""

    kind = ErrorKind.COOKIE_STORE


class ApiError(NewsdeskError):
    """Summarization or bookmarking service rejected the request."""

    kind = ErrorKind.API

    def __init__(self, message: str, *, reason: str = "server", status: Optional[int] = None):
        super().__init__(message)
        self.reason = reason
        self.status = status


def classify(exc: BaseException) -> ErrorKind:
    """Return the error kind for *exc*, UNKNOWN for unclassified exceptions."""
    if isinstance(exc, NewsdeskError):
        return exc.kind
    return ErrorKind.UNKNOWN


__all__ = [
    "ErrorKind",
    "NewsdeskError",
    "NetworkError",
    "ParseError",
    "StorageError",
    "CookieStoreError",
    "ApiError",
    "classify",
]

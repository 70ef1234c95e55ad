"""Error taxonomy for metadata refreshes.

Every failure that can come out of a metadata load is a ``MetadataError``
carrying a machine-readable ``code`` and a ``recoverable`` flag. The cache
treats all of them as a single "refresh failed" outcome.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    FETCH_FAILED = "FETCH_FAILED"
    FETCH_TIMEOUT = "FETCH_TIMEOUT"
    LOCAL_READ_FAILED = "LOCAL_READ_FAILED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    DUPLICATE_COMPONENT = "DUPLICATE_COMPONENT"


class MetadataError(Exception):
    """Base class for metadata load failures."""

    def __init__(self, code: ErrorCode, message: str, *, recoverable: bool) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable


class FetchError(MetadataError):
    """Origin unreachable, unreadable, or answered with a non-success status."""

    def __init__(self, message: str, *, code: ErrorCode = ErrorCode.FETCH_FAILED) -> None:
        super().__init__(code, message, recoverable=True)


class MetadataTimeoutError(MetadataError):
    """Origin did not answer within the configured bound."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.FETCH_TIMEOUT, message, recoverable=True)


class ParseError(MetadataError):
    """Payload does not conform to the component/prop schema."""

    def __init__(self, message: str, *, code: ErrorCode = ErrorCode.INVALID_PAYLOAD) -> None:
        super().__init__(code, message, recoverable=False)

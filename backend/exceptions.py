"""Error taxonomy for extraction, chat and document intake.

``retryable`` tells the bulk scheduler whether its outer retry
applies. Rate limits are first absorbed by the per-cell backoff in
``extractors.py``; the scheduler only ever sees what is left over.
"""
from __future__ import annotations

from typing import Optional


class LexgridError(Exception):
    """Base exception for application errors."""

    retryable = False

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class RateLimited(LexgridError):
    """The completion backend answered 429."""

    retryable = True

    def __init__(self, retry_after: float = 60, message: Optional[str] = None,
                 original_error: Optional[Exception] = None):
        super().__init__(
            message or "Rate limited by the completion service. Please wait a moment and try again.",
            original_error,
        )
        self.retry_after = retry_after


class Unauthorized(LexgridError):
    """The completion backend rejected the API key (or none is configured)."""

    def __init__(self, message: str = "Invalid API key", original_error: Optional[Exception] = None):
        super().__init__(message, original_error)


class UnexpectedResponse(LexgridError):
    """Any other non-success answer from the completion backend."""

    retryable = True

    def __init__(self, status: int, message: str, original_error: Optional[Exception] = None):
        super().__init__(message, original_error)
        self.status = status


class TransportError(LexgridError):
    """Network-level failure: connection refused, reset, timed out."""

    retryable = True


class ParseError(LexgridError):
    """The model answer held no usable JSON object."""

    retryable = True


class ValidationError(LexgridError):
    """Caller supplied missing or invalid fields."""


class UnsupportedFileType(LexgridError):
    pass


class DocumentParseError(LexgridError):
    pass


class NotFound(LexgridError):
    """Unknown document, column or cell id."""

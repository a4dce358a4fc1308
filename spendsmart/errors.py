"""
Error taxonomy for the receipt ingestion pipeline.

Backend / proxy failures are classified here so callers can map them to
user-facing messages without looking at transport details.  Pipeline
rejections (an AI-declared invalid receipt, an unreadable response) are a
separate branch: they are designed outcomes, not faults.
"""
from __future__ import annotations

from typing import Optional


# ---------------------------------------------------------------------------
# Backend / proxy errors
# ---------------------------------------------------------------------------

class BackendAPIError(Exception):
    """Base class for classified backend failures."""

    status_code: int = 502
    default_message = "Processing failed. Please try again."

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.__class__.__name__)
        self.detail = detail


class BadRequestError(BackendAPIError):
    status_code = 400
    default_message = "Invalid image format. Please try with a different image."


class AuthenticationError(BackendAPIError):
    status_code = 401
    default_message = "Authentication failed. Please sign in again."


class NotFoundError(BackendAPIError):
    status_code = 404
    default_message = "The requested resource was not found."


class RateLimitedError(BackendAPIError):
    status_code = 429
    default_message = "Service temporarily unavailable. Please try again in a few minutes."


class ServerError(BackendAPIError):
    status_code = 502
    default_message = "Processing service is currently busy. Please try again later."


class UnexpectedStatusError(BackendAPIError):
    def __init__(self, upstream_status: int, detail: Optional[str] = None):
        super().__init__(detail or f"Unknown error (status code: {upstream_status})")
        self.upstream_status = upstream_status


class NetworkError(BackendAPIError):
    status_code = 503
    default_message = "Network connection issue. Please check your internet and try again."


class DecodingError(BackendAPIError):
    default_message = "Service returned an unexpected response. Please try again."


class NoContentError(BackendAPIError):
    default_message = "Service returned no content. Please try again."


class ImageProcessingError(BackendAPIError):
    status_code = 400
    default_message = "Failed to process image. Please try with a different image."


_STATUS_ERRORS: dict[int, type[BackendAPIError]] = {
    400: BadRequestError,
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
    429: RateLimitedError,
}


def error_for_status(status: int, detail: Optional[str] = None) -> BackendAPIError:
    """Map a non-2xx HTTP status onto the taxonomy."""
    if status in _STATUS_ERRORS:
        return _STATUS_ERRORS[status](detail)
    if 500 <= status <= 599:
        return ServerError(detail)
    return UnexpectedStatusError(status, detail)


def user_message(exc: BaseException) -> str:
    """Return the message a user should see for *exc*."""
    if isinstance(exc, ReceiptRejectedError):
        return exc.message
    if isinstance(exc, BackendAPIError):
        return exc.default_message
    return "Processing failed. Please try again."


# ---------------------------------------------------------------------------
# Pipeline outcomes
# ---------------------------------------------------------------------------

class ReceiptRejectedError(Exception):
    """No receipt was produced."""

    default_message = (
        "Unable to extract receipt data. Please ensure the image is clear "
        "and contains a valid receipt."
    )

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidReceiptError(ReceiptRejectedError):
    """The model explicitly declared the image not a valid receipt."""

    default_message = "Invalid receipt"


class UnreadableResponseError(ReceiptRejectedError):
    """The model response could not be decoded into any known shape."""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

class PersistenceError(Exception):
    """A receipt could not be written to the selected backend."""

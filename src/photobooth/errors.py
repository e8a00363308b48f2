"""Exception types shared across the photobooth services."""

from typing import Optional, Tuple

import httpx

INSUFFICIENT_FUNDS_CODE = 4024


class PhotoboothError(Exception):
    """Base class for all photobooth errors."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class BackendUnavailableError(PhotoboothError):
    """The generation backend refused or dropped the connection."""


class BackendAuthError(PhotoboothError):
    """The generation backend rejected our credentials."""


class BackendTimeoutError(PhotoboothError):
    """The generation backend did not answer in time."""


class GenerationError(PhotoboothError):
    """A generation project failed or produced no output."""


class InsufficientFundsError(GenerationError):
    """The account cannot pay for the requested job."""


class EstimateError(PhotoboothError):
    """A cost estimate could not be retrieved."""


class TranscodeError(PhotoboothError):
    """ffmpeg failed or is missing."""


def is_insufficient_funds(error: BaseException) -> bool:
    """Detect out-of-credit failures by code or message."""
    if isinstance(error, InsufficientFundsError):
        return True
    if getattr(error, "code", None) == INSUFFICIENT_FUNDS_CODE:
        return True
    message = str(error).lower()
    return (
        "insufficient" in message
        or "debit error" in message
        or ("funds" in message and "refund" not in message)
    )


def classify_backend_error(error: BaseException) -> Tuple[int, str]:
    """
    Map a backend failure to an HTTP status and a user-facing message.

    Args:
        error: Exception raised while talking to the generation backend

    Returns:
        Tuple of (status_code, message)
    """
    message = str(error)
    if isinstance(error, (BackendUnavailableError, httpx.ConnectError, ConnectionRefusedError)) or "ECONNREFUSED" in message:
        return 502, "Backend unavailable"
    if isinstance(error, BackendAuthError) or "Invalid credentials" in message:
        return 401, "Authentication failed"
    if isinstance(error, (BackendTimeoutError, httpx.TimeoutException, TimeoutError)) or "timeout" in message.lower():
        return 504, "Gateway timeout"
    return 500, "Failed to connect to Sogni services"

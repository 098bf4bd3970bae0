"""Error taxonomy for transfer runs.

Every failure surfaced to a caller falls into one of six kinds: auth,
network, rate_limit, mapping, provider_write, unknown. ``classify_error``
maps arbitrary exceptions onto that taxonomy for user-visible reporting.
"""

import asyncio
from enum import StrEnum

from attrs import define


class ErrorKind(StrEnum):
    AUTH = "auth"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    MAPPING = "mapping"
    PROVIDER_WRITE = "provider_write"
    UNKNOWN = "unknown"


class TrackLinkerError(Exception):
    """Base class for all errors raised by the transfer engine."""

    kind: ErrorKind = ErrorKind.UNKNOWN


class AuthError(TrackLinkerError):
    """Credentials are unavailable or expired."""

    kind = ErrorKind.AUTH


class TransientError(TrackLinkerError):
    """Retryable network or provider failure."""

    kind = ErrorKind.NETWORK


class RateLimitError(TransientError):
    """External quota or burst limit was hit.

    ``retry_after`` is the provider's suggested wait in seconds, when known.
    """

    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class QuotaExhaustedError(RateLimitError):
    """The daily unit budget is spent; retrying before the reset only burns calls."""


class MappingError(TrackLinkerError):
    """A track could not be resolved to a target item."""

    kind = ErrorKind.MAPPING

    def __init__(self, message: str, track_id: str | None = None) -> None:
        super().__init__(message)
        self.track_id = track_id


class ProviderWriteError(TrackLinkerError):
    """Playlist creation or item insertion failed."""

    kind = ErrorKind.PROVIDER_WRITE


class UnknownError(TrackLinkerError):
    kind = ErrorKind.UNKNOWN


class InvalidTransitionError(TrackLinkerError):
    """A transfer state machine event is not valid in the current state."""


@define(frozen=True, slots=True)
class ErrorInfo:
    """User-facing description of a failure."""

    kind: ErrorKind
    message: str
    track_id: str | None = None


def classify_error(error: BaseException) -> ErrorInfo:
    """Map any exception onto the error taxonomy."""
    message = str(error) or type(error).__name__

    if isinstance(error, TrackLinkerError):
        return ErrorInfo(
            kind=error.kind,
            message=message,
            track_id=getattr(error, "track_id", None),
        )

    error_type = type(error).__name__
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return ErrorInfo(kind=ErrorKind.NETWORK, message=message)
    # httpx transport errors, matched by name
    if error_type in {"ConnectError", "ReadTimeout", "ConnectTimeout", "NetworkError"}:
        return ErrorInfo(kind=ErrorKind.NETWORK, message=message)

    return ErrorInfo(kind=ErrorKind.UNKNOWN, message=message)


_ERROR_TYPES: dict[ErrorKind, type[TrackLinkerError]] = {
    ErrorKind.AUTH: AuthError,
    ErrorKind.NETWORK: TransientError,
    ErrorKind.RATE_LIMIT: RateLimitError,
    ErrorKind.PROVIDER_WRITE: ProviderWriteError,
    ErrorKind.UNKNOWN: UnknownError,
}


def as_tracklinker_error(error: Exception) -> TrackLinkerError:
    """Wrap a foreign exception in the matching taxonomy type.

    TrackLinkerError instances are returned unchanged.
    """
    if isinstance(error, TrackLinkerError):
        return error

    info = classify_error(error)
    wrapped = _ERROR_TYPES.get(info.kind, UnknownError)(info.message)
    wrapped.__cause__ = error
    return wrapped

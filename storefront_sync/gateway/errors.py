"""Error taxonomy for the remote commerce gateway."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    UNAVAILABLE = "unavailable"
    TRANSIENT = "transient"


class GatewayError(RuntimeError):
    """Base class for failures reported by the storefront API."""

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, *, status: int | None = None, reason: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason


class GatewayAuthError(GatewayError):
    """The request carried no credential or the server rejected it."""

    kind = ErrorKind.NOT_AUTHENTICATED


class GatewayUnavailableError(GatewayError):
    """The route does not exist on this backend deployment."""

    kind = ErrorKind.UNAVAILABLE


class GatewayTransientError(GatewayError):
    """Network, timeout or server fault; the caller may retry."""

    kind = ErrorKind.TRANSIENT


_AUTH_STATUSES = frozenset({401, 403})
_UNAVAILABLE_STATUSES = frozenset({404, 405, 501})


def classify_status(status: int) -> type[GatewayError]:
    if status in _AUTH_STATUSES:
        return GatewayAuthError
    if status in _UNAVAILABLE_STATUSES:
        return GatewayUnavailableError
    return GatewayTransientError


__all__ = [
    "ErrorKind",
    "GatewayAuthError",
    "GatewayError",
    "GatewayTransientError",
    "GatewayUnavailableError",
    "classify_status",
]

"""
Error taxonomy shared by every workflow.

Every failure carries an ErrorKind tag (NOT_FOUND, BAD_REQUEST, CONFLICT,
INTERNAL_SERVER). Adapter-level errors keep a finer ``reason`` of their
own but always resolve to one of the four kinds, so the HTTP layer only
ever has to look at ``kind``.
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    CONFLICT = "CONFLICT"
    INTERNAL_SERVER = "INTERNAL_SERVER"


class FailureReason(str, Enum):
    """Why a remote dependency call failed."""
    NOT_FOUND = "NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    CONFLICT = "CONFLICT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL = "INTERNAL"


_REASON_TO_KIND = {
    FailureReason.NOT_FOUND: ErrorKind.NOT_FOUND,
    FailureReason.BAD_REQUEST: ErrorKind.BAD_REQUEST,
    FailureReason.CONFLICT: ErrorKind.CONFLICT,
    FailureReason.SERVICE_UNAVAILABLE: ErrorKind.INTERNAL_SERVER,
    FailureReason.INTERNAL: ErrorKind.INTERNAL_SERVER,
}


class OrderServiceError(Exception):
    """Base class; ``kind`` decides the caller-visible category."""

    label = "Order Error"

    def __init__(self, message: str, kind: ErrorKind, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.retryable = retryable

    def __repr__(self):
        return f"{type(self).__name__}({self.kind.value}: {self.message})"


class OrderError(OrderServiceError):
    pass


class ConcurrencyConflict(OrderError):
    """Optimistic version check failed; the caller must reload and retry."""

    def __init__(self, message: str):
        super().__init__(message, ErrorKind.CONFLICT)


class OrderAlreadyExists(OrderError):
    """Another writer already persisted an order under this id."""

    def __init__(self, message: str):
        super().__init__(message, ErrorKind.CONFLICT)


class DependencyError(OrderServiceError):
    """A remote call failed; ``reason`` is the adapter's classification."""

    def __init__(self, message: str, reason: FailureReason):
        super().__init__(
            message,
            _REASON_TO_KIND[reason],
            retryable=reason is FailureReason.SERVICE_UNAVAILABLE,
        )
        self.reason = reason


class DeviceUnavailable(DependencyError):
    label = "Device Error"


class IdentityUnavailable(DependencyError):
    label = "Identity Error"


class GroupUnavailable(IdentityUnavailable):
    label = "Group Error"


class EmployeeUnavailable(IdentityUnavailable):
    label = "Employee Error"


def http_status_for(error: OrderServiceError) -> int:
    if isinstance(error, DependencyError) and error.reason is FailureReason.SERVICE_UNAVAILABLE:
        return 503
    return {
        ErrorKind.NOT_FOUND: 404,
        ErrorKind.BAD_REQUEST: 400,
        ErrorKind.CONFLICT: 409,
        ErrorKind.INTERNAL_SERVER: 500,
    }[error.kind]


from enum import Enum

from werkzeug.exceptions import UnsupportedMediaType


# Errors raised by requestkit.
#
# Guard policy, per step of the request bracket:
#
#   step       on failure
#   --------   -------------------------------------------------
#   open       propagate (ConnectionAcquisitionError / ConfigurationError)
#   handler    propagate unchanged, after rollback
#   rollback   log and swallow
#   close      log and swallow


class GuardStep(str, Enum):
    OPEN = "open"
    HANDLER = "handler"
    ROLLBACK = "rollback"
    CLOSE = "close"


class ErrorPolicy(str, Enum):
    PROPAGATE = "propagate"
    LOG_AND_SWALLOW = "log_and_swallow"


GUARD_ERROR_POLICY = {
    GuardStep.OPEN: ErrorPolicy.PROPAGATE,
    GuardStep.HANDLER: ErrorPolicy.PROPAGATE,
    GuardStep.ROLLBACK: ErrorPolicy.LOG_AND_SWALLOW,
    GuardStep.CLOSE: ErrorPolicy.LOG_AND_SWALLOW,
}


class RequestKitError(Exception):
    """Base class for every error raised by requestkit."""


class ConfigurationError(RequestKitError):
    """A named configuration value is missing or could not be read."""

    def __init__(self, name: str, reason: str | None = None):
        self.name = name
        message = f"Could not read configuration value '{name}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConnectionAcquisitionError(RequestKitError):
    """No database connection could be attached at the start of a request."""

    def __init__(self, pool_name: str, reason: str | None = None):
        self.pool_name = pool_name
        message = f"Could not get a database connection from pool '{pool_name}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ContentTypeError(RequestKitError, UnsupportedMediaType):
    """The request body was expected to be JSON but the header says otherwise."""

    def __init__(self, content_type: str | None):
        self.content_type = content_type
        super().__init__(
            description=f"The Content-Type of this request must be application/json, received: {content_type}"
        )


class ResponseAlreadyRenderedError(RequestKitError):
    """A RequestHelper renders a single response per request."""

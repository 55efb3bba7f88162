"""Error taxonomy shared by the control plane and the HTTP layer."""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Stable machine-readable error codes returned to clients."""

    CONTAINER_NOT_FOUND = "CONTAINER_NOT_FOUND"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    DOCKER_UNAVAILABLE = "DOCKER_UNAVAILABLE"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    MALFORMED_EVENT = "MALFORMED_EVENT"
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class HarbourmasterError(Exception):
    """Base class for all errors raised by the control plane.

    Attributes:
        code: Machine-readable error code.
        message: Human-readable message, safe to show to clients.
        status_code: HTTP status the transport layer should answer with.
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500
    default_message: str = "An error occurred. Check logs for details."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class EndpointNotFound(HarbourmasterError):
    """No reachable Docker endpoint could be discovered."""

    code = ErrorCode.DOCKER_UNAVAILABLE
    status_code = 503
    default_message = (
        "Docker socket not found. Is Docker running?\n"
        "Try: docker info\n"
        "Or set DOCKER_HOST environment variable"
    )


class RuntimeUnavailable(HarbourmasterError):
    """The Docker daemon could not be reached or failed mid-call."""

    code = ErrorCode.DOCKER_UNAVAILABLE
    status_code = 503
    default_message = "Cannot connect to Docker. Is Docker running?"


class RuntimePermissionDenied(RuntimeUnavailable):
    """The Docker socket exists but this process may not use it."""

    code = ErrorCode.PERMISSION_DENIED
    default_message = "Permission denied. Check Docker socket permissions."


class ContainerNotFound(HarbourmasterError):
    code = ErrorCode.CONTAINER_NOT_FOUND
    status_code = 404
    default_message = "Container not found"


class PreconditionFailed(HarbourmasterError):
    code = ErrorCode.PRECONDITION_FAILED
    status_code = 409
    default_message = "Operation not allowed in the container's current state"


class InvalidIdentifier(HarbourmasterError):
    code = ErrorCode.INVALID_INPUT
    status_code = 400
    default_message = "Invalid container identifier"


class MalformedEvent(HarbourmasterError):
    """A single runtime event could not be parsed. Never fatal to the stream."""

    code = ErrorCode.MALFORMED_EVENT
    default_message = "Malformed Docker event"

"""Application error taxonomy.

Every error carries the HTTP status the API layer answers with, so routes
can raise freely and a single exception handler renders the response.
"""

from enum import Enum


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationMissing(AppError):
    """Required configuration (credentials, storage) is absent."""

    status_code = 500


class NotFound(AppError):
    status_code = 404


class Unauthorized(AppError):
    status_code = 401


class Forbidden(Unauthorized):
    """Caller is known but not allowed to perform the action."""

    status_code = 403


class PreconditionFailed(AppError):
    status_code = 400


class MalformedPayload(AppError):
    status_code = 400


class FailureKind(str, Enum):
    """Classification of an upstream media server failure."""

    UNREACHABLE = "unreachable"
    MISSING_DEPENDENCY = "missing_dependency"
    PRECONDITION = "precondition"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"


class ExternalServiceFailure(AppError):
    """A call to the media server or egress service failed."""

    status_code = 500

    def __init__(
        self,
        message: str,
        kind: FailureKind = FailureKind.UPSTREAM,
        upstream_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.upstream_message = upstream_message or message

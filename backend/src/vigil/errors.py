"""Error taxonomy surfaced by request handlers."""


class VigilError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    code: str = "internal"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.code


class Unauthenticated(VigilError):
    status_code = 401
    code = "unauthenticated"


class InvalidArgument(VigilError):
    status_code = 400
    code = "invalid-argument"


class RateLimited(VigilError):
    """Free-tier quota exhausted. The message is shown to the user."""

    status_code = 429
    code = "resource-exhausted"


class UpstreamUnavailable(VigilError):
    status_code = 503
    code = "unavailable"


class NotFound(VigilError):
    status_code = 404
    code = "not-found"


class Internal(VigilError):
    status_code = 500
    code = "internal"

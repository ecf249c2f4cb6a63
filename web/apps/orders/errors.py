"""Error kinds raised by the orders domain.

Every error carries a short machine-readable ``code`` (returned to HTTP
clients as ``detail``), a human-readable message and the HTTP status the
API maps it to. Neither the views nor the API exception handler inspect
the concrete subclass beyond these attributes.
"""


class OrderError(Exception):
    """Base class for all order engine errors."""

    code = "ORDER_ERROR"
    http_status = 500

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(OrderError):
    """Raised when input is missing or malformed."""

    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(OrderError):
    """Raised when a referenced order or product does not exist."""

    code = "NOT_FOUND"
    http_status = 404


class ForbiddenError(OrderError):
    """Raised when the caller is authenticated but not allowed to act."""

    code = "FORBIDDEN"
    http_status = 403


class InvalidStateError(OrderError):
    """Raised when an entity is not in a state that allows the operation."""

    code = "INVALID_STATE"
    http_status = 400


class InternalError(OrderError):
    """Raised when storage or infrastructure fails."""

    code = "INTERNAL_ERROR"
    http_status = 500


class UpstreamUnavailableError(InternalError):
    """Raised when a remote collaborator cannot be reached."""

    code = "UPSTREAM_UNAVAILABLE"
    http_status = 503

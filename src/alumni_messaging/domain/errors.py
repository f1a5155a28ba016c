"""Error kinds raised by the messaging services."""


class MessagingError(Exception):
    """Base class for failures reported back to the caller."""

    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(MessagingError):
    """A conversation or message id does not resolve."""

    kind = "NotFound"
    status_code = 404


class ForbiddenError(MessagingError):
    """The caller is authenticated but not allowed to perform the action."""

    kind = "Forbidden"
    status_code = 403


class InvalidRequestError(MessagingError):
    """A required field is missing or malformed."""

    kind = "ValidationError"
    status_code = 422


class ConflictError(MessagingError):
    """Reserved for uniqueness rules. Nothing raises it yet."""

    kind = "Conflict"
    status_code = 409


class UnauthenticatedError(MessagingError):
    """No verified identity was attached to the request."""

    kind = "Unauthenticated"
    status_code = 401

"""Error taxonomy for chat operations.

Every error carries a human-readable message that is returned to the
initiating client unchanged. None of them is retried internally.
"""


class ChatError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    """Malformed or empty input; the caller must correct and retry."""
    status_code = 400


class ForbiddenError(ChatError):
    """The actor has no rights over the target."""
    status_code = 403


class NotFoundError(ChatError):
    """Referenced message or user does not exist."""
    status_code = 404


class AlreadyDeletedError(ChatError):
    """Operation is incompatible with a soft-deleted message."""
    status_code = 409


ERRORS_BY_STATUS = {
    cls.status_code: cls
    for cls in (ValidationError, ForbiddenError, NotFoundError, AlreadyDeletedError)
}


def error_from_status(status_code: int, message: str) -> ChatError:
    cls = ERRORS_BY_STATUS.get(status_code, ChatError)
    return cls(message)

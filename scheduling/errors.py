class SchedulingError(Exception):
    """Base class for errors the HTTP layer turns into a JSON failure."""

    status_code = 400
    error_code = "BAD_REQUEST"

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error_code": self.error_code,
            "error_message": self.message,
            "details": self.details,
        }


class BadRequest(SchedulingError):
    """Malformed input, rejected before any business rule runs."""


class InvalidInterval(BadRequest):
    pass


class NotFound(SchedulingError):
    status_code = 404
    error_code = "NOT_FOUND"


class InvalidTransition(SchedulingError):
    status_code = 409
    error_code = "INVALID_STATUS_TRANSITION"


class PersistenceConflict(SchedulingError):
    """
    A race lost at commit time. The caller may re-validate and resubmit;
    the engine never retries on its own.
    """

    status_code = 409
    error_code = "PERSISTENCE_CONFLICT"

    def __init__(self, message: str, failure=None):
        details = {}
        if failure is not None:
            details = {"conflict_code": failure.code, **failure.details}
        super().__init__(message, details)
        self.failure = failure


class InternalError(SchedulingError):
    """Infrastructure fault. Rolled back; the caller sees no internal detail."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "The request could not be completed. Nothing was saved; please try again."):
        super().__init__(message)

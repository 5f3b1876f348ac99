"""Error kinds raised by the ride services.

Each error carries the HTTP status the API boundary answers with, so route
handlers never translate them by hand.
"""


class StudentPoolError(Exception):
    """Base exception for all Student Pool domain and store errors."""

    status_code = 500
    kind = "Error"

    def __init__(self, message: str):
        """Initialize the exception.

        Args:
            message: Human readable reason, returned to the caller.
        """
        self.message = message
        super().__init__(message)

    def to_payload(self) -> dict:
        return {"success": False, "error": self.kind, "message": self.message}


class NotFound(StudentPoolError):
    """Raised when an entity is missing or not visible to the caller."""

    status_code = 404
    kind = "NotFound"


class NotAuthorized(StudentPoolError):
    """Raised when the caller is authenticated but does not own the entity."""

    status_code = 403
    kind = "NotAuthorized"


class InvalidOperation(StudentPoolError):
    """Raised when ride state forbids the operation (no seats, self-join)."""

    status_code = 400
    kind = "InvalidOperation"


class Conflict(StudentPoolError):
    """Raised on duplicate requests or double accepts.

    Under a race the caller may refetch the join status and retry.
    """

    status_code = 400
    kind = "Conflict"


class StoreUnavailable(StudentPoolError):
    """Raised when the database cannot be reached. Safe to retry with backoff."""

    status_code = 503
    kind = "StoreUnavailable"

"""
Service error taxonomy.

Services raise these; the FastAPI exception handler in main.py turns every
ServiceError into a JSON body of the form {"error": code, "message": ...}.
DeliveryError is the exception: it stays inside the notification pipeline.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.extra}


class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidTransitionError(ServiceError):
    """Requested status is not reachable from the order's current status."""

    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(self, current: Optional[str], requested: Optional[str], message: Optional[str] = None):
        super().__init__(
            message or f"Order status '{current}' -> '{requested}' transition is not allowed.",
            current=current,
            requested=requested,
        )
        self.current = current
        self.requested = requested


class ForbiddenError(ServiceError):
    status_code = 403
    code = "FORBIDDEN"


class ValidationError(ServiceError):
    status_code = 400
    code = "BAD_REQUEST"


class ConflictError(ServiceError):
    status_code = 409
    code = "CONFLICT"


class DeliveryError(Exception):
    """
    A notification could not be delivered.

    Wraps the transport/auth cause. Never returned to the caller of a
    status transition; the notifier logs it.
    """

    def __init__(self, message: str, channel: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.channel = channel
        self.cause = cause

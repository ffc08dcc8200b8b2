"""
Domain errors raised by the services layer.

Each error knows the HTTP status and machine-readable code it maps to, the
exception handlers in ``halan.main`` turn them into the standard error envelope.
"""
from typing import Any, Dict, Optional
from fastapi import status


class AppError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "APP_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AppError):
    """Malformed address, phone, cart or patch"""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"


class ConflictError(AppError):
    """The request is legal in general but not for the order's current state"""
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"

    def __init__(self, message: str, current_status=None, requested_status=None, details=None):
        details = dict(details or {})
        if current_status is not None:
            details["currentStatus"] = getattr(current_status, "value", current_status)
        if requested_status is not None:
            details["requestedStatus"] = getattr(requested_status, "value", requested_status)
        super().__init__(message, details)
        self.current_status = current_status
        self.requested_status = requested_status


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class NoPrizesAvailable(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NO_PRIZES_CONFIGURED"

    def __init__(self, message: str = "No prizes configured"):
        super().__init__(message)


class PartialBundleFailure(AppError):
    """
    A child order of a checkout could not be written.

    Only ever raised after the whole bundle has been rolled back, so callers
    never see some of the orders.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "CHECKOUT_FAILED"


class CheckoutTimeout(PartialBundleFailure):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    code = "CHECKOUT_TIMEOUT"

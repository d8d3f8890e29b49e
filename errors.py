"""
Error types raised by the service functions.

Each error carries the HTTP status the API answers with; ``main.py`` renders
them as ``{"detail": message}``.
"""
from typing import Optional


class StoreError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(StoreError):
    status_code = 400


class InsufficientStock(ValidationFailed):
    def __init__(self, message: str = "Insufficient stock"):
        super().__init__(message)


class NotFound(StoreError):
    status_code = 404


class Unauthorized(StoreError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class Forbidden(StoreError):
    status_code = 403


class PaymentError(StoreError):
    status_code = 502


class DatabaseUnavailable(StoreError):
    status_code = 503

    def __init__(self, message: str = "Database not available"):
        super().__init__(message)


class UpstreamError(StoreError):
    """A non-2xx answer from an external service, passed through to the caller."""

    def __init__(self, message: str, status_code: int, details: str = ""):
        super().__init__(message, status_code)
        self.details = details

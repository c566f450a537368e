"""
school_payments/core/exceptions.py
Service-level errors, translated to HTTP responses by the endpoints
"""
from fastapi import status


class ServiceError(Exception):
    """Base error raised by the service layer"""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, status_code: int = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidPaymentError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class TransitionConflictError(ServiceError):
    """A payment or fee was not in the state the transition requires"""
    status_code = status.HTTP_409_CONFLICT


class DatabaseError(Exception):
    """A Supabase/PostgREST call failed"""


class StorageError(Exception):
    """A blob storage call failed"""

"""
shared/utils/errors.py
Domain exceptions. Each carries the HTTP status and machine code that the
AppError handler in main.py turns into an ErrorResponse.
"""

from typing import Dict, List, Optional

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code}


class ValidationError(AppError):
    """Malformed or missing input, reported per field."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"

    def __init__(self, detail: str = "Invalid input", errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(detail)
        self.errors = errors or {}

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(f"{field}: {message}", {field: [message]})

    def to_dict(self) -> dict:
        return {**super().to_dict(), "errors": self.errors}


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class InsufficientFunds(AppError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "insufficient_funds"


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"

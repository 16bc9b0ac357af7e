# mediavault/core/exceptions.py
from __future__ import annotations

"""
MediaVault — Application Exceptions
===================================
A small, consistent layer on top of FastAPI/Starlette's `HTTPException` that
lets services raise typed errors carrying a stable `kind`, a machine-readable
`code` and structured `details`, rendered by `mediavault.core.exception_handlers`.

Taxonomy
--------
- `ValidationError`       → 400, client input is malformed or out of range
- `AuthenticationError`   → 401, no authenticated user id reached us
- `AuthorizationError`    → 403, key belongs to another user
- `NotFoundError`         → 404, referenced object does not exist
- `ConflictError`         → 409, rename target already occupied
- `StoreError`            → 503, the object store failed
- `InternalError`         → 500, anything unanticipated (generic message only)

Usage
-----
    raise ValidationError("File validation failed", code=ErrorCode.FILE_TOO_LARGE,
                          details={"validationErrors": [...]})
"""

from enum import Enum as PyEnum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "ErrorCode",
    "AppException",
    "ValidationError",
    "InvalidFilename",
    "InvalidKey",
    "ExtensionChangeNotAllowed",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "StoreError",
    "InternalError",
]


class ErrorCode(str, PyEnum):
    """Stable error codes surfaced to clients. Never rename a value once shipped."""

    # Client errors (4xx)
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    FILE_TOO_SMALL = "FILE_TOO_SMALL"
    TOO_MANY_FILES = "TOO_MANY_FILES"
    INVALID_FILENAME = "INVALID_FILENAME"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INVALID_FILE_ID = "INVALID_FILE_ID"
    INVALID_UPLOAD_ID = "INVALID_UPLOAD_ID"
    INVALID_PARTS = "INVALID_PARTS"
    INVALID_KEY = "INVALID_KEY"
    EXTENSION_CHANGE_NOT_ALLOWED = "EXTENSION_CHANGE_NOT_ALLOWED"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # Server errors (5xx)
    STORE_ERROR = "STORE_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with optional metadata.

    Attributes
    -----------
    kind : str
        Error category (class-level), e.g. ``validation_error``.
    code : ErrorCode
        Machine-readable code for client-side handling.
    message : str
        Human-readable error message (serialized as `detail` as well).
    details : dict | None
        Structured details (e.g., which validation rules failed).
    """

    kind: str = "app_error"
    default_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        msg = message or self.default_message
        super().__init__(status_code=status_code or self.default_status, detail=msg, headers=headers)
        self.code: ErrorCode = code or self.default_code
        self.message: str = msg
        self.details: Optional[Dict[str, Any]] = details

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    # ── [Helper] Canonical body used by handlers ───────────────────────────
    def to_problem(self, *, request_id: Optional[str] = None) -> Dict[str, Any]:
        """Return a dict matching our JSON error shape."""
        body: Dict[str, Any] = {
            "error": True,
            "kind": self.kind,
            "errorCode": self.code.value,
            "message": self.message,
            "requestId": request_id or "N/A",
        }
        if self.details is not None:
            body["details"] = self.details
        return body


# ──────────────────────────────────────────────────────────────
# 🧾 Client-caused errors
# ──────────────────────────────────────────────────────────────
class ValidationError(AppException):
    """Malformed, missing or out-of-range input. Never retried."""

    kind = "validation_error"
    default_status = status.HTTP_400_BAD_REQUEST
    default_code = ErrorCode.INVALID_REQUEST
    default_message = "Invalid request"


class InvalidFilename(ValidationError):
    default_code = ErrorCode.INVALID_FILENAME
    default_message = "Invalid filename"


class InvalidKey(ValidationError):
    default_code = ErrorCode.INVALID_KEY
    default_message = "Invalid file key"


class ExtensionChangeNotAllowed(ValidationError):
    default_code = ErrorCode.EXTENSION_CHANGE_NOT_ALLOWED
    default_message = "File extension cannot be changed"


class AuthenticationError(AppException):
    kind = "authentication_error"
    default_status = status.HTTP_401_UNAUTHORIZED
    default_code = ErrorCode.UNAUTHORIZED
    default_message = "Authentication required"


class AuthorizationError(AppException):
    """Raised when a key's embedded user id does not match the caller."""

    kind = "authorization_error"
    default_status = status.HTTP_403_FORBIDDEN
    default_code = ErrorCode.FORBIDDEN
    default_message = "You can only access your own files"


class NotFoundError(AppException):
    kind = "not_found"
    default_status = status.HTTP_404_NOT_FOUND
    default_code = ErrorCode.NOT_FOUND
    default_message = "File not found"


class ConflictError(AppException):
    kind = "conflict"
    default_status = status.HTTP_409_CONFLICT
    default_code = ErrorCode.CONFLICT
    default_message = "A file with that name already exists"


# ──────────────────────────────────────────────────────────────
# 🔥 Server-side errors
# ──────────────────────────────────────────────────────────────
class StoreError(AppException):
    """The object store failed (network, permissions, quota). Surfaced, not retried."""

    kind = "store_error"
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = ErrorCode.STORE_ERROR
    default_message = "Storage service error"


class InternalError(AppException):
    kind = "internal_error"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = ErrorCode.INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred"

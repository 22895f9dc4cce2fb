from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base de los errores de dominio que los controladores exponen como HTTP."""

    status_code = 400
    code = "SERVICE_ERROR"

    def __init__(self, message: str, *, extra: Optional[Dict[str, Any]] = None,
                 headers: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}
        self.headers = headers

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.extra}


class ValidationFailed(ServiceError):
    status_code = 400
    code = "VALIDATION_FAILED"


class AuthenticationFailed(ServiceError):
    status_code = 401
    code = "INVALID_CREDENTIALS"

    def __init__(self, message: str = "Invalid email or password.", **kwargs):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"}, **kwargs)


class EmailNotConfirmed(ServiceError):
    status_code = 403
    code = "EMAIL_NOT_CONFIRMED"

    def __init__(self, message: str = "Email not confirmed. Please verify your email before logging in."):
        super().__init__(message)


class AccountBlocked(ServiceError):
    status_code = 403
    code = "ACCOUNT_BLOCKED"

    def __init__(self, message: str = "This account has been blocked after too many failed login attempts. "
                                      "Contact an administrator."):
        super().__init__(message)


class PermissionDenied(ServiceError):
    status_code = 403
    code = "PERMISSION_DENIED"

    def __init__(self, message: str = "Permission denied. Only the owner of this record "
                                      "(or an administrator) may perform this action."):
        super().__init__(message)


class NotFound(ServiceError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str, redirect_to: Optional[str] = None):
        extra = {"redirect_to": redirect_to} if redirect_to else None
        super().__init__(message, extra=extra)


class Conflict(ServiceError):
    status_code = 409
    code = "CONFLICT"


class InvalidTransition(ServiceError):
    status_code = 409
    code = "INVALID_TRANSITION"


class LoginThrottled(ServiceError):
    status_code = 429
    code = "LOGIN_THROTTLED"

    def __init__(self, remaining_seconds: int):
        super().__init__(
            f"Too many failed login attempts. Try again in {remaining_seconds} seconds.",
            extra={"remaining_seconds": remaining_seconds},
            headers={"Retry-After": str(remaining_seconds)},
        )
        self.remaining_seconds = remaining_seconds


class StorageError(ServiceError):
    status_code = 502
    code = "STORAGE_ERROR"


class BookkeepingError(ServiceError):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "An unexpected error occurred. Please try again later."):
        super().__init__(message)

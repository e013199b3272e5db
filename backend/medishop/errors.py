"""
Application error taxonomy

Every failure that reaches a client is an AppError subclass. The handlers in
main.py render them as {"success": false, "message": ..., "errors": [...]}.
"""

from typing import Any, Dict, List, Optional

from fastapi import status


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        **extra: Any
    ):
        self.message = message or self.default_message
        self.errors = errors
        self.extra = extra
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "message": self.message}
        if self.errors:
            payload["errors"] = self.errors
        payload.update(self.extra)
        return payload


# ========== 4xx ==========

class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Access denied. No valid token provided."


class InvalidToken(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid token."


class TokenExpired(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Token expired."


class PrincipalNotFound(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid token. Account not found."


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied. Admin privileges required."


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "The resource was modified concurrently. Please retry."


class RateLimitExceeded(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please try again later."


# ========== 5xx ==========

class InternalError(AppError):
    pass


class ServiceUnavailable(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Database connection not ready. Please try again in a moment."


class SmsDeliveryFailed(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to send OTP"


# ========== Domain ==========

class InvalidStatus(ValidationFailed):
    default_message = "Invalid status"


class InsufficientStock(ValidationFailed):
    default_message = "Insufficient stock"


class OtpNotFound(NotFound):
    default_message = "OTP not found. Please request a new OTP."


class OtpExpired(AppError):
    status_code = status.HTTP_410_GONE
    default_message = "OTP expired. Please request a new OTP."


class OtpLocked(AppError):
    status_code = status.HTTP_423_LOCKED
    default_message = "Too many failed attempts. Please request a new OTP."


class InvalidOtp(ValidationFailed):
    default_message = "Invalid OTP"

    def __init__(self, attempts_left: int):
        super().__init__(
            f"Invalid OTP. {attempts_left} attempt(s) remaining.",
            attemptsLeft=attempts_left
        )
        self.attempts_left = attempts_left


class AccountLocked(AppError):
    status_code = status.HTTP_423_LOCKED
    default_message = "Account locked. Please try again later."

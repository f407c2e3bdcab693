"""
Error taxonomy of the access-control core.

Every error carries the HTTP-ish status the transport layer should answer
with, a user-facing message and (for lockout and session conflicts only)
actionable details. Credential and MFA failures stay deliberately vague.
"""
from datetime import datetime
from typing import Optional


class AccessError(Exception):
    status_code = 400
    message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def details(self) -> dict:
        return {}


# ---------- malformed / conflicting input ----------

class ValidationError(AccessError):
    status_code = 400
    message = "Invalid input"

    def __init__(self, field: str, message: Optional[str] = None, errors=None):
        super().__init__(message)
        self.field = field
        self.errors = list(errors or [])

    def details(self) -> dict:
        out = {"field": self.field}
        if self.errors:
            out["details"] = self.errors
        return out


class DuplicateEmail(ValidationError):
    status_code = 409
    message = "Email already registered"

    def __init__(self):
        super().__init__("email")


class AlreadyVerified(ValidationError):
    status_code = 409
    message = "Email already verified"

    def __init__(self):
        super().__init__("token")


# ---------- bad credentials / codes / tokens ----------

class AuthenticationError(AccessError):
    status_code = 401
    message = "Authentication failed"


class InvalidCredentials(AuthenticationError):
    message = "Invalid email or password"

    def __init__(self, remaining_attempts: Optional[int] = None):
        super().__init__()
        self.remaining_attempts = remaining_attempts

    def details(self) -> dict:
        if self.remaining_attempts is None:
            return {}
        return {"remaining_attempts": self.remaining_attempts}


class InvalidCode(AuthenticationError):
    message = "Invalid MFA code"


class CodeExpired(AuthenticationError):
    message = "MFA code has expired. Please login again."


class InvalidOrExpiredToken(AuthenticationError):
    message = "Invalid or expired token"


# ---------- known caller, not allowed ----------

class AuthorizationError(AccessError):
    status_code = 403
    message = "Forbidden"


class Forbidden(AuthorizationError):
    pass


class EmailNotVerified(AuthorizationError):
    message = "Please verify your email before logging in"


class SessionAlreadyActive(AuthorizationError):
    message = "Account is already logged in on another device. Please logout there first."

    def __init__(self, active_device: Optional[str] = None):
        super().__init__()
        self.active_device = active_device

    def details(self) -> dict:
        return {"session_active": True, "active_device": self.active_device}


class TemporarilyLocked(AuthorizationError):
    message = "Too many failed attempts. Account temporarily locked."

    def __init__(self, remaining_minutes: int, until: datetime):
        super().__init__()
        self.remaining_minutes = remaining_minutes
        self.until = until

    def details(self) -> dict:
        return {
            "temporarily_locked": True,
            "remaining_minutes": self.remaining_minutes,
            "lock_until": self.until.isoformat(),
        }


class PermanentlyLocked(AuthorizationError):
    message = (
        "Account permanently locked due to multiple failed login attempts. "
        "Use 'Forgot Password' to reset your password."
    )

    def details(self) -> dict:
        return {"permanently_locked": True}


# ---------- lookups by id ----------

class NotFoundError(AccessError):
    status_code = 404
    message = "Not found"


class AccountNotFound(NotFoundError):
    message = "Account not found"


# ---------- safe to retry ----------

class TransientError(AccessError):
    status_code = 503
    message = "Temporary failure, please retry"


class ConcurrentUpdateError(TransientError):
    message = "Account was modified concurrently, please retry"


class StoreUnavailable(TransientError):
    message = "Account store unavailable, please retry"


class DeliveryFailed(TransientError):
    message = "Could not deliver the message, please retry"

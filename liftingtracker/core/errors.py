"""Domain errors raised by services and turned into JSON failure payloads by the app's exception handlers."""

from __future__ import annotations


class AppError(Exception):
    """Base for errors that map to a `{"success": false, "message": ...}` response."""

    status_code: int = 400

    def __init__(self, message: str, *, status_code: int | None = None, headers: dict[str, str] | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers


class ValidationError(AppError):
    """Malformed or missing input, caught before any write."""

    status_code = 400


class PermissionDeniedError(AppError):
    """Ownership or authorization failure."""

    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ProviderError(AppError):
    """Billing provider rejected a call. `message` is the provider's own text."""

    status_code = 402


class SecurityError(AppError):
    """Anti-forgery token mismatch. Raised before any business logic runs."""

    status_code = 403

    def __init__(self, message: str = "Security check failed"):
        super().__init__(message)

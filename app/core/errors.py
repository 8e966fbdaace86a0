"""
Typed failures raised by the identity core.

Core modules raise these and never build HTTP responses themselves; the
handlers in ``app.core.exceptions`` translate them at the edge.
"""

from __future__ import annotations


class MenuHubError(Exception):
    """Base class. ``status_code`` is the HTTP status the edge should use."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidPayload(MenuHubError):
    status_code = 400
    code = "INVALID_PAYLOAD"
    default_detail = "Invalid payload"


class ConfigurationError(MenuHubError):
    code = "CONFIGURATION_ERROR"
    default_detail = "Server is misconfigured"


class TokenError(MenuHubError):
    status_code = 401
    code = "TOKEN_ERROR"
    default_detail = "Could not validate credentials"


class TokenInvalid(TokenError):
    code = "TOKEN_INVALID"
    default_detail = "Invalid token"


class TokenExpired(TokenError):
    code = "TOKEN_EXPIRED"
    default_detail = "Token expired"


class InvalidCredentials(MenuHubError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    default_detail = "Invalid email or password"


class AccountSuspended(MenuHubError):
    status_code = 403
    code = "ACCOUNT_SUSPENDED"
    default_detail = "User account is suspended"


class DuplicateAccount(MenuHubError):
    status_code = 409
    code = "DUPLICATE_ACCOUNT"
    default_detail = "Email already registered"


class PermissionRecordError(MenuHubError):
    code = "PERMISSION_RECORD_ERROR"
    default_detail = "Error while verifying permissions"


class NotFound(MenuHubError):
    status_code = 404
    code = "NOT_FOUND"
    default_detail = "Resource not found"

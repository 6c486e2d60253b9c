"""
Authentication / authorization error taxonomy.

Each error carries the HTTP status and error code it maps to at the API
boundary plus a deliberately generic public message. The constructor
message is internal detail: it is logged, never returned to the client.
"""
from __future__ import annotations

REFRESH_TOKEN_MESSAGE = "Invalid or expired refresh token"


class AuthError(Exception):
    status_code = 401
    code = "UNAUTHORIZED"
    public_message = "Authentication required"

    def __init__(self, detail: str | None = None, **context):
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message
        self.context = context


class AuthenticationFailure(AuthError):
    """Bad credentials. Never says whether the email or the password was wrong."""
    code = "INVALID_CREDENTIALS"
    public_message = "Invalid credentials"


class Unauthorized(AuthError):
    """No identity attached to the request."""


class MissingToken(AuthError):
    public_message = "Missing or invalid Authorization header"


class InvalidSignature(AuthError):
    public_message = "Invalid token"


class TokenExpired(AuthError):
    code = "TOKEN_EXPIRED"
    public_message = "Token expired"


class TokenNotFound(AuthError):
    public_message = REFRESH_TOKEN_MESSAGE


class TokenRevoked(AuthError):
    public_message = REFRESH_TOKEN_MESSAGE


class AlreadyRevoked(TokenRevoked):
    """A rotated-out or revoked refresh token was presented again."""


TokenReuseDetected = AlreadyRevoked


class RefreshTokenExpired(TokenExpired):
    """Refresh token past expires_at. Same public message as revoked/unknown."""
    code = "UNAUTHORIZED"
    public_message = REFRESH_TOKEN_MESSAGE


class Forbidden(AuthError):
    status_code = 403
    code = "FORBIDDEN"
    public_message = "Access denied"


class UserNotFound(AuthError):
    status_code = 404
    code = "NOT_FOUND"
    public_message = "User not found"


class PersistenceError(AuthError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    public_message = "Session store unavailable, please retry later"


class RateLimited(AuthError):
    """Too many auth requests from one client inside the window."""
    status_code = 429
    code = "RATE_LIMITED"
    public_message = "Too many requests, please try again later"

"""Authentication error taxonomy.

Every error carries the HTTP status and a client-safe detail message. Errors
that could reveal whether an account exists share one generic message.
"""

from fastapi import status


class AuthError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: str = "Authentication error"

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class InvalidCredentials(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid credentials"


class AccountDeactivated(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Account is deactivated"


class DuplicateOrganizationSlug(AuthError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Organization slug already exists"


class DuplicateEmail(AuthError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Email already registered"


class InvalidOrExpiredToken(AuthError):
    """Refresh token unknown, expired, revoked, or lost a rotation race."""

    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid or expired refresh token"


class InvalidOrExpiredResetToken(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid or expired password reset token"


class InvalidAccessToken(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid access token"


class AccessTokenExpired(InvalidAccessToken):
    detail = "Access token has expired"


class PersistenceFailure(AuthError):
    """The credential store failed. Fatal for the request, never retried."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Internal server error"

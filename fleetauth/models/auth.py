"""Auth request and response models with validation."""

import re
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from fleetauth.models.user import Organization, User

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

# bcrypt only accepts the first 72 bytes of input
MAX_PASSWORD_BYTES = 72


def _normalize_email(v: str) -> str:
    email = v.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Must be a valid email address")
    return email


def _as_text(v: Any) -> str:
    """Coerce any JSON value to a string for endpoints that never reject input."""
    if v is None:
        return ""
    return v if isinstance(v, str) else str(v)


def _check_password_strength(v: str) -> str:
    if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    if not (
        re.search(r"[a-z]", v) and re.search(r"[A-Z]", v) and re.search(r"\d", v)
    ):
        raise ValueError(
            "Password must contain at least one lowercase letter, "
            "one uppercase letter and one digit"
        )
    return v


class AccessClaims(BaseModel):
    """Identity claims carried by a signed access token."""

    user_id: UUID
    email: str
    tenant_id: UUID
    role: str


class IssuedSession(BaseModel):
    """A freshly minted session. The refresh token is the raw secret.

    Attributes:
        access_token: Short-lived signed JWT
        refresh_token: Opaque secret; only its digest is stored
        expires_in: Access token lifetime label, e.g. "15m"
    """

    access_token: str
    refresh_token: str
    expires_in: str


class AuthResult(BaseModel):
    """Session plus the sanitized identity it was issued for."""

    user: User
    organization: Optional[Organization] = None
    session: IssuedSession


class RegisterRequest(BaseModel):
    """Self-service signup creating an organization and its admin user.

    Attributes:
        email: Admin email (globally unique)
        password: 8-72 chars with lower, upper and digit
        first_name: 2-100 chars
        last_name: 2-100 chars
        phone: Optional, max 20 chars
        organization_name: 2-200 chars
        organization_slug: 3-50 chars, lowercase alphanumeric and hyphens
    """

    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=MAX_PASSWORD_BYTES)
    first_name: str = Field(..., min_length=2, max_length=100)
    last_name: str = Field(..., min_length=2, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    organization_name: str = Field(..., min_length=2, max_length=200)
    organization_slug: str = Field(..., min_length=3, max_length=50)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_strong(cls, v: str) -> str:
        return _check_password_strength(v)

    @field_validator("organization_slug")
    @classmethod
    def slug_valid_chars(cls, v: str) -> str:
        """Ensure slug contains only lowercase alphanumerics separated by hyphens."""
        if not SLUG_PATTERN.match(v):
            raise ValueError(
                "Slug must contain only lowercase letters, digits and single hyphens"
            )
        return v


class LoginRequest(BaseModel):
    """Login credentials.

    Password strength is not checked here; a wrong password is simply wrong.
    """

    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1, max_length=1024)

    @field_validator("email")
    @classmethod
    def email_normalized(cls, v: str) -> str:
        return v.strip().lower()


class RefreshRequest(BaseModel):
    """Request to exchange a refresh token for a new token pair."""

    refresh_token: str = Field(..., max_length=1024)


class LogoutRequest(BaseModel):
    """Request to revoke a refresh token.

    Any value is accepted; an unknown token is simply not revoked.
    """

    refresh_token: str = ""

    @field_validator("refresh_token", mode="before")
    @classmethod
    def token_as_text(cls, v: Any) -> str:
        return _as_text(v)


class ForgotPasswordRequest(BaseModel):
    """Any value is accepted so the response never depends on the input."""

    email: str = ""

    @field_validator("email", mode="before")
    @classmethod
    def email_normalized(cls, v: Any) -> str:
        return _as_text(v).strip().lower()


class ResetPasswordRequest(BaseModel):
    """Reset token plus the new password."""

    token: str = Field(..., min_length=1, max_length=1024)
    new_password: str = Field(..., min_length=8, max_length=MAX_PASSWORD_BYTES)

    @field_validator("new_password")
    @classmethod
    def password_strong(cls, v: str) -> str:
        return _check_password_strength(v)


class AuthResponse(BaseModel):
    """Successful register/login/refresh response."""

    user: User
    organization: Optional[Organization] = None
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: str

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(
            user=result.user,
            organization=result.organization,
            access_token=result.session.access_token,
            refresh_token=result.session.refresh_token,
            expires_in=result.session.expires_in,
        )


class MeResponse(BaseModel):
    user: User
    organization: Optional[Organization] = None


class MessageResponse(BaseModel):
    message: str

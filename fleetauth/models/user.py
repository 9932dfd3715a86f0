"""Organization, user and credential record models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class UserRole(str, Enum):
    """Role within an organization."""

    ADMIN = "admin"
    MANAGER = "manager"
    OPERATOR = "operator"


class Organization(BaseModel):
    """A tenant of the fleet application."""

    id: UUID
    name: str
    slug: str
    subscription_status: str = "trial"
    trial_ends_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class User(BaseModel):
    """A user as returned to callers (no password hash)."""

    id: UUID
    organization_id: UUID
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole = UserRole.OPERATOR
    is_active: bool = True
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class UserRecord(User):
    """A stored user including the password hash. Never leaves the service layer."""

    password_hash: str

    def sanitized(self) -> User:
        """Return the public view of this user."""
        return User(**self.model_dump(exclude={"password_hash"}))


class RefreshToken(BaseModel):
    """A stored refresh token. Only the digest of the secret is kept."""

    id: UUID
    user_id: UUID
    token_hash: str
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    created_at: datetime

    def is_usable(self, now: datetime) -> bool:
        return self.revoked_at is None and self.expires_at > now


class PasswordResetToken(BaseModel):
    """A stored single-use password reset token."""

    id: UUID
    user_id: UUID
    token_hash: str
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: datetime

    def is_usable(self, now: datetime) -> bool:
        return self.used_at is None and self.expires_at > now

"""Models package exports."""

from fleetauth.models.auth import (
    AccessClaims,
    AuthResponse,
    AuthResult,
    IssuedSession,
    MessageResponse,
)
from fleetauth.models.user import (
    Organization,
    PasswordResetToken,
    RefreshToken,
    User,
    UserRecord,
    UserRole,
)

__all__ = [
    "AccessClaims",
    "AuthResponse",
    "AuthResult",
    "IssuedSession",
    "MessageResponse",
    "Organization",
    "PasswordResetToken",
    "RefreshToken",
    "User",
    "UserRecord",
    "UserRole",
]

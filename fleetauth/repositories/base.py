"""Credential store protocols.

Services depend on these protocols only. Every read and write happens inside a
unit of work: it commits when the ``async with`` block exits normally and rolls
back when the block raises.
"""

from datetime import datetime
from typing import AsyncContextManager, Optional, Protocol
from uuid import UUID

from fleetauth.models.user import (
    Organization,
    PasswordResetToken,
    RefreshToken,
    UserRecord,
    UserRole,
)


class UnitOfWork(Protocol):
    """Operations available inside one atomic unit of work."""

    # Organizations

    async def find_organization_by_slug(self, slug: str) -> Optional[Organization]:
        ...

    async def find_organization_by_id(
        self, organization_id: UUID
    ) -> Optional[Organization]:
        ...

    async def create_organization(
        self, name: str, slug: str, trial_ends_at: Optional[datetime]
    ) -> Organization:
        """Insert an organization. Raises DuplicateOrganizationSlug on conflict."""
        ...

    # Users

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        """Case-insensitive lookup across all organizations."""
        ...

    async def find_user_by_id(self, user_id: UUID) -> Optional[UserRecord]:
        ...

    async def lock_user(self, user_id: UUID) -> bool:
        """Hold the user row until the unit of work ends.

        Serializes writers that must see each other's changes, such as
        concurrent reset requests for one user. Returns False if the user is gone.
        """
        ...

    async def create_user(
        self,
        organization_id: UUID,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        phone: Optional[str],
        role: UserRole,
    ) -> UserRecord:
        """Insert a user. Raises DuplicateEmail on conflict."""
        ...

    async def update_last_login(self, user_id: UUID, at: datetime) -> None:
        ...

    async def update_password_hash(
        self, user_id: UUID, password_hash: str, at: datetime
    ) -> bool:
        """Return True if the user row was updated."""
        ...

    # Refresh tokens

    async def create_refresh_token(
        self, user_id: UUID, token_hash: str, expires_at: datetime
    ) -> RefreshToken:
        ...

    async def find_active_refresh_token(
        self, token_hash: str, now: datetime
    ) -> Optional[RefreshToken]:
        """Return the token only if revoked_at is null and expires_at > now."""
        ...

    async def revoke_refresh_token(self, token_id: UUID, now: datetime) -> bool:
        """Conditionally revoke one token (only while revoked_at is null).

        Returns False when another caller already revoked it.
        """
        ...

    async def revoke_refresh_tokens_by_hash(self, token_hash: str, now: datetime) -> int:
        ...

    async def revoke_user_refresh_tokens(self, user_id: UUID, now: datetime) -> int:
        ...

    # Password reset tokens

    async def invalidate_password_reset_tokens(self, user_id: UUID, now: datetime) -> int:
        """Mark every unused reset token of the user as used."""
        ...

    async def create_password_reset_token(
        self, user_id: UUID, token_hash: str, expires_at: datetime
    ) -> PasswordResetToken:
        ...

    async def find_usable_password_reset_token(
        self, token_hash: str, now: datetime
    ) -> Optional[PasswordResetToken]:
        """Return the token only if used_at is null and expires_at > now."""
        ...

    async def mark_password_reset_token_used(self, token_id: UUID, now: datetime) -> bool:
        """Conditionally mark one token used (only while used_at is null)."""
        ...


class CredentialStore(Protocol):
    """Durable storage for users, organizations and credential tokens."""

    def unit_of_work(self) -> AsyncContextManager[UnitOfWork]:
        """Open a transaction scoped to an ``async with`` block."""
        ...

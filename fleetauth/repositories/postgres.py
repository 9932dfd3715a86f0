"""PostgreSQL credential store backed by an asyncpg pool."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional
from uuid import UUID, uuid4

import asyncpg
import structlog

from fleetauth.exceptions import (
    DuplicateEmail,
    DuplicateOrganizationSlug,
    PersistenceFailure,
)
from fleetauth.models.user import (
    Organization,
    PasswordResetToken,
    RefreshToken,
    UserRecord,
    UserRole,
)

logger = structlog.get_logger(__name__)

ORGANIZATION_COLUMNS = "id, name, slug, subscription_status, trial_ends_at, created_at, updated_at"

USER_COLUMNS = (
    "id, organization_id, email, password_hash, first_name, last_name, phone, "
    "role, is_active, last_login_at, created_at, updated_at"
)

REFRESH_TOKEN_COLUMNS = "id, user_id, token_hash, expires_at, revoked_at, created_at"

RESET_TOKEN_COLUMNS = "id, user_id, token_hash, expires_at, used_at, created_at"

# Unique constraints/indexes created by migrations/001_auth_core.sql
_DUPLICATE_ERRORS = {
    "organizations_slug_key": DuplicateOrganizationSlug,
    "users_email_lower_idx": DuplicateEmail,
}


def _affected_rows(status: str) -> int:
    """Extract the row count from an asyncpg command status like "UPDATE 3"."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class PostgresUnitOfWork:
    """Credential operations bound to one connection inside a transaction."""

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    async def find_organization_by_slug(self, slug: str) -> Optional[Organization]:
        row = await self._conn.fetchrow(
            f"SELECT {ORGANIZATION_COLUMNS} FROM organizations WHERE slug = $1",
            slug,
        )
        return Organization(**dict(row)) if row is not None else None

    async def find_organization_by_id(
        self, organization_id: UUID
    ) -> Optional[Organization]:
        row = await self._conn.fetchrow(
            f"SELECT {ORGANIZATION_COLUMNS} FROM organizations WHERE id = $1",
            organization_id,
        )
        return Organization(**dict(row)) if row is not None else None

    async def create_organization(
        self, name: str, slug: str, trial_ends_at: Optional[datetime]
    ) -> Organization:
        now = datetime.now(timezone.utc)
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO organizations (id, name, slug, subscription_status, trial_ends_at, created_at, updated_at)
            VALUES ($1, $2, $3, 'trial', $4, $5, $5)
            RETURNING {ORGANIZATION_COLUMNS}
            """,
            uuid4(),
            name,
            slug,
            trial_ends_at,
            now,
        )
        return Organization(**dict(row))

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        row = await self._conn.fetchrow(
            f"SELECT {USER_COLUMNS} FROM users WHERE LOWER(email) = LOWER($1)",
            email,
        )
        return UserRecord(**dict(row)) if row is not None else None

    async def find_user_by_id(self, user_id: UUID) -> Optional[UserRecord]:
        row = await self._conn.fetchrow(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
            user_id,
        )
        return UserRecord(**dict(row)) if row is not None else None

    async def lock_user(self, user_id: UUID) -> bool:
        locked = await self._conn.fetchval(
            "SELECT id FROM users WHERE id = $1 FOR UPDATE",
            user_id,
        )
        return locked is not None

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
        now = datetime.now(timezone.utc)
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO users (id, organization_id, email, password_hash, first_name, last_name,
                               phone, role, is_active, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, TRUE, $9, $9)
            RETURNING {USER_COLUMNS}
            """,
            uuid4(),
            organization_id,
            email,
            password_hash,
            first_name,
            last_name,
            phone,
            role.value,
            now,
        )
        return UserRecord(**dict(row))

    async def update_last_login(self, user_id: UUID, at: datetime) -> None:
        await self._conn.execute(
            "UPDATE users SET last_login_at = $1 WHERE id = $2",
            at,
            user_id,
        )

    async def update_password_hash(
        self, user_id: UUID, password_hash: str, at: datetime
    ) -> bool:
        result = await self._conn.execute(
            "UPDATE users SET password_hash = $1, updated_at = $2 WHERE id = $3",
            password_hash,
            at,
            user_id,
        )
        return _affected_rows(result) == 1

    async def create_refresh_token(
        self, user_id: UUID, token_hash: str, expires_at: datetime
    ) -> RefreshToken:
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO refresh_tokens (id, user_id, token_hash, expires_at, created_at)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING {REFRESH_TOKEN_COLUMNS}
            """,
            uuid4(),
            user_id,
            token_hash,
            expires_at,
            datetime.now(timezone.utc),
        )
        return RefreshToken(**dict(row))

    async def find_active_refresh_token(
        self, token_hash: str, now: datetime
    ) -> Optional[RefreshToken]:
        row = await self._conn.fetchrow(
            f"""
            SELECT {REFRESH_TOKEN_COLUMNS}
            FROM refresh_tokens
            WHERE token_hash = $1 AND revoked_at IS NULL AND expires_at > $2
            """,
            token_hash,
            now,
        )
        return RefreshToken(**dict(row)) if row is not None else None

    async def revoke_refresh_token(self, token_id: UUID, now: datetime) -> bool:
        result = await self._conn.execute(
            """
            UPDATE refresh_tokens
            SET revoked_at = $1
            WHERE id = $2 AND revoked_at IS NULL
            """,
            now,
            token_id,
        )
        return _affected_rows(result) == 1

    async def revoke_refresh_tokens_by_hash(self, token_hash: str, now: datetime) -> int:
        result = await self._conn.execute(
            """
            UPDATE refresh_tokens
            SET revoked_at = $1
            WHERE token_hash = $2 AND revoked_at IS NULL
            """,
            now,
            token_hash,
        )
        return _affected_rows(result)

    async def revoke_user_refresh_tokens(self, user_id: UUID, now: datetime) -> int:
        result = await self._conn.execute(
            """
            UPDATE refresh_tokens
            SET revoked_at = $1
            WHERE user_id = $2 AND revoked_at IS NULL
            """,
            now,
            user_id,
        )
        return _affected_rows(result)

    async def invalidate_password_reset_tokens(self, user_id: UUID, now: datetime) -> int:
        result = await self._conn.execute(
            """
            UPDATE password_reset_tokens
            SET used_at = $1
            WHERE user_id = $2 AND used_at IS NULL
            """,
            now,
            user_id,
        )
        return _affected_rows(result)

    async def create_password_reset_token(
        self, user_id: UUID, token_hash: str, expires_at: datetime
    ) -> PasswordResetToken:
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO password_reset_tokens (id, user_id, token_hash, expires_at, created_at)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING {RESET_TOKEN_COLUMNS}
            """,
            uuid4(),
            user_id,
            token_hash,
            expires_at,
            datetime.now(timezone.utc),
        )
        return PasswordResetToken(**dict(row))

    async def find_usable_password_reset_token(
        self, token_hash: str, now: datetime
    ) -> Optional[PasswordResetToken]:
        row = await self._conn.fetchrow(
            f"""
            SELECT {RESET_TOKEN_COLUMNS}
            FROM password_reset_tokens
            WHERE token_hash = $1 AND used_at IS NULL AND expires_at > $2
            """,
            token_hash,
            now,
        )
        return PasswordResetToken(**dict(row)) if row is not None else None

    async def mark_password_reset_token_used(self, token_id: UUID, now: datetime) -> bool:
        result = await self._conn.execute(
            """
            UPDATE password_reset_tokens
            SET used_at = $1
            WHERE id = $2 AND used_at IS NULL
            """,
            now,
            token_id,
        )
        return _affected_rows(result) == 1


class PostgresCredentialStore:
    """CredentialStore whose units of work are asyncpg transactions."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[PostgresUnitOfWork]:
        """Acquire a connection and run the block in one transaction.

        Database errors are translated: unique violations on the slug or email
        constraints become the duplicate errors, anything else becomes
        PersistenceFailure.
        """
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    yield PostgresUnitOfWork(conn)
        except asyncpg.UniqueViolationError as e:
            error_cls = _DUPLICATE_ERRORS.get(e.constraint_name)
            if error_cls is not None:
                raise error_cls() from e
            logger.error(
                "credential_store_unique_violation",
                constraint=e.constraint_name,
                error=str(e),
            )
            raise PersistenceFailure() from e
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error("credential_store_failed", error=str(e))
            raise PersistenceFailure() from e

"""Session issuance, refresh-token rotation and revocation."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Optional
from uuid import UUID

import structlog

from fleetauth.exceptions import AccountDeactivated, InvalidOrExpiredToken
from fleetauth.models.auth import AccessClaims, AuthResult, IssuedSession
from fleetauth.models.user import User
from fleetauth.repositories.base import CredentialStore, UnitOfWork
from fleetauth.services.hashing import (
    REFRESH_SECRET_BYTES,
    digests_match,
    generate_opaque_secret,
    hash_token,
)
from fleetauth.services.token_signer import TokenSigner

logger = structlog.get_logger(__name__)

REFRESH_TOKEN_EXPIRE_DAYS = 7
LOGOUT_MESSAGE = "Logged out successfully"


class SessionService:
    """Service for the refresh token lifecycle.

    Refresh tokens move Active -> Revoked exactly once. Rotation revokes the
    presented token with a conditional update before minting the replacement,
    so a token can be exchanged at most once even under concurrent requests.
    """

    def __init__(
        self,
        store: CredentialStore,
        signer: TokenSigner,
        refresh_ttl: timedelta = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
    ):
        self._store = store
        self._signer = signer
        self._refresh_ttl = refresh_ttl

    @asynccontextmanager
    async def _unit_of_work(
        self, uow: Optional[UnitOfWork]
    ) -> AsyncIterator[UnitOfWork]:
        """Join the caller's unit of work, or open a new one."""
        if uow is not None:
            yield uow
            return
        async with self._store.unit_of_work() as own:
            yield own

    async def issue_session(
        self, user: User, uow: Optional[UnitOfWork] = None
    ) -> IssuedSession:
        """Mint an access token and a stored refresh token for a verified user.

        Args:
            user: The authenticated user
            uow: Unit of work to write the refresh token in; a new one is
                opened when omitted

        Returns:
            IssuedSession carrying the raw refresh secret
        """
        claims = AccessClaims(
            user_id=user.id,
            email=user.email,
            tenant_id=user.organization_id,
            role=user.role.value,
        )
        access_token = self._signer.issue_access_token(claims)

        raw_refresh = generate_opaque_secret(REFRESH_SECRET_BYTES)
        expires_at = datetime.now(timezone.utc) + self._refresh_ttl

        async with self._unit_of_work(uow) as work:
            stored = await work.create_refresh_token(
                user.id, hash_token(raw_refresh), expires_at
            )

        logger.info(
            "refresh_token_created",
            user_id=str(user.id),
            token_id=str(stored.id),
            expires_at=expires_at.isoformat(),
        )

        return IssuedSession(
            access_token=access_token,
            refresh_token=raw_refresh,
            expires_in=self._signer.default_ttl_label,
        )

    async def rotate(self, raw_token: str) -> AuthResult:
        """Exchange a refresh token for a brand-new session.

        The presented token is revoked and committed before the replacement is
        issued. If issuing fails afterwards the session is lost but the old
        token can never be replayed.

        Args:
            raw_token: The raw refresh token presented by the client

        Returns:
            AuthResult with the new session, sanitized user and organization

        Raises:
            InvalidOrExpiredToken: Unknown, expired or revoked token, or a
                concurrent rotation of the same token won
            AccountDeactivated: The owning user is inactive
        """
        token_hash = hash_token(raw_token)
        now = datetime.now(timezone.utc)

        async with self._store.unit_of_work() as uow:
            stored = await uow.find_active_refresh_token(token_hash, now)
            if stored is None or not digests_match(stored.token_hash, token_hash):
                logger.warning("refresh_token_rejected")
                raise InvalidOrExpiredToken()

            user = await uow.find_user_by_id(stored.user_id)
            if user is None:
                logger.warning("refresh_token_orphaned", token_id=str(stored.id))
                raise InvalidOrExpiredToken()

            if not user.is_active:
                logger.warning("refresh_token_user_deactivated", user_id=str(user.id))
                raise AccountDeactivated()

            if not await uow.revoke_refresh_token(stored.id, now):
                logger.warning(
                    "refresh_token_rotation_conflict",
                    user_id=str(user.id),
                    token_id=str(stored.id),
                )
                raise InvalidOrExpiredToken()

            organization = await uow.find_organization_by_id(user.organization_id)

        logger.info(
            "refresh_token_revoked",
            user_id=str(user.id),
            token_id=str(stored.id),
            reason="rotation",
        )

        session = await self.issue_session(user)
        logger.info("refresh_token_rotated", user_id=str(user.id))

        return AuthResult(
            user=user.sanitized(),
            organization=organization,
            session=session,
        )

    async def logout(self, raw_token: str) -> str:
        """Revoke the refresh token matching the presented secret.

        Unknown or already revoked tokens are not an error; the response is
        the same either way.
        """
        now = datetime.now(timezone.utc)

        async with self._store.unit_of_work() as uow:
            revoked = await uow.revoke_refresh_tokens_by_hash(hash_token(raw_token), now)

        logger.info("user_logged_out", revoked=revoked)
        return LOGOUT_MESSAGE

    async def revoke_all_sessions(
        self, user_id: UUID, uow: Optional[UnitOfWork] = None
    ) -> int:
        """Revoke every live refresh token of a user.

        Args:
            user_id: Owner of the tokens
            uow: Unit of work to join (password reset passes its own)

        Returns:
            Number of tokens revoked
        """
        now = datetime.now(timezone.utc)

        async with self._unit_of_work(uow) as work:
            revoked = await work.revoke_user_refresh_tokens(user_id, now)

        logger.info(
            "all_refresh_tokens_revoked",
            user_id=str(user_id),
            revoked=revoked,
        )
        return revoked

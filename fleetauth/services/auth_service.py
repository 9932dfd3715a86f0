"""Registration, credential verification and current-user lookup."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import structlog

from fleetauth.exceptions import (
    AccountDeactivated,
    DuplicateEmail,
    DuplicateOrganizationSlug,
    InvalidAccessToken,
    InvalidCredentials,
    PersistenceFailure,
)
from fleetauth.models.auth import AuthResult, RegisterRequest
from fleetauth.models.user import Organization, User, UserRole
from fleetauth.repositories.base import CredentialStore
from fleetauth.services.hashing import (
    DEFAULT_BCRYPT_ROUNDS,
    hash_password,
    verify_password,
)
from fleetauth.services.session_service import SessionService

logger = structlog.get_logger(__name__)

TRIAL_PERIOD_DAYS = 14

_dummy_hash_cache: dict[int, str] = {}


async def _get_dummy_hash(rounds: int) -> str:
    """Return a valid bcrypt hash for dummy comparison (timing-attack mitigation)."""
    if rounds not in _dummy_hash_cache:
        _dummy_hash_cache[rounds] = await asyncio.to_thread(
            hash_password, "not-a-real-password", rounds
        )
    return _dummy_hash_cache[rounds]


class AuthService:
    """Service for signup, login and identity lookup."""

    def __init__(
        self,
        store: CredentialStore,
        sessions: SessionService,
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    ):
        self._store = store
        self._sessions = sessions
        self._bcrypt_rounds = bcrypt_rounds

    async def register(self, request: RegisterRequest) -> AuthResult:
        """Create an organization with its admin user and sign the user in.

        Args:
            request: Validated signup payload

        Returns:
            AuthResult for the new admin

        Raises:
            DuplicateOrganizationSlug: Slug is taken
            DuplicateEmail: Email is taken
        """
        async with self._store.unit_of_work() as uow:
            if await uow.find_organization_by_slug(request.organization_slug) is not None:
                raise DuplicateOrganizationSlug()
            if await uow.find_user_by_email(request.email) is not None:
                raise DuplicateEmail()

        password_hash = await asyncio.to_thread(
            hash_password, request.password, self._bcrypt_rounds
        )
        trial_ends_at = datetime.now(timezone.utc) + timedelta(days=TRIAL_PERIOD_DAYS)

        # Organization, user and first refresh token commit together
        async with self._store.unit_of_work() as uow:
            organization = await uow.create_organization(
                request.organization_name,
                request.organization_slug,
                trial_ends_at,
            )
            user = await uow.create_user(
                organization_id=organization.id,
                email=request.email,
                password_hash=password_hash,
                first_name=request.first_name,
                last_name=request.last_name,
                phone=request.phone,
                role=UserRole.ADMIN,
            )
            session = await self._sessions.issue_session(user, uow=uow)

        logger.info(
            "user_registered",
            user_id=str(user.id),
            organization_id=str(organization.id),
            organization_slug=organization.slug,
        )

        return AuthResult(
            user=user.sanitized(),
            organization=organization,
            session=session,
        )

    async def login(self, email: str, password: str) -> AuthResult:
        """Verify credentials and issue a session.

        Args:
            email: Account email (case-insensitive)
            password: Plain-text password

        Returns:
            AuthResult with the new session

        Raises:
            InvalidCredentials: Unknown email or wrong password
            AccountDeactivated: Credentials are right but the account is inactive
        """
        async with self._store.unit_of_work() as uow:
            user = await uow.find_user_by_email(email)
            organization = (
                await uow.find_organization_by_id(user.organization_id)
                if user is not None
                else None
            )

        if user is None:
            await asyncio.to_thread(
                verify_password, password, await _get_dummy_hash(self._bcrypt_rounds)
            )
            logger.warning("login_failed", reason="unknown_email")
            raise InvalidCredentials()

        if not await asyncio.to_thread(verify_password, password, user.password_hash):
            logger.warning("login_failed", user_id=str(user.id), reason="bad_password")
            raise InvalidCredentials()

        if not user.is_active:
            logger.warning("login_failed", user_id=str(user.id), reason="deactivated")
            raise AccountDeactivated()

        now = datetime.now(timezone.utc)
        try:
            async with self._store.unit_of_work() as uow:
                await uow.update_last_login(user.id, now)
            user.last_login_at = now
        except PersistenceFailure:
            logger.warning("last_login_update_failed", user_id=str(user.id))

        session = await self._sessions.issue_session(user)

        logger.info("user_logged_in", user_id=str(user.id))

        return AuthResult(
            user=user.sanitized(),
            organization=organization,
            session=session,
        )

    async def get_me(self, user_id: UUID) -> tuple[User, Optional[Organization]]:
        """Load the user identified by a verified access token.

        Raises:
            InvalidAccessToken: The user no longer exists
            AccountDeactivated: The user has been deactivated
        """
        async with self._store.unit_of_work() as uow:
            user = await uow.find_user_by_id(user_id)
            if user is None:
                raise InvalidAccessToken("User not found")
            organization = await uow.find_organization_by_id(user.organization_id)

        if not user.is_active:
            raise AccountDeactivated()

        return user.sanitized(), organization

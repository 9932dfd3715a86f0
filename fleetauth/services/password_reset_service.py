"""Password reset: single-use reset tokens and atomic password change."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import structlog

from fleetauth.exceptions import InvalidOrExpiredResetToken
from fleetauth.models.user import User
from fleetauth.repositories.base import CredentialStore
from fleetauth.services.email_service import ResetDelivery
from fleetauth.services.hashing import (
    DEFAULT_BCRYPT_ROUNDS,
    RESET_SECRET_BYTES,
    digests_match,
    generate_opaque_secret,
    hash_password,
    hash_token,
)
from fleetauth.services.session_service import SessionService

logger = structlog.get_logger(__name__)

PASSWORD_RESET_EXPIRE_HOURS = 1
RESET_REQUESTED_MESSAGE = (
    "If that email is registered, password reset instructions have been sent"
)
RESET_COMPLETED_MESSAGE = "Password has been reset successfully"

# Signature of BackgroundTasks.add_task: schedule(func, *args)
Scheduler = Callable[..., Any]


class PasswordResetService:
    """Issues and redeems password reset tokens.

    A successful reset changes the password, spends the token and revokes
    every refresh token of the user in a single unit of work.
    """

    def __init__(
        self,
        store: CredentialStore,
        sessions: SessionService,
        delivery: ResetDelivery,
        reset_ttl: timedelta = timedelta(hours=PASSWORD_RESET_EXPIRE_HOURS),
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    ):
        self._store = store
        self._sessions = sessions
        self._delivery = delivery
        self._reset_ttl = reset_ttl
        self._bcrypt_rounds = bcrypt_rounds

    async def request_reset(
        self, email: str, schedule: Optional[Scheduler] = None
    ) -> str:
        """Start a password reset for the account owning ``email``.

        The return value is identical whether or not the account exists, so
        callers cannot learn which emails are registered.

        Args:
            email: Address the user typed in
            schedule: Runs delivery after the response, e.g.
                ``BackgroundTasks.add_task``. Delivery is awaited inline when
                omitted.

        Returns:
            Generic confirmation message
        """
        now = datetime.now(timezone.utc)

        async with self._store.unit_of_work() as uow:
            user = await uow.find_user_by_email(email)
            if user is None:
                logger.warning("password_reset_unknown_email")
                return RESET_REQUESTED_MESSAGE

            # Concurrent requests for one user queue here until the other commits
            if not await uow.lock_user(user.id):
                logger.warning("password_reset_user_missing", user_id=str(user.id))
                return RESET_REQUESTED_MESSAGE

            invalidated = await uow.invalidate_password_reset_tokens(user.id, now)

            raw_token = generate_opaque_secret(RESET_SECRET_BYTES)
            stored = await uow.create_password_reset_token(
                user.id, hash_token(raw_token), now + self._reset_ttl
            )

        logger.info(
            "password_reset_requested",
            user_id=str(user.id),
            token_id=str(stored.id),
            invalidated=invalidated,
            expires_at=stored.expires_at.isoformat(),
        )

        if schedule is not None:
            schedule(self.deliver, user.sanitized(), raw_token)
        else:
            await self.deliver(user.sanitized(), raw_token)

        return RESET_REQUESTED_MESSAGE

    async def deliver(self, user: User, raw_token: str) -> None:
        """Hand a committed reset token to the delivery channel."""
        delivered = await self._delivery.send_password_reset(user, raw_token)
        if not delivered:
            logger.warning("password_reset_not_delivered", user_id=str(user.id))

    async def confirm_reset(self, raw_token: str, new_password: str) -> str:
        """Redeem a reset token and set a new password.

        Args:
            raw_token: Secret from the reset link
            new_password: The new plain-text password

        Returns:
            Confirmation message

        Raises:
            InvalidOrExpiredResetToken: Token unknown, used, expired, or
                redeemed concurrently by another request
        """
        password_hash = await asyncio.to_thread(
            hash_password, new_password, self._bcrypt_rounds
        )
        token_hash = hash_token(raw_token)
        now = datetime.now(timezone.utc)

        async with self._store.unit_of_work() as uow:
            reset_token = await uow.find_usable_password_reset_token(token_hash, now)
            if reset_token is None or not digests_match(reset_token.token_hash, token_hash):
                logger.warning("password_reset_token_rejected")
                raise InvalidOrExpiredResetToken()

            if not await uow.mark_password_reset_token_used(reset_token.id, now):
                logger.warning(
                    "password_reset_token_conflict",
                    token_id=str(reset_token.id),
                )
                raise InvalidOrExpiredResetToken()

            if not await uow.update_password_hash(reset_token.user_id, password_hash, now):
                logger.warning(
                    "password_reset_user_missing",
                    user_id=str(reset_token.user_id),
                )
                raise InvalidOrExpiredResetToken()

            revoked = await self._sessions.revoke_all_sessions(reset_token.user_id, uow=uow)

        logger.info(
            "password_reset_completed",
            user_id=str(reset_token.user_id),
            sessions_revoked=revoked,
        )
        return RESET_COMPLETED_MESSAGE

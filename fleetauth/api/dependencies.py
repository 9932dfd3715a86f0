"""FastAPI dependencies wiring the auth services and authenticating requests.

Every collaborator is built here and handed to the services explicitly;
tests replace any of them through ``app.dependency_overrides``.
"""

from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fleetauth.config import Settings, get_settings
from fleetauth.database import get_pool
from fleetauth.exceptions import InvalidAccessToken, PersistenceFailure
from fleetauth.models.auth import AccessClaims
from fleetauth.repositories.base import CredentialStore
from fleetauth.repositories.postgres import PostgresCredentialStore
from fleetauth.services.auth_service import AuthService
from fleetauth.services.email_service import (
    EmailService,
    LogOnlyResetDelivery,
    ResetDelivery,
)
from fleetauth.services.password_reset_service import PasswordResetService
from fleetauth.services.session_service import SessionService
from fleetauth.services.token_signer import TokenSigner

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_credential_store() -> CredentialStore:
    """Credential store over the process-wide asyncpg pool."""
    try:
        pool = await get_pool()
    except RuntimeError as e:
        logger.error("credential_store_unavailable", error=str(e))
        raise PersistenceFailure() from e
    return PostgresCredentialStore(pool)


def get_token_signer(settings: Settings = Depends(get_settings)) -> TokenSigner:
    return TokenSigner(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        default_ttl=settings.access_token_ttl,
        default_ttl_label=settings.jwt_expires_in,
    )


def get_session_service(
    store: CredentialStore = Depends(get_credential_store),
    signer: TokenSigner = Depends(get_token_signer),
    settings: Settings = Depends(get_settings),
) -> SessionService:
    return SessionService(store, signer, refresh_ttl=settings.refresh_token_ttl)


def get_auth_service(
    store: CredentialStore = Depends(get_credential_store),
    sessions: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(store, sessions, bcrypt_rounds=settings.bcrypt_rounds)


def get_reset_delivery(settings: Settings = Depends(get_settings)) -> ResetDelivery:
    """SMTP delivery when enabled, otherwise a log-only stand-in."""
    if settings.password_reset_email_enabled:
        return EmailService(settings)
    return LogOnlyResetDelivery()


def get_password_reset_service(
    store: CredentialStore = Depends(get_credential_store),
    sessions: SessionService = Depends(get_session_service),
    delivery: ResetDelivery = Depends(get_reset_delivery),
    settings: Settings = Depends(get_settings),
) -> PasswordResetService:
    return PasswordResetService(
        store,
        sessions,
        delivery,
        reset_ttl=settings.password_reset_ttl,
        bcrypt_rounds=settings.bcrypt_rounds,
    )


async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    signer: TokenSigner = Depends(get_token_signer),
) -> AccessClaims:
    """Verify the Bearer access token without touching the store.

    Raises:
        InvalidAccessToken: Missing, malformed, tampered or expired token
    """
    if credentials is None:
        raise InvalidAccessToken("Not authenticated")
    return signer.verify_access_token(credentials.credentials)

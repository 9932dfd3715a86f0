"""Services package exports."""

from fleetauth.services.auth_service import AuthService
from fleetauth.services.logging_service import configure_logging, get_logger
from fleetauth.services.password_reset_service import PasswordResetService
from fleetauth.services.session_service import SessionService
from fleetauth.services.token_signer import TokenSigner

__all__ = [
    "AuthService",
    "PasswordResetService",
    "SessionService",
    "TokenSigner",
    "configure_logging",
    "get_logger",
]

"""Authentication API endpoints."""

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, status

from fleetauth.api.dependencies import (
    get_auth_service,
    get_current_claims,
    get_password_reset_service,
    get_session_service,
)
from fleetauth.models.auth import (
    AccessClaims,
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from fleetauth.services.auth_service import AuthService
from fleetauth.services.password_reset_service import PasswordResetService
from fleetauth.services.session_service import SessionService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Register a new organization and its admin user.

    Returns:
        AuthResponse with tokens, user and organization

    Raises:
        409: Organization slug or email already taken
    """
    result = await auth_service.register(request)
    return AuthResponse.from_result(result)


@router.post("/login")
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Login with email and password.

    Raises:
        401: Invalid credentials or deactivated account
    """
    result = await auth_service.login(request.email, request.password)
    return AuthResponse.from_result(result)


@router.post("/refresh")
async def refresh(
    request: RefreshRequest,
    session_service: SessionService = Depends(get_session_service),
) -> AuthResponse:
    """Exchange a refresh token for a new token pair.

    The presented refresh token is revoked; it cannot be used again.

    Raises:
        401: Refresh token invalid, expired or revoked
    """
    result = await session_service.rotate(request.refresh_token)
    return AuthResponse.from_result(result)


@router.post("/logout")
async def logout(
    request: LogoutRequest,
    session_service: SessionService = Depends(get_session_service),
) -> MessageResponse:
    """Revoke a refresh token. Always succeeds."""
    message = await session_service.logout(request.refresh_token)
    return MessageResponse(message=message)


@router.get("/me")
async def get_me(
    claims: AccessClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service),
) -> MeResponse:
    """Return the authenticated user and organization."""
    user, organization = await auth_service.get_me(claims.user_id)
    return MeResponse(user=user, organization=organization)


@router.post("/forgot-password")
async def forgot_password(
    request: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    reset_service: PasswordResetService = Depends(get_password_reset_service),
) -> MessageResponse:
    """Request a password reset link.

    The response is identical whether or not the email is registered; the
    link is delivered after the response has been sent.
    """
    message = await reset_service.request_reset(
        request.email, schedule=background_tasks.add_task
    )
    return MessageResponse(message=message)


@router.post("/reset-password")
async def reset_password(
    request: ResetPasswordRequest,
    reset_service: PasswordResetService = Depends(get_password_reset_service),
) -> MessageResponse:
    """Set a new password using a reset token.

    All existing sessions of the user are revoked.

    Raises:
        400: Reset token invalid or expired
    """
    message = await reset_service.confirm_reset(request.token, request.new_password)
    return MessageResponse(message=message)

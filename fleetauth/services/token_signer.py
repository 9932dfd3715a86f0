"""Stateless signed access tokens (JWT)."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog

from fleetauth.exceptions import AccessTokenExpired, InvalidAccessToken
from fleetauth.models.auth import AccessClaims

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
DEFAULT_ACCESS_TTL = timedelta(minutes=15)
DEFAULT_ACCESS_TTL_LABEL = "15m"

_REQUIRED_CLAIMS = ["sub", "email", "tenant_id", "role", "type", "iat", "exp"]


class TokenSigner:
    """Issues and verifies short-lived access tokens.

    Verification needs only the signing secret, never the credential store.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = JWT_ALGORITHM,
        default_ttl: timedelta = DEFAULT_ACCESS_TTL,
        default_ttl_label: str = DEFAULT_ACCESS_TTL_LABEL,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self.default_ttl = default_ttl
        self.default_ttl_label = default_ttl_label

    def issue_access_token(
        self, claims: AccessClaims, ttl: Optional[timedelta] = None
    ) -> str:
        """Create a signed JWT access token.

        Args:
            claims: Identity claims to embed
            ttl: Lifetime override; defaults to the configured access TTL

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        lifetime = ttl if ttl is not None else self.default_ttl
        payload = {
            "sub": str(claims.user_id),
            "email": claims.email,
            "tenant_id": str(claims.tenant_id),
            "role": claims.role,
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": now + lifetime,
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        logger.debug(
            "access_token_created",
            user_id=str(claims.user_id),
            tenant_id=str(claims.tenant_id),
            expires_seconds=int(lifetime.total_seconds()),
        )
        return token

    def verify_access_token(self, token: str) -> AccessClaims:
        """Decode and validate a JWT access token.

        Args:
            token: Encoded JWT string

        Returns:
            Claims carried by the token

        Raises:
            AccessTokenExpired: If the token's exp is in the past
            InvalidAccessToken: If the signature, structure or claims are bad
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise AccessTokenExpired()
        except jwt.InvalidTokenError as e:
            logger.debug("access_token_rejected", reason=str(e))
            raise InvalidAccessToken()

        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidAccessToken()

        try:
            return AccessClaims(
                user_id=payload["sub"],
                email=payload["email"],
                tenant_id=payload["tenant_id"],
                role=payload["role"],
            )
        except ValueError:
            raise InvalidAccessToken()

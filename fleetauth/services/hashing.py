"""Password hashing and opaque token helpers."""

import hashlib
import hmac
import secrets

import bcrypt

DEFAULT_BCRYPT_ROUNDS = 12
REFRESH_SECRET_BYTES = 64
RESET_SECRET_BYTES = 32


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash a password using bcrypt with a fresh salt.

    Args:
        password: Plain-text password to hash
        rounds: bcrypt work factor (log2 of iterations)

    Returns:
        Bcrypt hash string
    """
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a bcrypt hash.

    Args:
        password: Plain-text password to check
        password_hash: Bcrypt hash to verify against

    Returns:
        True if the password matches. False on mismatch, on a malformed hash,
        or on input bcrypt refuses (over 72 bytes).
    """
    try:
        return bcrypt.checkpw(
            password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except (ValueError, TypeError):
        return False


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest used to store and look up opaque tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_opaque_secret(byte_length: int) -> str:
    """Return a hex-encoded secret drawn from the OS CSPRNG."""
    return secrets.token_hex(byte_length)


def digests_match(left: str, right: str) -> bool:
    """Constant-time comparison of two token digests."""
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))

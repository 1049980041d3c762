"""Credential utilities: password hashing and random token generation."""

import secrets
import bcrypt


# ==================== Password Hashing ====================

def hash_password(password: str) -> str:
    """Hash a plain text password using bcrypt for secure storage."""
    # bcrypt requires bytes and returns bytes
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    # Return as string for database storage
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain text password against a hashed password (constant-time)."""
    password_bytes = plain_password.encode('utf-8')
    hashed_bytes = hashed_password.encode('utf-8')
    try:
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        # Malformed stored hash or over-long input never matches
        return False


_dummy_hash: str | None = None


def burn_password_check(plain_password: str) -> None:
    """Spend the same bcrypt work as a real check when no user matched.

    Keeps "unknown email" and "wrong password" indistinguishable by timing.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password(secrets.token_urlsafe(16))
    verify_password(plain_password, _dummy_hash)


# ==================== Random Tokens ====================

def generate_verification_token() -> str:
    """Create an unguessable single-use email verification token (256 bits)."""
    return secrets.token_urlsafe(32)


def generate_session_id() -> str:
    """Create an opaque session identifier for the session cookie."""
    return secrets.token_urlsafe(32)

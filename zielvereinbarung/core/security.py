"""
Security utilities - password hashing and secure random tokens
"""
import secrets

import bcrypt

from zielvereinbarung.core.config import settings


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8")
        )
    except ValueError:
        # Malformed stored hash, or input beyond the 72 byte bcrypt limit
        return False


def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    ).decode("utf-8")


def generate_session_token() -> str:
    """256-bit URL-safe session token."""
    return secrets.token_urlsafe(32)


def generate_hex_token() -> str:
    """256-bit hex token for reset/verification links."""
    return secrets.token_hex(32)

"""Security utilities for authentication."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
import jwt

from study_assistant.core.config import get_settings

settings = get_settings()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password.

    Args:
        plain_password: Plain text password.
        hashed_password: Hashed password to compare against.

    Returns:
        True if password matches, False otherwise.
    """
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        hashed_password.encode("utf-8")
    )


def get_password_hash(password: str) -> str:
    """Hash a password.

    Args:
        password: Plain text password.

    Returns:
        Hashed password.
    """
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def create_access_token(user_id: int, expires_minutes: Optional[int] = None) -> str:
    """Issue a signed bearer token for a user.

    Args:
        user_id: User the token belongs to.
        expires_minutes: Lifetime override; defaults to settings.

    Returns:
        Encoded JWT.
    """
    lifetime = expires_minutes or settings.access_token_expire_minutes
    payload = {
        "userId": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=lifetime),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a bearer token.

    Raises:
        jwt.InvalidTokenError: If the token is malformed, expired or forged.
    """
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])

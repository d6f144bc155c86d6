"""Bearer-token authentication dependencies.

Tokens are issued by the login flow (outside this service) and carry the
user id in the ``userId`` claim. Chat endpoints accept guests, so an
optional variant is provided alongside the strict one.
"""

import logging
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.core.database import get_db
from study_assistant.core.security import decode_access_token
from study_assistant.models.user import User

logger = logging.getLogger(__name__)

bearer_security = HTTPBearer(auto_error=False)

# Tokens the web client sends when nobody is logged in
_EMPTY_TOKENS = {"", "null", "undefined"}


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get the user identified by the bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or unknown.
    """
    if not credentials or credentials.credentials in _EMPTY_TOKENS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Login diperlukan",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token tidak valid",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("userId")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token tidak valid",
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User tidak ditemukan",
        )

    logger.debug(f"Authenticated via bearer token: user_id={user.id}")
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_security),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Get the current user if authenticated, otherwise None (guest)."""
    try:
        return await get_current_user(credentials, db)
    except HTTPException:
        return None

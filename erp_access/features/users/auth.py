"""
Authentication utilities for bearer JWT verification.

Tokens are issued by the upstream auth service and signed with the shared
``JWT_SECRET``; this module only verifies them and extracts the user id.
"""
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import HTTPException, status

from erp_access.core import config


def verify_jwt_token(token: str) -> dict:
    """
    Verify a JWT and return its payload.

    Args:
        token: JWT token from Authorization header

    Returns:
        Decoded JWT payload

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def token_user_id(payload: dict) -> str:
    """The user id claim; ``userId`` first, ``sub`` as fallback."""
    user_id = payload.get("userId") or payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return str(user_id)


def create_access_token(user_id: str, expires_in: timedelta = timedelta(hours=1)) -> str:
    """Issue a token for ``user_id``. Used by scripts and tests."""
    now = datetime.now(timezone.utc)
    payload = {"userId": user_id, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)

"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from erp_access.core.database.engine import get_db
from erp_access.features.users.auth import token_user_id, verify_jwt_token
from erp_access.features.users.identity import Identity, IdentityResolver


security = HTTPBearer(auto_error=False)


def get_identity_resolver(request: Request) -> IdentityResolver:
    return request.app.state.identity_resolver


async def get_token_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """User id of the bearer token; 401 when the header is missing or the token is invalid."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = verify_jwt_token(credentials.credentials)
    return token_user_id(payload)


async def get_current_identity(
    user_id: Annotated[str, Depends(get_token_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    resolver: Annotated[IdentityResolver, Depends(get_identity_resolver)],
) -> Identity:
    """
    Resolve the caller's identity snapshot.

    Usage:
        @router.get("/me")
        async def get_me(identity: Identity = Depends(get_current_identity)):
            return identity

    Unknown or deactivated users raise ``IdentityNotFound`` (401).
    """
    return await resolver.resolve(db, user_id)


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"

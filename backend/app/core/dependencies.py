"""
Authentication dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT authentication.
"""

import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from redis.exceptions import RedisError
from backend.app.core.jwt import decode_access_token
from backend.app.core.redis_client import get_redis

logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()

# Redis key prefixes shared with the auth service
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
USER_TOKENS_PREFIX = "user:tokens:"


async def is_token_revoked(token: str, user_id: int) -> bool:
    """
    Check the revocation list written by the auth service.

    If Redis is unreachable the request is allowed (availability over
    strictness, tokens are short-lived).
    """
    redis = await get_redis()
    try:
        if await redis.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}"):
            return True
        return bool(await redis.exists(f"{USER_TOKENS_PREFIX}{user_id}:revoked"))
    except RedisError as e:
        logger.warning("Token revocation check skipped: %s", e)
        return False


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    1. Validates JWT token signature and expiry
    2. Requires user_id and organization_id claims
    3. Rejects revoked tokens

    Returns:
        Decoded token payload containing user information

    Raises:
        HTTPException: 401 if authentication fails for any reason
    """
    token = credentials.credentials

    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id or payload.get("organization_id") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if await is_token_revoked(token, user_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload

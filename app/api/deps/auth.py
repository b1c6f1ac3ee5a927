"""JWT validation and user authentication dependencies.

This module provides:
- JWT validation against Supabase JWKS
- User authentication and auto-creation
- RLS-aware database session dependency
"""

import logging
import time
import uuid as uuid_pkg
from collections.abc import AsyncGenerator
from typing import Annotated, Any

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from jose.backends import ECKey
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_db
from app.core.exceptions import AuthenticationError
from app.core.rls import set_rls_user_context
from app.models.user import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Cache for JWKS with TTL to handle key rotation
_jwks_cache: dict[str, Any] = {}
_jwks_cache_timestamp: float = 0.0
_JWKS_CACHE_TTL_SECONDS: float = 3600.0  # 1 hour


async def _fetch_jwks() -> dict[str, Any]:
    """Fetch JWKS from Supabase and update the cache."""
    global _jwks_cache_timestamp
    async with httpx.AsyncClient() as client:
        response = await client.get(settings.supabase_jwks_url)
        response.raise_for_status()
        jwks = response.json()
        _jwks_cache.clear()
        _jwks_cache.update(jwks)
        _jwks_cache_timestamp = time.monotonic()
        return jwks


async def get_jwks(force_refresh: bool = False) -> dict[str, Any]:
    """Fetch and cache JWKS from Supabase with a 1-hour TTL."""
    cache_age = time.monotonic() - _jwks_cache_timestamp
    if _jwks_cache and not force_refresh and cache_age < _JWKS_CACHE_TTL_SECONDS:
        return _jwks_cache

    return await _fetch_jwks()


def get_signing_key(jwks: dict[str, Any], token: str) -> ECKey:
    """Get the signing key from JWKS that matches the token's kid."""
    unverified_header = jwt.get_unverified_header(token)
    kid = unverified_header.get("kid")

    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return ECKey(key, algorithm="ES256")

    raise ValueError("Unable to find matching key in JWKS")


async def _get_or_create_user(
    db: AsyncSession,
    user_id: uuid_pkg.UUID,
    payload: dict[str, Any],
) -> User:
    """Load the user row, creating it on first API call (fallback if the auth trigger didn't run)."""
    statement = select(User).where(User.id == user_id)  # type: ignore[arg-type]
    result = await db.execute(statement)
    user = result.scalar_one_or_none()
    if user:
        return user

    user_metadata = payload.get("user_metadata", {})
    user = User(
        id=user_id,
        email=payload.get("email"),
        display_name=user_metadata.get("full_name") or user_metadata.get("name"),
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info(f"Created user record for {user_id}")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Validate Supabase JWT and return current user.

    Creates user record on first API call if not exists.
    """
    if not credentials:
        raise AuthenticationError("Not authenticated")

    token = credentials.credentials

    try:
        jwks = await get_jwks()
        signing_key = get_signing_key(jwks, token)

        payload = jwt.decode(
            token,
            signing_key,
            algorithms=["ES256"],
            audience="authenticated",
        )
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise AuthenticationError("Invalid authentication token")
        user_id = uuid_pkg.UUID(user_id_str)
    except (JWTError, ValueError) as first_error:
        # Key rotation may have occurred, so force a JWKS refresh and retry once
        try:
            logger.info("JWT validation failed with cached JWKS, forcing refresh")
            jwks = await get_jwks(force_refresh=True)
            signing_key = get_signing_key(jwks, token)
            payload = jwt.decode(
                token, signing_key, algorithms=["ES256"], audience="authenticated"
            )
            user_id_str = payload.get("sub")
            if user_id_str is None:
                raise AuthenticationError("Invalid authentication token") from None
            user_id = uuid_pkg.UUID(user_id_str)
        except (JWTError, ValueError, httpx.HTTPError):
            raise AuthenticationError("Could not validate credentials") from first_error
    except httpx.HTTPError:
        raise AuthenticationError("Could not validate credentials") from None

    return await _get_or_create_user(db, user_id, payload)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_db_with_rls(
    db: DbSession,
    current_user: CurrentUser,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Database session with RLS user context automatically set.

    This dependency combines get_db and get_current_user, then sets the
    PostgreSQL session variable that RLS policies use to identify the user.

    The RLS context uses SET LOCAL, which is transaction-scoped and
    automatically cleared when the transaction ends. This works correctly
    with connection poolers like PgBouncer.

    The meal plan job services commit after every state transition;
    set_rls_user_context re-applies the setting on each new transaction.

    Note: The cron tick uses get_direct_db and never sets a user context.
    """
    await set_rls_user_context(db, current_user.id)
    yield db


RlsDbSession = Annotated[AsyncSession, Depends(get_db_with_rls)]

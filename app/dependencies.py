"""FastAPI dependencies: database session, authenticated actor, directory cache."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.permissions import Actor
from app.core.redis_client import CacheManager, get_redis_client
from app.core.security import access_token_subject
from app.database import get_db
from app.services.user_service import UserService

bearer_scheme = HTTPBearer()

_UNAUTHENTICATED = {"WWW-Authenticate": "Bearer"}


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> UUID:
    """
    Resolve the bearer token to a user ID.

    Raises:
        HTTPException: 401 if the token is invalid, expired or has no usable subject
    """
    user_id = access_token_subject(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers=_UNAUTHENTICATED,
        )
    return user_id


async def get_current_actor(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Actor:
    """
    Load the directory record behind the token and turn it into an actor.

    The actor is bound to the structlog context so every event logged for
    the request carries the caller's role and hospital.

    Raises:
        HTTPException: 401 for an unknown user, 403 for a deactivated one
    """
    user = await UserService.get_user_by_id(db, user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers=_UNAUTHENTICATED,
        )

    if not user["is_active"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    actor = Actor.from_user(user)
    structlog.contextvars.bind_contextvars(
        actor_id=str(actor.id),
        actor_role=actor.kind.value,
        tenant_id=actor.tenant_id,
    )
    return actor


def get_cache_manager() -> CacheManager | None:
    """Directory cache, or None when caching is disabled."""
    if not settings.cache_enabled:
        return None
    return CacheManager(get_redis_client())


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
CacheManagerDep = Annotated[CacheManager | None, Depends(get_cache_manager)]

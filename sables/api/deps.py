"""Shared API dependencies."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from sables.models.user import User
from sables.services.database import get_db


async def get_optional_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    x_user_id: Annotated[int | None, Header()] = None,
) -> User | None:
    """Resolve the caller from the X-User-ID header set by the gateway."""
    if x_user_id is None:
        return None
    user = await db.get(User, x_user_id)
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    user: Annotated[User | None, Depends(get_optional_user)],
) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


async def require_admin(user: Annotated[User, Depends(get_current_user)]) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user

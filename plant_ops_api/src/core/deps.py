from __future__ import annotations

import logging
from typing import AsyncGenerator, List
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import user_id_var
from src.core.security import ACCESS_TOKEN, decode_token
from src.db.session import get_async_session
from src.repositories.security import SecurityRepository

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"

# OAuth2 bearer (used by docs); login endpoint path referenced here
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


# PUBLIC_INTERFACE
async def get_session(
    session_dep=Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield the request-scoped AsyncSession."""
    yield session_dep


# PUBLIC_INTERFACE
async def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_session),
):
    """
    Resolve and return the current user from the Authorization bearer token.
    """
    try:
        payload = decode_token(token, ACCESS_TOKEN)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(UUID(payload["sub"]))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    user_id_var.set(str(user.id))
    return user


# PUBLIC_INTERFACE
async def get_current_active_user(user=Depends(get_current_user)):
    """Ensure user is active."""
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return user


# PUBLIC_INTERFACE
async def get_current_user_roles(
    user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_session),
) -> List[str]:
    """Return the role names of the current user; superadmins are treated as admins."""
    repo = SecurityRepository(session)
    roles = [r.name for r in await repo.list_roles_for_user(user.id)]
    if getattr(user, "is_superadmin", False) and ADMIN_ROLE not in roles:
        roles.append(ADMIN_ROLE)
    return roles


# PUBLIC_INTERFACE
def is_admin(roles: List[str]) -> bool:
    """True when the role list grants administrator rights."""
    return ADMIN_ROLE in roles


# PUBLIC_INTERFACE
def require_roles(*required: str):
    """
    Create a dependency that requires the current user to hold one of the given roles.

    The admin role always passes.
    """

    async def _dep(roles: List[str] = Depends(get_current_user_roles)):
        role_set = set(roles)
        if ADMIN_ROLE in role_set:
            return True
        if role_set.isdisjoint(set(required)):
            logger.info("Access denied; required one of %s, has %s", required, sorted(role_set))
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return True

    return _dep

from __future__ import annotations

import logging
from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import ADMIN_ROLE, get_current_active_user, get_session
from src.core.security import (
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from src.repositories.security import SecurityRepository
from src.schemas.auth import RefreshRequest, RegisterRequest, TokenPair, UserRead
from src.schemas.common import MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def user_to_read(user, roles: List[str]) -> UserRead:
    return UserRead(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        is_active=user.is_active,
        is_superadmin=user.is_superadmin,
        created_at=user.created_at,
        updated_at=user.updated_at,
        roles=roles,
    )


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=UserRead,
    summary="Register first user",
    description="Create the first user of the plant with the 'admin' role. Further users are created by administrators.",
)
async def register_user(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_session),
) -> UserRead:
    """Bootstrap the initial administrator."""
    repo = SecurityRepository(session)
    if await repo.count_users() > 0:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registration is closed; ask an administrator")

    user = await repo.create_user(
        email=payload.email, full_name=payload.full_name, hashed_password=hash_password(payload.password)
    )
    role = await repo.get_role_by_name(ADMIN_ROLE)
    if not role:
        role = await repo.create_role(ADMIN_ROLE, "Administrator")
    await repo.assign_role_to_user(user.id, role.id)
    logger.info("Registered initial administrator %s", user.email)

    roles = [r.name for r in await repo.list_roles_for_user(user.id)]
    return user_to_read(user, roles)


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=TokenPair,
    summary="Login",
    description="Authenticate using OAuth2 password form and receive access/refresh tokens.",
)
async def login_for_tokens(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    """Authenticate user and issue tokens."""
    repo = SecurityRepository(session)
    user = await repo.get_user_by_email(form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.info("Failed login for %s", form_data.username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=400, detail="User is inactive")

    roles = [r.name for r in await repo.list_roles_for_user(user.id)]
    access = create_access_token(subject=str(user.id), roles=roles)
    refresh = create_refresh_token(subject=str(user.id))
    return TokenPair(access_token=access, refresh_token=refresh)


# PUBLIC_INTERFACE
@router.post(
    "/refresh",
    response_model=TokenPair,
    summary="Refresh access token",
    description="Issue a new access token from a valid refresh token.",
)
async def refresh_token(
    payload: RefreshRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    """Validate refresh token and issue a new access token pair."""
    try:
        claims: Dict[str, Any] = decode_token(payload.refresh_token, REFRESH_TOKEN)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(UUID(claims["sub"]))
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    roles = [r.name for r in await repo.list_roles_for_user(user.id)]
    access = create_access_token(subject=str(user.id), roles=roles)
    refresh = create_refresh_token(subject=str(user.id))
    return TokenPair(access_token=access, refresh_token=refresh)


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
    description="Stateless logout. Clients should discard tokens. No server state maintained.",
)
async def logout() -> MessageResponse:
    """Acknowledge logout in stateless JWT systems."""
    return MessageResponse(message="Logged out")


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=UserRead,
    summary="Read current user",
    description="Return the current authenticated user and their roles.",
)
async def read_current_user(
    user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_session),
) -> UserRead:
    """Return current user profile."""
    repo = SecurityRepository(session)
    roles = [r.name for r in await repo.list_roles_for_user(user.id)]
    return user_to_read(user, roles)

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import ADMIN_ROLE, get_session, require_roles
from src.repositories.security import SecurityRepository
from src.schemas.auth import RoleCreate, RolePermissionsUpdate, RoleRead, ScreenPermission

router = APIRouter(prefix="/admin/roles", tags=["Roles"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[RoleRead],
    summary="List roles",
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
async def list_roles(
    session: AsyncSession = Depends(get_session),
    limit: int = 100,
    offset: int = 0,
) -> List[RoleRead]:
    repo = SecurityRepository(session)
    roles = await repo.list_roles(limit=limit, offset=offset)
    return [RoleRead.model_validate(r) for r in roles]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=RoleRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create role",
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
async def create_role(
    payload: RoleCreate,
    session: AsyncSession = Depends(get_session),
) -> RoleRead:
    repo = SecurityRepository(session)
    if await repo.get_role_by_name(payload.name):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Role already exists")
    role = await repo.create_role(payload.name, payload.description)
    return RoleRead.model_validate(role)


# PUBLIC_INTERFACE
@router.get(
    "/{role_id}",
    response_model=RoleRead,
    summary="Get role",
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
async def get_role(
    role_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> RoleRead:
    repo = SecurityRepository(session)
    role = await repo.get_role_by_id(role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return RoleRead.model_validate(role)


# PUBLIC_INTERFACE
@router.delete(
    "/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete role",
    description="Soft-delete a role and detach it from its users. The admin role cannot be deleted.",
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
async def delete_role(
    role_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> None:
    repo = SecurityRepository(session)
    role = await repo.get_role_by_id(role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    if role.name == ADMIN_ROLE:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="The admin role cannot be deleted")
    await repo.soft_delete_role(role_id)


# PUBLIC_INTERFACE
@router.get(
    "/{role_id}/permissions",
    response_model=List[ScreenPermission],
    summary="List screen permissions of a role",
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
async def list_permissions(
    role_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> List[ScreenPermission]:
    repo = SecurityRepository(session)
    if not await repo.get_role_by_id(role_id):
        raise HTTPException(status_code=404, detail="Role not found")
    return [ScreenPermission.model_validate(p) for p in await repo.list_role_permissions(role_id)]


# PUBLIC_INTERFACE
@router.put(
    "/{role_id}/permissions",
    response_model=List[ScreenPermission],
    summary="Set screen permissions of a role",
    description="Insert or replace the view/create/edit/delete flags for each given screen.",
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
async def set_permissions(
    payload: RolePermissionsUpdate,
    role_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> List[ScreenPermission]:
    repo = SecurityRepository(session)
    if not await repo.get_role_by_id(role_id):
        raise HTTPException(status_code=404, detail="Role not found")
    for perm in payload.permissions:
        await repo.upsert_role_permission(
            role_id,
            perm.screen_key,
            can_view=perm.can_view,
            can_create=perm.can_create,
            can_edit=perm.can_edit,
            can_delete=perm.can_delete,
        )
    await repo.commit()
    return [ScreenPermission.model_validate(p) for p in await repo.list_role_permissions(role_id)]

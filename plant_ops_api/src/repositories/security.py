from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func, delete, update

from src.db.base import RECORD_ACTIVE, RECORD_DELETED
from src.db.models.security import User, Role, UserRole, RolePermission
from .base import BaseRepository


class SecurityRepository(BaseRepository):
    """Repository for user/role/screen permission management."""

    # Users
    async def get_user_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return await self.scalar_one_or_none(stmt)

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        return await self.scalar_one_or_none(stmt)

    async def count_users(self) -> int:
        stmt = select(func.count(User.id))
        result = await self.execute(stmt)
        return int(result.scalar_one())

    async def list_users(self, limit: int = 100, offset: int = 0, include_inactive: bool = True) -> List[User]:
        stmt = select(User)
        if not include_inactive:
            stmt = stmt.where(User.is_active.is_(True))
        stmt = stmt.order_by(User.created_at.desc()).offset(offset).limit(limit)
        result = await self.scalars(stmt)
        return list(result)

    async def create_user(
        self,
        *,
        email: str,
        full_name: Optional[str],
        hashed_password: str,
        is_active: bool = True,
        is_superadmin: bool = False,
    ) -> User:
        user = User(
            email=email.lower(),
            full_name=full_name,
            hashed_password=hashed_password,
            is_active=is_active,
            is_superadmin=is_superadmin,
        )
        await self.add(user)
        await self.commit()
        return (await self.get_user_by_email(email))  # type: ignore

    async def update_user(
        self,
        user_id: UUID,
        *,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        hashed_password: Optional[str] = None,
        is_active: Optional[bool] = None,
        is_superadmin: Optional[bool] = None,
    ) -> Optional[User]:
        values = {}
        if email is not None:
            values["email"] = email.lower()
        if full_name is not None:
            values["full_name"] = full_name
        if hashed_password is not None:
            values["hashed_password"] = hashed_password
        if is_active is not None:
            values["is_active"] = is_active
        if is_superadmin is not None:
            values["is_superadmin"] = is_superadmin

        if not values:
            return await self.get_user_by_id(user_id)

        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        await self.execute(stmt)
        await self.commit()
        return await self.get_user_by_id(user_id)

    async def list_roles_for_user(self, user_id: UUID) -> List[Role]:
        stmt = (
            select(Role)
            .join(UserRole, Role.id == UserRole.role_id)
            .where(UserRole.user_id == user_id, Role.record_status == RECORD_ACTIVE)
        )
        result = await self.scalars(stmt)
        return list(result)

    # Roles
    async def list_roles(self, limit: int = 100, offset: int = 0) -> List[Role]:
        stmt = (
            select(Role)
            .where(Role.record_status == RECORD_ACTIVE)
            .order_by(Role.name)
            .offset(offset)
            .limit(limit)
        )
        res = await self.scalars(stmt)
        return list(res)

    async def get_role_by_id(self, role_id: UUID) -> Optional[Role]:
        stmt = select(Role).where(Role.id == role_id, Role.record_status == RECORD_ACTIVE)
        return await self.scalar_one_or_none(stmt)

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        stmt = select(Role).where(Role.name == name, Role.record_status == RECORD_ACTIVE)
        return await self.scalar_one_or_none(stmt)

    async def create_role(self, name: str, description: Optional[str] = None) -> Role:
        role = Role(name=name, description=description)
        await self.add(role)
        await self.commit()
        return (await self.get_role_by_name(name))  # type: ignore

    async def soft_delete_role(self, role_id: UUID) -> None:
        stmt = (
            update(Role)
            .where(Role.id == role_id)
            .values(record_status=RECORD_DELETED)
            .execution_options(synchronize_session="fetch")
        )
        await self.execute(stmt)
        await self.execute(delete(UserRole).where(UserRole.role_id == role_id))
        await self.commit()

    # Screen permissions
    async def list_role_permissions(self, role_id: UUID) -> List[RolePermission]:
        stmt = (
            select(RolePermission)
            .where(RolePermission.role_id == role_id, RolePermission.record_status == RECORD_ACTIVE)
            .order_by(RolePermission.screen_key)
        )
        res = await self.scalars(stmt)
        return list(res)

    async def upsert_role_permission(
        self,
        role_id: UUID,
        screen_key: str,
        *,
        can_view: bool,
        can_create: bool,
        can_edit: bool,
        can_delete: bool,
    ) -> RolePermission:
        stmt = select(RolePermission).where(
            RolePermission.role_id == role_id, RolePermission.screen_key == screen_key
        )
        perm = await self.scalar_one_or_none(stmt)
        if perm is None:
            perm = RolePermission(role_id=role_id, screen_key=screen_key)
            await self.add(perm)
        perm.can_view = can_view
        perm.can_create = can_create
        perm.can_edit = can_edit
        perm.can_delete = can_delete
        perm.record_status = RECORD_ACTIVE
        await self.flush()
        return perm

    # Associations
    async def assign_role_to_user(self, user_id: UUID, role_id: UUID) -> None:
        exists = await self.scalar_one_or_none(
            select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        )
        if exists:
            return
        await self.add(UserRole(user_id=user_id, role_id=role_id))
        await self.commit()

    async def remove_role_from_user(self, user_id: UUID, role_id: UUID) -> None:
        stmt = delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        await self.execute(stmt)
        await self.commit()

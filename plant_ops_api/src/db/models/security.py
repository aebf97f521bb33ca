from __future__ import annotations

from typing import Optional
from sqlalchemy import Boolean, Text, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, UUIDPkMixin, TimestampMixin, RecordStatusMixin


class User(UUIDPkMixin, TimestampMixin, Base):
    """Application user. Deactivated (is_active = false) instead of deleted."""
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
    )

    email: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    is_superadmin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")


class Role(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """Role assigned to users (admin, manager, operator, reviewer, ...)."""
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("name", name="uq_roles_name"),
    )

    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    permissions: Mapped[list["RolePermission"]] = relationship(
        "RolePermission",
        primaryjoin="Role.id==RolePermission.role_id",
        lazy="selectin",
        viewonly=True,
    )


class UserRole(UUIDPkMixin, TimestampMixin, Base):
    """Association of users to roles."""
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
    )

    user_id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role_id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)


class RolePermission(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """Screen-level permission flags for a role."""
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "screen_key", name="uq_role_permissions_role_screen"),
    )

    role_id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    screen_key: Mapped[str] = mapped_column(Text, nullable=False)
    can_view: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    can_create: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    can_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    can_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Table, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authz_engine.db.base import Base, new_id

role_permissions = Table(
    "rbac_role_permissions",
    Base.metadata,
    Column("role_id", ForeignKey("rbac_roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", ForeignKey("rbac_permissions.id", ondelete="CASCADE"), primary_key=True),
)


class RbacRole(Base):
    __tablename__ = "rbac_roles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # 1 = highest authority (super_admin)
    hierarchy_level: Mapped[int] = mapped_column(Integer, nullable=False)
    sensitivity_access: Mapped[str] = mapped_column(String(20), default="basic", nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    permissions: Mapped[list["RbacPermission"]] = relationship(secondary=role_permissions, back_populates="roles")


class RbacPermission(Base):
    __tablename__ = "rbac_permissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    roles: Mapped[list[RbacRole]] = relationship(secondary=role_permissions, back_populates="permissions")


class RbacUserRole(Base):
    __tablename__ = "rbac_user_roles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("core_users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id: Mapped[str] = mapped_column(ForeignKey("rbac_roles.id", ondelete="CASCADE"), nullable=False)

    scope_type: Mapped[str] = mapped_column(String(20), default="global", nullable=False)
    scope_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    role: Mapped[RbacRole] = relationship()


class RbacUserTag(Base):
    __tablename__ = "rbac_user_tags"
    __table_args__ = (UniqueConstraint("user_id", "tag"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("core_users.id", ondelete="CASCADE"), nullable=False, index=True)
    tag: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(String(30), default="access", nullable=False)


class RbacTagPermission(Base):
    __tablename__ = "rbac_tag_permissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tag: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    permission_id: Mapped[str] = mapped_column(ForeignKey("rbac_permissions.id", ondelete="CASCADE"), nullable=False)

    effect: Mapped[str] = mapped_column(String(10), default="grant", nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # null = applies to every subject
    target_tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    permission: Mapped[RbacPermission] = relationship()


class RbacFieldSensitivity(Base):
    __tablename__ = "rbac_field_sensitivity"
    __table_args__ = (UniqueConstraint("table_name", "field_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    sensitivity: Mapped[str] = mapped_column(String(20), default="basic", nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    masking_type: Mapped[str | None] = mapped_column(String(20), default="full", nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    min_sensitivity: Mapped[str | None] = mapped_column(String(20), nullable=True)

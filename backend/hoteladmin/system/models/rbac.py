"""
RBAC ORM 模型: 角色 / 权限 / 角色权限 / 用户角色

角色克隆相关字段:
- SysRole.parent_role_id / clone_type / cloned_at 记录血缘
- SysRolePermission.scope_override 记录克隆时调整过的作用范围
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from hoteladmin.database import Base


class SysRole(Base):
    """角色表"""
    __tablename__ = "sys_role"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, default="")
    # 数值越高权限越大
    level = Column(Integer, default=50, nullable=False)
    category = Column(String(50), nullable=True)
    tags = Column(JSON, default=list)
    is_system = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)

    # 血缘
    parent_role_id = Column(Integer, ForeignKey("sys_role.id"), nullable=True, index=True)
    clone_type = Column(String(20), nullable=True)
    cloned_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    role_permissions = relationship(
        "SysRolePermission", back_populates="role", lazy="selectin", cascade="all, delete-orphan"
    )
    user_roles = relationship(
        "SysUserRole", back_populates="role", lazy="selectin", cascade="all, delete-orphan"
    )

    @property
    def permissions(self):
        return [rp.permission for rp in self.role_permissions]


class SysPermission(Base):
    """权限表"""
    __tablename__ = "sys_permission"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    resource = Column(String(50), nullable=False, default="")
    action = Column(String(50), nullable=False, default="")
    # platform / organization / property / department / own
    scope = Column(String(20), nullable=False, default="property")
    description = Column(Text, nullable=True)
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)


class SysRolePermission(Base):
    """角色-权限关联"""
    __tablename__ = "sys_role_permission"
    __table_args__ = (UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),)

    id = Column(Integer, primary_key=True, index=True)
    role_id = Column(Integer, ForeignKey("sys_role.id"), nullable=False, index=True)
    permission_id = Column(Integer, ForeignKey("sys_permission.id"), nullable=False)
    scope_override = Column(String(20), nullable=True)

    role = relationship("SysRole", back_populates="role_permissions")
    permission = relationship("SysPermission", lazy="joined")

    @property
    def effective_scope(self) -> str:
        return self.scope_override or self.permission.scope


class SysUserRole(Base):
    """用户-角色关联"""
    __tablename__ = "sys_user_role"
    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_user_role"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("sys_role.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    role = relationship("SysRole", back_populates="user_roles")

"""
RBAC Service: 角色管理 + 权限管理 + 用户角色
"""
from typing import Dict, List, Optional, Set
from sqlalchemy.orm import Session
from hoteladmin.system.models.rbac import SysRole, SysPermission, SysRolePermission, SysUserRole


class RoleService:
    """角色管理服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_roles(self, include_inactive: bool = False) -> List[SysRole]:
        q = self.db.query(SysRole)
        if not include_inactive:
            q = q.filter(SysRole.is_active == True)
        return q.order_by(SysRole.id).all()

    def get_role_by_id(self, role_id: int) -> Optional[SysRole]:
        return self.db.query(SysRole).filter(SysRole.id == role_id).first()

    def get_role_by_code(self, code: str) -> Optional[SysRole]:
        return self.db.query(SysRole).filter(SysRole.code == code).first()

    def get_role_by_name(self, name: str) -> Optional[SysRole]:
        return self.db.query(SysRole).filter(SysRole.name == name).first()

    def get_role_names(self) -> List[str]:
        return [name for (name,) in self.db.query(SysRole.name).order_by(SysRole.id).all()]

    def create_role(self, code: str, name: str, description: str = "",
                    level: int = 50, category: Optional[str] = None,
                    tags: Optional[List[str]] = None, **lineage) -> SysRole:
        if self.get_role_by_code(code):
            raise ValueError(f"角色编码 '{code}' 已存在")
        if self.get_role_by_name(name):
            raise ValueError(f"角色名称 '{name}' 已存在")

        role = SysRole(
            code=code, name=name, description=description,
            level=level, category=category, tags=list(tags or []),
            **lineage
        )
        self.db.add(role)
        self.db.flush()
        return role

    def assign_permissions(self, role_id: int, permission_ids: List[int],
                           scope_overrides: Optional[Dict[int, str]] = None) -> None:
        """Replace all permissions for a role"""
        role = self.get_role_by_id(role_id)
        if not role:
            raise ValueError(f"角色 ID {role_id} 不存在")
        scope_overrides = scope_overrides or {}

        # Clear existing
        self.db.query(SysRolePermission).filter(SysRolePermission.role_id == role_id).delete()

        # Add new
        for pid in permission_ids:
            self.db.add(SysRolePermission(
                role_id=role_id, permission_id=pid, scope_override=scope_overrides.get(pid)
            ))

        self.db.flush()
        self.db.expire(role, ["role_permissions"])


class PermissionService:
    """权限管理服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_permission_by_code(self, code: str) -> Optional[SysPermission]:
        return self.db.query(SysPermission).filter(SysPermission.code == code).first()

    def create_permission(self, code: str, name: str, resource: str = "",
                          action: str = "", scope: str = "property",
                          description: Optional[str] = None) -> SysPermission:
        if self.get_permission_by_code(code):
            raise ValueError(f"权限编码 '{code}' 已存在")

        perm = SysPermission(
            code=code, name=name, resource=resource, action=action,
            scope=scope, description=description,
        )
        self.db.add(perm)
        self.db.flush()
        return perm

    # ===== User-Role Operations =====

    def get_user_roles(self, user_id: int) -> List[SysRole]:
        user_roles = self.db.query(SysUserRole).filter(SysUserRole.user_id == user_id).all()
        role_ids = [ur.role_id for ur in user_roles]
        if not role_ids:
            return []
        return self.db.query(SysRole).filter(
            SysRole.id.in_(role_ids),
            SysRole.is_active == True
        ).all()

    def get_user_permissions(self, user_id: int) -> Set[str]:
        """Get all permission codes for a user (aggregated from all roles)"""
        permissions: Set[str] = set()
        for role in self.get_user_roles(user_id):
            for perm in role.permissions:
                if perm.is_active:
                    permissions.add(perm.code)
        return permissions

    def add_user_role(self, user_id: int, role_id: int) -> None:
        existing = self.db.query(SysUserRole).filter(
            SysUserRole.user_id == user_id,
            SysUserRole.role_id == role_id
        ).first()
        if not existing:
            self.db.add(SysUserRole(user_id=user_id, role_id=role_id))
            self.db.flush()

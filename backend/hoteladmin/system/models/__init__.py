"""
系统管理 ORM 模型
"""
from hoteladmin.system.models.rbac import SysRole, SysPermission, SysRolePermission, SysUserRole
from hoteladmin.system.models.clone_template import SysCloneTemplate

__all__ = [
    "SysRole", "SysPermission", "SysRolePermission", "SysUserRole",
    "SysCloneTemplate",
]

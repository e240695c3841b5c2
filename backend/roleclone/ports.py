"""
roleclone/ports.py

外部协作方的契约 - 持久化服务网关和权限检查器
引擎只通过这些协议访问外部，不直接依赖任何实现。
"""
from typing import Iterable, List, Protocol, Set

from roleclone.types import CloneBatchConfig, CloneConfiguration, LineageSnapshot, Role

# 克隆角色需要的权限码
ROLE_CREATE_PERMISSION = "role.create"


class RoleCloneGateway(Protocol):
    """角色持久化服务契约（异步）"""

    async def get_role(self, role_id: str) -> Role:
        """获取角色，不存在时抛出 RoleNotFoundError"""
        ...

    async def clone_role(self, config: CloneConfiguration) -> Role:
        """
        提交一个克隆，返回新角色

        Raises:
            CloneValidationFailed / CloneConflictError / CloneServiceError
        """
        ...

    async def batch_clone_roles(self, config: CloneBatchConfig) -> List[Role]:
        """一次调用创建 len(source_roles) x len(variations) 个角色"""
        ...

    async def get_role_lineage(self, role_id: str) -> LineageSnapshot:
        ...


class PermissionChecker(Protocol):
    def has_permission(self, permission: str) -> bool:
        ...


class StaticPermissionChecker:
    """
    基于固定权限码集合的检查器

    Example:
        >>> checker = StaticPermissionChecker({"role.create"})
        >>> checker.has_permission("role.create")
        True
    """

    def __init__(self, permissions: Iterable[str]):
        self._permissions: Set[str] = set(permissions)

    def has_permission(self, permission: str) -> bool:
        return permission in self._permissions


__all__ = [
    "ROLE_CREATE_PERMISSION",
    "RoleCloneGateway",
    "PermissionChecker",
    "StaticPermissionChecker",
]

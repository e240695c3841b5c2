"""
roleclone/errors.py

角色克隆引擎的异常体系

- 前置条件失败（缺少权限、没有会话）: 本次调用无法继续
- 校验失败: 携带结构化的 CloneValidationResult
- 网关（I/O）失败: 会话状态保持不变，可以重试
"""
from typing import Optional

from roleclone.types import CloneValidationResult


class RoleCloneError(Exception):
    """角色克隆异常基类"""

    pass


# ============== 前置条件 ==============

class ClonePreconditionError(RoleCloneError):
    """调用方需要先满足前置条件"""

    pass


class ClonePermissionDenied(ClonePreconditionError):
    """调用方没有克隆角色所需的权限"""

    def __init__(self, permission: str):
        self.permission = permission
        super().__init__(f"Insufficient permissions to clone roles (requires '{permission}')")


class CloneSessionError(ClonePreconditionError):
    """没有进行中的克隆（或批量）会话"""

    pass


# ============== 校验 ==============

class CloneValidationFailed(RoleCloneError):
    """配置未通过校验；result 中包含字段错误和冲突"""

    def __init__(self, result: CloneValidationResult, message: Optional[str] = None):
        self.result = result
        if message is None:
            details = result.error_messages + [c.message for c in result.conflicts]
            message = "Configuration validation failed"
            if details:
                message = f"{message}: {'; '.join(details)}"
        super().__init__(message)


# ============== 网关（I/O） ==============

class CloneGatewayError(RoleCloneError):
    """持久化服务报告的失败"""

    pass


class RoleNotFoundError(CloneGatewayError):
    def __init__(self, role_id: str):
        self.role_id = role_id
        super().__init__(f"Role {role_id} not found")


class CloneConflictError(CloneGatewayError):
    """持久化服务因记录冲突拒绝了克隆"""

    def __init__(self, message: str, role_name: Optional[str] = None):
        self.role_name = role_name
        super().__init__(message)


class CloneServiceError(CloneGatewayError):
    pass


__all__ = [
    "RoleCloneError",
    "ClonePreconditionError",
    "ClonePermissionDenied",
    "CloneSessionError",
    "CloneValidationFailed",
    "CloneGatewayError",
    "RoleNotFoundError",
    "CloneConflictError",
    "CloneServiceError",
]

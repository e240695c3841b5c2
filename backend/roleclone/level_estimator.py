"""
roleclone/level_estimator.py

级别估算 - 根据权限数量和作用范围给出建议级别

level = round((2 * 权限数 + 平均范围权重) * 类型系数)，再限制在 [10, 100]。
空权限列表的平均范围权重记为 0，得到最低建议级别。
"""
from typing import Dict, Sequence, Union
import math

from roleclone.config import settings
from roleclone.types import CloneType, Permission, Scope

SCOPE_WEIGHTS: Dict[str, int] = {
    Scope.PLATFORM.value: 10,
    Scope.ORGANIZATION.value: 8,
    Scope.PROPERTY.value: 6,
    Scope.DEPARTMENT.value: 4,
    Scope.OWN.value: 2,
}
UNKNOWN_SCOPE_WEIGHT = 3

HIERARCHY_MULTIPLIER = 0.9


def scope_weight(scope: str) -> int:
    return SCOPE_WEIGHTS.get(getattr(scope, "value", scope), UNKNOWN_SCOPE_WEIGHT)


def clamp_level(level: int) -> int:
    return min(max(level, settings.MIN_LEVEL), settings.MAX_LEVEL)


def estimate_level(permissions: Sequence[Permission], clone_type: Union[str, CloneType]) -> int:
    """
    估算角色级别

    Args:
        permissions: 克隆后的权限
        clone_type: 克隆类型（hierarchy 打 9 折）

    Returns:
        [MIN_LEVEL, MAX_LEVEL] 范围内的整数
    """
    count = len(permissions)
    base = 2 * count
    scope_score = sum(scope_weight(p.scope) for p in permissions) / count if count else 0.0
    multiplier = HIERARCHY_MULTIPLIER if clone_type == CloneType.HIERARCHY else 1.0

    # 四舍五入（.5 向上）
    level = math.floor((base + scope_score) * multiplier + 0.5)
    return clamp_level(level)


__all__ = [
    "SCOPE_WEIGHTS",
    "UNKNOWN_SCOPE_WEIGHT",
    "HIERARCHY_MULTIPLIER",
    "scope_weight",
    "clamp_level",
    "estimate_level",
]

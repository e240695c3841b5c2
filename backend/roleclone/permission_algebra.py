"""
roleclone/permission_algebra.py

权限集合计算 - 根据克隆配置从源角色权限推导克隆后的权限

纯函数，无 I/O。计算顺序:
1. 从全部源权限开始
2. 按克隆类型做结构过滤（full/permissions 不过滤，template 可插拔，
   partial 只保留自选权限，hierarchy 按目标级别剔除高范围权限）
3. 分类过滤（先 exclude 后 include，按 resource）
4. 范围过滤（先 exclude 后 include，按 scope）
5. 应用范围调整（只改 scope，不改 ID）
"""
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from roleclone.config import settings
from roleclone.types import CloneConfiguration, CloneType, Permission, Scope

logger = logging.getLogger(__name__)

# 模板过滤器: (permissions, config) -> permissions
TemplateFilter = Callable[[List[Permission], CloneConfiguration], List[Permission]]


def identity_template_filter(
    permissions: List[Permission], config: CloneConfiguration
) -> List[Permission]:
    """默认模板过滤器，不做任何过滤"""
    return list(permissions)


_template_filter: TemplateFilter = identity_template_filter


def register_template_filter(template_filter: Optional[TemplateFilter]) -> None:
    """
    注册全局模板过滤器

    Args:
        template_filter: 过滤函数；传入 None 恢复默认（不过滤）
    """
    global _template_filter
    _template_filter = template_filter or identity_template_filter
    logger.info(f"Template filter set to {_template_filter.__name__}")


def get_template_filter() -> TemplateFilter:
    return _template_filter


# ============== 结构过滤 ==============

def _no_structural_filter(
    permissions: List[Permission], config: CloneConfiguration
) -> List[Permission]:
    return list(permissions)


def _partial_filter(
    permissions: List[Permission], config: CloneConfiguration
) -> List[Permission]:
    # 空选择得到空结果，由校验报告错误
    selected = set(config.permission_filters.custom_selections)
    return [p for p in permissions if p.id in selected]


def _hierarchy_filter(
    permissions: List[Permission], config: CloneConfiguration
) -> List[Permission]:
    target_level = config.new_metadata.level
    result = []
    for p in permissions:
        if target_level < settings.PLATFORM_SCOPE_MIN_LEVEL and p.scope == Scope.PLATFORM:
            continue
        if target_level < settings.ORGANIZATION_SCOPE_MIN_LEVEL and p.scope == Scope.ORGANIZATION:
            continue
        result.append(p)
    return result


_STRUCTURAL_FILTERS: Dict[CloneType, TemplateFilter] = {
    CloneType.FULL: _no_structural_filter,
    CloneType.PERMISSIONS: _no_structural_filter,
    CloneType.PARTIAL: _partial_filter,
    CloneType.HIERARCHY: _hierarchy_filter,
}


def apply_structural_filter(
    permissions: Sequence[Permission],
    config: CloneConfiguration,
    template_filter: Optional[TemplateFilter] = None,
) -> List[Permission]:
    """
    按克隆类型过滤权限

    未知的克隆类型按 full 处理（不过滤），并记录警告。
    """
    permissions = list(permissions)
    clone_type = config.clone_type

    if clone_type == CloneType.TEMPLATE:
        return list((template_filter or _template_filter)(permissions, config))

    structural_filter = _STRUCTURAL_FILTERS.get(clone_type)
    if structural_filter is None:
        logger.warning(f"Unknown clone type {clone_type!r}, falling back to full clone")
        structural_filter = _no_structural_filter
    return structural_filter(permissions, config)


# ============== 分类 / 范围过滤 ==============

def apply_category_filters(
    permissions: Sequence[Permission], config: CloneConfiguration
) -> List[Permission]:
    filters = config.permission_filters
    result = list(permissions)
    if filters.exclude_categories:
        excluded = set(filters.exclude_categories)
        result = [p for p in result if p.resource not in excluded]
    if filters.include_categories:
        included = set(filters.include_categories)
        result = [p for p in result if p.resource in included]
    return result


def apply_scope_filters(
    permissions: Sequence[Permission], config: CloneConfiguration
) -> List[Permission]:
    filters = config.permission_filters
    result = list(permissions)
    if filters.exclude_scopes:
        excluded = set(filters.exclude_scopes)
        result = [p for p in result if p.scope not in excluded]
    if filters.include_scopes:
        included = set(filters.include_scopes)
        result = [p for p in result if p.scope in included]
    return result


def apply_scope_adjustments(
    permissions: Sequence[Permission], config: CloneConfiguration
) -> List[Permission]:
    adjustments = config.scope_adjustments
    return [
        p.with_scope(adjustments[p.id]) if adjustments.get(p.id) else p
        for p in permissions
    ]


def compute_resulting_permissions(
    source_permissions: Sequence[Permission],
    config: CloneConfiguration,
    template_filter: Optional[TemplateFilter] = None,
) -> List[Permission]:
    """
    计算克隆后的权限列表

    Args:
        source_permissions: 源角色权限
        config: 克隆配置
        template_filter: 可选，覆盖全局模板过滤器

    Returns:
        克隆后的权限（源权限的子集，可能调整了 scope）
    """
    permissions = apply_structural_filter(source_permissions, config, template_filter)
    permissions = apply_category_filters(permissions, config)
    permissions = apply_scope_filters(permissions, config)
    return apply_scope_adjustments(permissions, config)


def has_permission_changes(original: Permission, modified: Permission) -> bool:
    return (
        original.scope != modified.scope
        or original.resource != modified.resource
        or original.action != modified.action
    )


def diff_permissions(
    source_permissions: Sequence[Permission],
    resulting_permissions: Sequence[Permission],
) -> Tuple[List[Permission], List[Permission], List[Permission]]:
    """
    对比源权限和结果权限

    Returns:
        (added, removed, modified)，modified 中是调整后的权限
    """
    source_by_id = {p.id: p for p in source_permissions}
    result_ids = {p.id for p in resulting_permissions}

    added = [p for p in resulting_permissions if p.id not in source_by_id]
    removed = [p for p in source_permissions if p.id not in result_ids]
    modified = [
        p for p in resulting_permissions
        if p.id in source_by_id and has_permission_changes(source_by_id[p.id], p)
    ]
    return added, removed, modified


__all__ = [
    "TemplateFilter",
    "identity_template_filter",
    "register_template_filter",
    "get_template_filter",
    "apply_structural_filter",
    "apply_category_filters",
    "apply_scope_filters",
    "apply_scope_adjustments",
    "compute_resulting_permissions",
    "has_permission_changes",
    "diff_permissions",
]

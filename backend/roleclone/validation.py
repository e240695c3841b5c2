"""
roleclone/validation.py

配置校验与冲突分析

所有规则独立执行，不短路。命名冲突作为 conflict 而非字段错误返回，
二者都会使配置不可执行。
"""
from typing import List, Optional

from roleclone.types import (
    CloneConfiguration,
    CloneConflict,
    CloneType,
    CloneValidationResult,
    ConflictAnalysis,
    ConflictType,
    Role,
    RoleDuplicationContext,
    Severity,
    ValidationIssue,
    ValidationSuggestion,
)

MIN_NAME_LENGTH = 3


def _name_taken(name: str, context: Optional[RoleDuplicationContext]) -> bool:
    return bool(context) and name in context.existing_names


def validate_configuration(
    config: CloneConfiguration,
    context: Optional[RoleDuplicationContext] = None,
) -> CloneValidationResult:
    """
    校验克隆配置

    Args:
        config: 克隆配置
        context: 可选上下文（已有名称、级别约束）

    Returns:
        CloneValidationResult，同一输入总是得到相同结果
    """
    errors: List[ValidationIssue] = []
    suggestions: List[ValidationSuggestion] = []
    conflicts: List[CloneConflict] = []
    metadata = config.new_metadata
    name = metadata.name or ""

    # 名称
    if not name.strip():
        errors.append(ValidationIssue("name", "Role name is required"))
    elif len(name) < MIN_NAME_LENGTH:
        errors.append(ValidationIssue(
            "name", f"Role name must be at least {MIN_NAME_LENGTH} characters"
        ))

    if name and _name_taken(name, context):
        conflicts.append(CloneConflict(
            type=ConflictType.NAMING,
            message=f'Role name "{name}" already exists',
            resolution="Choose a different name or add a suffix",
        ))

    # 描述
    if not (metadata.description or "").strip():
        suggestions.append(ValidationSuggestion(
            type="description",
            message="Consider adding a description to help identify this role's purpose",
            auto_applicable=False,
        ))

    # 级别
    constraints = context.hierarchy_constraints if context else None
    if constraints is not None:
        if metadata.level < constraints.min_level:
            errors.append(ValidationIssue(
                "level", f"Role level must be at least {constraints.min_level}"
            ))
        if metadata.level > constraints.max_level:
            errors.append(ValidationIssue(
                "level", f"Role level cannot exceed {constraints.max_level}"
            ))
        if (
            metadata.category
            and constraints.allowed_categories
            and metadata.category not in constraints.allowed_categories
        ):
            errors.append(ValidationIssue(
                "category",
                f'Category "{metadata.category}" is not in the allowed categories',
                Severity.WARNING,
            ))

    # 权限
    if config.clone_type == CloneType.PARTIAL and not config.permission_filters.custom_selections:
        errors.append(ValidationIssue(
            "permissions", "Partial clone requires at least one permission to be selected"
        ))

    has_errors = any(e.severity == Severity.ERROR for e in errors)
    return CloneValidationResult(
        is_valid=not has_errors and not conflicts,
        errors=errors,
        suggestions=suggestions,
        conflicts=conflicts,
    )


def analyze_conflicts(
    config: CloneConfiguration,
    context: Optional[RoleDuplicationContext] = None,
    source_role: Optional[Role] = None,
) -> ConflictAnalysis:
    """
    冲突分析（用于预览）

    - 命名冲突: 名称已存在
    - 层级冲突: 级别超出允许范围
    - 权限冲突: 自选权限或范围调整引用了源角色上不存在的权限
    """
    metadata = config.new_metadata
    naming: List[str] = []
    hierarchy: List[str] = []
    permission: List[str] = []

    if metadata.name and _name_taken(metadata.name, context):
        naming.append(f'Role name "{metadata.name}" already exists')

    constraints = context.hierarchy_constraints if context else None
    if constraints is not None:
        if not constraints.min_level <= metadata.level <= constraints.max_level:
            hierarchy.append(
                f"Level {metadata.level} is outside allowed range "
                f"{constraints.min_level}-{constraints.max_level}"
            )

    if source_role is not None:
        source_ids = {p.id for p in source_role.permissions}
        if config.clone_type == CloneType.PARTIAL:
            for pid in config.permission_filters.custom_selections:
                if pid not in source_ids:
                    permission.append(f"Selected permission {pid} is not granted to the source role")
        for pid in config.scope_adjustments:
            if pid not in source_ids:
                permission.append(f"Scope adjustment targets permission {pid} not granted to the source role")

    return ConflictAnalysis(
        naming_conflicts=naming,
        permission_conflicts=permission,
        hierarchy_conflicts=hierarchy,
    )


__all__ = [
    "MIN_NAME_LENGTH",
    "validate_configuration",
    "analyze_conflicts",
]

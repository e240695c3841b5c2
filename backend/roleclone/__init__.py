"""
roleclone - 角色克隆与血缘引擎

组件（由底向上）:
- permission_algebra: 按克隆配置计算权限集合
- level_estimator: 建议级别估算
- validation: 配置校验与冲突分析
- recommendations: 名称/级别推荐
- lineage: 血缘树追踪与缓存
- batch: 批量克隆展开
- templates: 克隆模板
- stats: 克隆统计
- session: 克隆会话编排（单个 + 批量）

使用方式:
    >>> from roleclone import RoleCloneSession, LineageTracker, StaticPermissionChecker
"""

from roleclone.batch import BatchCloneItem, plan_batch, validate_batch_config
from roleclone.errors import (
    CloneConflictError,
    CloneGatewayError,
    ClonePermissionDenied,
    ClonePreconditionError,
    CloneServiceError,
    CloneSessionError,
    CloneValidationFailed,
    RoleCloneError,
    RoleNotFoundError,
)
from roleclone.level_estimator import estimate_level
from roleclone.lineage import (
    LineageCache,
    LineageRecord,
    LineageTracker,
    build_lineage_forest,
    count_total_roles,
    max_depth,
    prune_lineage,
)
from roleclone.permission_algebra import (
    compute_resulting_permissions,
    diff_permissions,
    register_template_filter,
)
from roleclone.ports import (
    ROLE_CREATE_PERMISSION,
    PermissionChecker,
    RoleCloneGateway,
    StaticPermissionChecker,
)
from roleclone.recommendations import (
    LevelAdjustment,
    NameSuggestion,
    SmartCloneRecommendation,
    generate_recommendations,
)
from roleclone.session import RoleCloneSession, SessionState
from roleclone.stats import compute_duplication_stats
from roleclone.templates import apply_template, template_from_configuration
from roleclone.types import (
    BatchVariation,
    CloneBatchConfig,
    CloneConfiguration,
    ClonePreview,
    CloneTemplate,
    CloneType,
    CloneValidationResult,
    ConflictAnalysis,
    DuplicationStats,
    HierarchyConstraints,
    LineageSnapshot,
    Permission,
    Role,
    RoleDuplicationContext,
    RoleLineage,
    Scope,
)
from roleclone.validation import analyze_conflicts, validate_configuration

__all__ = [
    "BatchCloneItem",
    "plan_batch",
    "validate_batch_config",
    "CloneConflictError",
    "CloneGatewayError",
    "ClonePermissionDenied",
    "ClonePreconditionError",
    "CloneServiceError",
    "CloneSessionError",
    "CloneValidationFailed",
    "RoleCloneError",
    "RoleNotFoundError",
    "estimate_level",
    "LineageCache",
    "LineageRecord",
    "LineageTracker",
    "build_lineage_forest",
    "count_total_roles",
    "max_depth",
    "prune_lineage",
    "compute_resulting_permissions",
    "diff_permissions",
    "register_template_filter",
    "ROLE_CREATE_PERMISSION",
    "PermissionChecker",
    "RoleCloneGateway",
    "StaticPermissionChecker",
    "LevelAdjustment",
    "NameSuggestion",
    "SmartCloneRecommendation",
    "generate_recommendations",
    "RoleCloneSession",
    "SessionState",
    "compute_duplication_stats",
    "apply_template",
    "template_from_configuration",
    "BatchVariation",
    "CloneBatchConfig",
    "CloneConfiguration",
    "ClonePreview",
    "CloneTemplate",
    "CloneType",
    "CloneValidationResult",
    "ConflictAnalysis",
    "DuplicationStats",
    "HierarchyConstraints",
    "LineageSnapshot",
    "Permission",
    "Role",
    "RoleDuplicationContext",
    "RoleLineage",
    "Scope",
    "validate_configuration",
    "analyze_conflicts",
]

"""
roleclone/types.py

角色克隆引擎的数据模型 - 权限、角色、克隆配置、预览、校验结果、血缘节点、模板与统计
"""
from typing import Any, Dict, List, Mapping, Optional, Union
from dataclasses import dataclass, field, fields, replace, asdict
from datetime import datetime
from enum import Enum
import copy


class CloneType(str, Enum):
    """克隆类型 - 决定权限集合的结构过滤方式"""
    FULL = "full"                  # 完整复制
    PERMISSIONS = "permissions"    # 仅复制权限，元数据重置
    TEMPLATE = "template"          # 生成模板（模板过滤器可插拔）
    PARTIAL = "partial"            # 只复制选中的权限
    HIERARCHY = "hierarchy"        # 按目标级别裁剪高范围权限


class Scope(str, Enum):
    """权限作用范围，从大到小"""
    PLATFORM = "platform"
    ORGANIZATION = "organization"
    PROPERTY = "property"
    DEPARTMENT = "department"
    OWN = "own"


class BatchType(str, Enum):
    """批量克隆类型（仅作标签用）"""
    VARIATIONS = "variations"
    DEPARTMENTS = "departments"
    PROPERTIES = "properties"
    REGIONS = "regions"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ConflictType(str, Enum):
    NAMING = "naming"
    PERMISSION = "permission"
    HIERARCHY = "hierarchy"


def coerce_clone_type(value: Union[str, CloneType]) -> Union[str, CloneType]:
    """
    将字符串转换为 CloneType

    未知的克隆类型原样保留，由权限计算显式回退为 full。
    """
    if isinstance(value, CloneType):
        return value
    try:
        return CloneType(value)
    except ValueError:
        return value


# ============== 权限与角色 ==============

@dataclass(frozen=True)
class Permission:
    """
    权限 - 对引擎而言是不可变值

    Attributes:
        id: 权限ID
        resource: 资源（也作为分类使用，如 "user", "room"）
        action: 动作（如 "read", "write"）
        scope: 作用范围，见 Scope
        description: 可选描述
    """

    id: str
    resource: str
    action: str
    scope: str
    description: Optional[str] = None

    def with_scope(self, scope: str) -> "Permission":
        """返回调整了作用范围的副本（ID 不变）"""
        return replace(self, scope=scope)


@dataclass
class Role:
    """
    角色 - 由持久化服务拥有，引擎只读

    Attributes:
        id: 角色ID
        name: 角色名称
        description: 描述
        level: 权限级别（数值越高权限越大）
        permissions: 权限列表（顺序无关）
        user_count: 已分配的用户数
    """

    id: str
    name: str
    description: str = ""
    level: int = 0
    permissions: List[Permission] = field(default_factory=list)
    user_count: int = 0


# ============== 克隆配置 ==============

@dataclass
class NewMetadata:
    name: str = ""
    description: str = ""
    level: int = 50
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class PermissionFilters:
    include_categories: List[str] = field(default_factory=list)
    exclude_categories: List[str] = field(default_factory=list)
    include_scopes: List[str] = field(default_factory=list)
    exclude_scopes: List[str] = field(default_factory=list)
    custom_selections: List[str] = field(default_factory=list)


@dataclass
class InheritanceRules:
    copy_user_assignments: bool = False
    adjust_level: bool = True
    auto_suggest_level: bool = True


# 按字段合并（而不是整体替换）的嵌套配置
_NESTED_SECTIONS = ("new_metadata", "permission_filters", "inheritance_rules")


def _field_names(obj: Any) -> set:
    return {f.name for f in fields(obj)}


@dataclass
class CloneConfiguration:
    """
    克隆配置 - 一次克隆会话的可变工作状态

    Attributes:
        source_role_id: 源角色ID
        clone_type: 克隆类型
        new_metadata: 新角色的名称/描述/级别/分类/标签
        permission_filters: 分类、范围过滤及自选权限
        scope_adjustments: 权限ID -> 覆盖后的作用范围
        preserve_lineage: 是否记录父子血缘
        inheritance_rules: 继承规则
    """

    source_role_id: str
    clone_type: Union[str, CloneType] = CloneType.FULL
    new_metadata: NewMetadata = field(default_factory=NewMetadata)
    permission_filters: PermissionFilters = field(default_factory=PermissionFilters)
    scope_adjustments: Dict[str, str] = field(default_factory=dict)
    preserve_lineage: bool = True
    inheritance_rules: InheritanceRules = field(default_factory=InheritanceRules)

    def __post_init__(self):
        self.clone_type = coerce_clone_type(self.clone_type)

    def merged(self, updates: Mapping[str, Any]) -> "CloneConfiguration":
        """
        深度合并更新，返回新配置（自身不变）

        new_metadata / permission_filters / inheritance_rules 逐字段合并，
        其余字段整体替换。未知字段属于调用方编程错误，抛出 ValueError。

        Args:
            updates: 部分配置，嵌套段可以是 dict 或对应的 dataclass 实例

        Returns:
            合并后的新配置
        """
        unknown = set(updates) - _field_names(self)
        if unknown:
            raise ValueError(f"Unknown configuration fields: {sorted(unknown)}")

        result = copy.deepcopy(self)
        for key, value in updates.items():
            if key in _NESTED_SECTIONS and isinstance(value, Mapping):
                section = getattr(result, key)
                bad = set(value) - _field_names(section)
                if bad:
                    raise ValueError(f"Unknown {key} fields: {sorted(bad)}")
                setattr(result, key, replace(section, **copy.deepcopy(dict(value))))
            elif key == "clone_type":
                result.clone_type = coerce_clone_type(value)
            elif key == "scope_adjustments":
                result.scope_adjustments = dict(value)
            else:
                setattr(result, key, copy.deepcopy(value))
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CloneConfiguration":
        """从 dict（如 API 请求体）构建配置"""
        if "source_role_id" not in data:
            raise ValueError("source_role_id is required")
        rest = {k: v for k, v in data.items() if k != "source_role_id"}
        return cls(source_role_id=str(data["source_role_id"])).merged(rest)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["clone_type"] = getattr(self.clone_type, "value", self.clone_type)
        return data


# ============== 上下文 ==============

@dataclass
class HierarchyConstraints:
    min_level: int = 10
    max_level: int = 100
    allowed_categories: List[str] = field(default_factory=list)


@dataclass
class RoleDuplicationContext:
    """
    调用方提供的只读上下文

    Attributes:
        existing_names: 已存在的角色名称（用于重名检查）
        hierarchy_constraints: 允许的级别范围和分类；为 None 时不做级别检查
    """

    existing_names: List[str] = field(default_factory=list)
    hierarchy_constraints: Optional[HierarchyConstraints] = None


# ============== 校验结果 ==============

@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str
    severity: Severity = Severity.ERROR


@dataclass(frozen=True)
class ValidationSuggestion:
    type: str
    message: str
    auto_applicable: bool = False


@dataclass(frozen=True)
class CloneConflict:
    type: ConflictType
    message: str
    resolution: str


@dataclass(frozen=True)
class CloneValidationResult:
    """
    校验结果

    is_valid 当且仅当没有 error 级别问题且没有冲突。warning 不影响有效性。
    """

    is_valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    suggestions: List[ValidationSuggestion] = field(default_factory=list)
    conflicts: List[CloneConflict] = field(default_factory=list)

    @property
    def error_messages(self) -> List[str]:
        return [e.message for e in self.errors if e.severity == Severity.ERROR]

    @property
    def warning_messages(self) -> List[str]:
        return [e.message for e in self.errors if e.severity == Severity.WARNING]

    def errors_for(self, field_name: str) -> List[ValidationIssue]:
        return [e for e in self.errors if e.field == field_name]


@dataclass(frozen=True)
class ConflictAnalysis:
    naming_conflicts: List[str] = field(default_factory=list)
    permission_conflicts: List[str] = field(default_factory=list)
    hierarchy_conflicts: List[str] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.naming_conflicts or self.permission_conflicts or self.hierarchy_conflicts)


@dataclass(frozen=True)
class ClonePreview:
    """
    克隆预览 - 只读快照，按需整体重新生成

    Attributes:
        source_role: 源角色
        configuration: 生成预览时的配置快照
        resulting_permissions: 克隆后的权限
        added_permissions: 源角色中不存在的权限（正常情况下为空）
        removed_permissions: 被过滤掉的源权限
        modified_permissions: 作用范围被调整的权限
        validation_errors: 错误消息
        validation_warnings: 警告消息
        suggested_improvements: 改进建议
        estimated_level: 估算级别 [10, 100]
        conflict_analysis: 冲突分析
    """

    source_role: Role
    configuration: CloneConfiguration
    resulting_permissions: List[Permission]
    added_permissions: List[Permission]
    removed_permissions: List[Permission]
    modified_permissions: List[Permission]
    validation_errors: List[str]
    validation_warnings: List[str]
    suggested_improvements: List[str]
    estimated_level: int
    conflict_analysis: ConflictAnalysis


# ============== 血缘 ==============

@dataclass
class RoleLineage:
    """
    血缘树节点

    Attributes:
        id: 角色ID
        name: 角色名称
        generation_level: 代数，0 表示原始角色
        clone_type: 产生该节点的克隆类型
        clone_count: 直接子节点数量
        cloned_at: 克隆时间
        lineage_path: 祖先ID列表（根在前，不含自身）
        child_roles: 子节点（有序）
        parent_role_id: 父角色ID
    """

    id: str
    name: str
    generation_level: int = 0
    clone_type: Optional[Union[str, CloneType]] = None
    clone_count: int = 0
    cloned_at: Optional[datetime] = None
    lineage_path: List[str] = field(default_factory=list)
    child_roles: List["RoleLineage"] = field(default_factory=list)
    parent_role_id: Optional[str] = None

    @property
    def root_id(self) -> str:
        return self.lineage_path[0] if self.lineage_path else self.id


@dataclass
class LineageSnapshot:
    """get_role_lineage 的返回结构"""

    lineage: RoleLineage
    ancestors: List[RoleLineage] = field(default_factory=list)
    descendants: List[RoleLineage] = field(default_factory=list)
    siblings: List[RoleLineage] = field(default_factory=list)
    tree: Optional[RoleLineage] = None


@dataclass(frozen=True)
class CloneHistoryEntry:
    cloned_role: RoleLineage
    cloned_at: Optional[datetime]
    clone_type: Optional[Union[str, CloneType]]


# ============== 批量克隆 ==============

@dataclass
class BatchVariation:
    name: str
    adjustments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CloneBatchConfig:
    """
    批量克隆配置

    产生 len(source_roles) x len(variations) 个克隆。
    name_pattern 支持 {sourceName} 和 {variation} 占位符。
    """

    source_roles: List[str]
    batch_type: Union[str, BatchType] = BatchType.VARIATIONS
    name_pattern: str = "{sourceName} - {variation}"
    variations: List[BatchVariation] = field(default_factory=list)
    global_adjustments: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_roles(self) -> int:
        return len(self.source_roles) * len(self.variations)


# ============== 克隆模板 ==============

class TemplateCategory(str, Enum):
    DEPARTMENT = "department"
    HIERARCHY = "hierarchy"
    SPECIALIZED = "specialized"
    PROPERTY = "property"
    CUSTOM = "custom"


@dataclass
class TemplateUsage:
    times_used: int = 0
    success_count: int = 0
    last_used: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        return self.success_count / self.times_used if self.times_used else 0.0


@dataclass
class CloneTemplate:
    """
    克隆模板 - 可复用的部分配置

    应用到批量克隆时，configuration 按顶层字段覆盖 global_adjustments。

    Attributes:
        name: 模板名称
        configuration: 部分克隆配置（与 CloneConfiguration.merged 的参数格式相同）
        description: 描述
        id: 模板ID，未保存时为 None
        source_role_id: 创建模板时参考的源角色
        tags: 标签
        category: 模板分类，见 TemplateCategory
        is_recommended: 是否推荐
        created_by: 创建人
        created_at: 创建时间
        usage: 使用统计
    """

    name: str
    configuration: Dict[str, Any] = field(default_factory=dict)
    description: str = ""
    id: Optional[str] = None
    source_role_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    category: Union[str, TemplateCategory] = TemplateCategory.CUSTOM
    is_recommended: bool = False
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    usage: TemplateUsage = field(default_factory=TemplateUsage)


# ============== 克隆统计 ==============

@dataclass(frozen=True)
class PopularSourceRole:
    role_id: str
    role_name: str
    clone_count: int


@dataclass(frozen=True)
class CloneActivity:
    source_role_id: str
    source_role_name: str
    target_role_id: str
    target_role_name: str
    clone_type: Optional[Union[str, CloneType]]
    cloned_at: Optional[datetime]


@dataclass(frozen=True)
class TemplateUsageSummary:
    template_id: Optional[str]
    template_name: str
    times_used: int
    success_rate: float


@dataclass
class DuplicationStats:
    """
    克隆统计

    Attributes:
        total_clones: 克隆产生的角色总数
        clones_by_type: 克隆类型 -> 数量（每种类型都有键）
        popular_source_roles: 被克隆最多的源角色
        recent_activity: 最近的克隆记录，新的在前
        template_usage: 模板使用情况
    """

    total_clones: int = 0
    clones_by_type: Dict[str, int] = field(default_factory=dict)
    popular_source_roles: List[PopularSourceRole] = field(default_factory=list)
    recent_activity: List[CloneActivity] = field(default_factory=list)
    template_usage: List[TemplateUsageSummary] = field(default_factory=list)


__all__ = [
    "CloneType",
    "Scope",
    "BatchType",
    "Severity",
    "ConflictType",
    "coerce_clone_type",
    "Permission",
    "Role",
    "NewMetadata",
    "PermissionFilters",
    "InheritanceRules",
    "CloneConfiguration",
    "HierarchyConstraints",
    "RoleDuplicationContext",
    "ValidationIssue",
    "ValidationSuggestion",
    "CloneConflict",
    "CloneValidationResult",
    "ConflictAnalysis",
    "ClonePreview",
    "RoleLineage",
    "LineageSnapshot",
    "CloneHistoryEntry",
    "BatchVariation",
    "CloneBatchConfig",
    "TemplateCategory",
    "TemplateUsage",
    "CloneTemplate",
    "PopularSourceRole",
    "CloneActivity",
    "TemplateUsageSummary",
    "DuplicationStats",
]

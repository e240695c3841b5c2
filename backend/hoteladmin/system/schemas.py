"""
角色克隆 API 的 Pydantic 模式
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator, ConfigDict

from roleclone.types import BatchType, BatchVariation, CloneBatchConfig, CloneType, TemplateCategory


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


# ============== 请求 ==============

class NewMetadataIn(BaseModel):
    name: str = Field(default="", max_length=100)
    description: str = ""
    level: int = 50
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class PermissionFiltersIn(BaseModel):
    include_categories: List[str] = Field(default_factory=list)
    exclude_categories: List[str] = Field(default_factory=list)
    include_scopes: List[str] = Field(default_factory=list)
    exclude_scopes: List[str] = Field(default_factory=list)
    custom_selections: List[str] = Field(default_factory=list)


class InheritanceRulesIn(BaseModel):
    copy_user_assignments: bool = False
    adjust_level: bool = True
    auto_suggest_level: bool = True


class CloneRequest(BaseModel):
    """克隆请求；未提供的字段使用引擎默认值"""
    source_role_id: str
    clone_type: CloneType = CloneType.FULL
    new_metadata: NewMetadataIn = Field(default_factory=NewMetadataIn)
    permission_filters: PermissionFiltersIn = Field(default_factory=PermissionFiltersIn)
    scope_adjustments: Dict[str, str] = Field(default_factory=dict)
    preserve_lineage: bool = True
    inheritance_rules: InheritanceRulesIn = Field(default_factory=InheritanceRulesIn)

    @field_validator("source_role_id", mode="before")
    @classmethod
    def _id_to_str(cls, v):
        return str(v) if isinstance(v, int) else v

    def initial_config(self) -> Dict[str, Any]:
        """只包含调用方显式提供的字段，供会话深度合并"""
        return self.model_dump(mode="json", exclude_unset=True, exclude={"source_role_id"})


class BatchVariationIn(BaseModel):
    name: str
    adjustments: Dict[str, Any] = Field(default_factory=dict)


class BatchCloneRequest(BaseModel):
    source_roles: List[str]
    batch_type: BatchType = BatchType.VARIATIONS
    name_pattern: str = "{sourceName} - {variation}"
    variations: List[BatchVariationIn] = Field(default_factory=list)
    global_adjustments: Dict[str, Any] = Field(default_factory=dict)
    # 应用模板后，模板配置按顶层字段覆盖 global_adjustments
    template_id: Optional[int] = None

    @field_validator("source_roles", mode="before")
    @classmethod
    def _ids_to_str(cls, v):
        if isinstance(v, list):
            return [str(x) if isinstance(x, int) else x for x in v]
        return v

    def to_batch_config(self) -> CloneBatchConfig:
        return CloneBatchConfig(
            source_roles=list(self.source_roles),
            batch_type=self.batch_type,
            name_pattern=self.name_pattern,
            variations=[BatchVariation(name=v.name, adjustments=dict(v.adjustments)) for v in self.variations],
            global_adjustments=dict(self.global_adjustments),
        )


class CloneTemplateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    source_role_id: Optional[int] = None
    configuration: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    category: TemplateCategory = TemplateCategory.CUSTOM
    is_recommended: bool = False


# ============== 响应 ==============

class PermissionOut(BaseModel):
    id: str
    resource: str
    action: str
    scope: str
    description: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class RoleOut(BaseModel):
    id: str
    name: str
    description: str = ""
    level: int
    user_count: int = 0
    permissions: List[PermissionOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class ConflictAnalysisOut(BaseModel):
    naming_conflicts: List[str] = Field(default_factory=list)
    permission_conflicts: List[str] = Field(default_factory=list)
    hierarchy_conflicts: List[str] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class RecommendationOut(BaseModel):
    recommendation_type: str
    suggested_value: Union[int, str]
    confidence: float
    explanation: str
    reasoning: str
    is_auto_applicable: bool
    model_config = ConfigDict(from_attributes=True)


class ClonePreviewOut(BaseModel):
    source_role: RoleOut
    resulting_permissions: List[PermissionOut]
    added_permissions: List[PermissionOut]
    removed_permissions: List[PermissionOut]
    modified_permissions: List[PermissionOut]
    validation_errors: List[str]
    validation_warnings: List[str]
    suggested_improvements: List[str]
    estimated_level: int
    conflict_analysis: ConflictAnalysisOut
    recommendations: List[RecommendationOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class BatchCloneResponse(BaseModel):
    total_roles: int
    roles: List[RoleOut]


class LineageNodeOut(BaseModel):
    id: str
    name: str
    generation_level: int
    clone_type: Optional[str] = None
    clone_count: int = 0
    cloned_at: Optional[datetime] = None
    lineage_path: List[str] = Field(default_factory=list)
    parent_role_id: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)

    @field_validator("clone_type", mode="before")
    @classmethod
    def _clone_type_value(cls, v):
        return _enum_value(v)


class LineageTreeOut(LineageNodeOut):
    child_roles: List["LineageTreeOut"] = Field(default_factory=list)


class LineageOut(BaseModel):
    lineage: LineageNodeOut
    ancestors: List[LineageNodeOut]
    descendants: List[LineageNodeOut]
    siblings: List[LineageNodeOut]
    tree: Optional[LineageTreeOut] = None
    model_config = ConfigDict(from_attributes=True)


class TemplateUsageOut(BaseModel):
    times_used: int = 0
    success_count: int = 0
    success_rate: float = 0.0
    last_used: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class CloneTemplateOut(BaseModel):
    id: str
    name: str
    description: str = ""
    source_role_id: Optional[str] = None
    configuration: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    category: str
    is_recommended: bool = False
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    usage: TemplateUsageOut
    model_config = ConfigDict(from_attributes=True)

    @field_validator("category", mode="before")
    @classmethod
    def _category_value(cls, v):
        return _enum_value(v)


class PopularSourceRoleOut(BaseModel):
    role_id: str
    role_name: str
    clone_count: int
    model_config = ConfigDict(from_attributes=True)


class CloneActivityOut(BaseModel):
    source_role_id: str
    source_role_name: str
    target_role_id: str
    target_role_name: str
    clone_type: Optional[str] = None
    cloned_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

    @field_validator("clone_type", mode="before")
    @classmethod
    def _clone_type_value(cls, v):
        return _enum_value(v)


class TemplateUsageSummaryOut(BaseModel):
    template_id: Optional[str] = None
    template_name: str
    times_used: int
    success_rate: float
    model_config = ConfigDict(from_attributes=True)


class DuplicationStatsOut(BaseModel):
    total_clones: int
    clones_by_type: Dict[str, int]
    popular_source_roles: List[PopularSourceRoleOut]
    recent_activity: List[CloneActivityOut]
    template_usage: List[TemplateUsageSummaryOut]
    model_config = ConfigDict(from_attributes=True)

"""
roleclone/batch.py

批量克隆展开 - 把 CloneBatchConfig 拆成逐个的克隆配置

每个源角色与每个变体组合，一个批次总是得到 len(source_roles) x len(variations) 项。
调整的叠加顺序: 默认值 < global_adjustments < variation.adjustments；
名称由 name_pattern 生成，除非变体显式指定了名称。
"""
from typing import List, Mapping, Optional
from dataclasses import dataclass
from collections import Counter

from roleclone.config import settings
from roleclone.types import (
    CloneBatchConfig,
    CloneConfiguration,
    CloneValidationResult,
    NewMetadata,
    Severity,
    ValidationIssue,
)

SOURCE_NAME_PLACEHOLDER = "{sourceName}"
VARIATION_PLACEHOLDER = "{variation}"


@dataclass(frozen=True)
class BatchCloneItem:
    source_role_id: str
    variation_name: str
    name: str
    configuration: CloneConfiguration


def render_name(pattern: str, source_name: str, variation: str) -> str:
    # 只替换两个占位符，其他花括号原样保留
    return pattern.replace(SOURCE_NAME_PLACEHOLDER, source_name).replace(VARIATION_PLACEHOLDER, variation)


def plan_batch(
    config: CloneBatchConfig,
    source_names: Optional[Mapping[str, str]] = None,
) -> List[BatchCloneItem]:
    """
    展开批量配置

    Args:
        config: 批量配置
        source_names: 角色ID -> 角色名称，用于 {sourceName}；缺失时使用ID

    Returns:
        每个 (源角色, 变体) 一项，按源角色优先排序
    """
    source_names = source_names or {}
    items: List[BatchCloneItem] = []

    for source_id in config.source_roles:
        source_name = source_names.get(source_id, source_id)
        for variation in config.variations:
            configuration = (
                CloneConfiguration(
                    source_role_id=source_id,
                    new_metadata=NewMetadata(level=settings.DEFAULT_LEVEL),
                )
                .merged(config.global_adjustments)
                .merged(variation.adjustments)
            )
            configuration.source_role_id = source_id

            metadata = variation.adjustments.get("new_metadata")
            if isinstance(metadata, Mapping):
                explicit_name = metadata.get("name")
            else:
                explicit_name = getattr(metadata, "name", None)
            name = explicit_name or render_name(config.name_pattern, source_name, variation.name)
            configuration.new_metadata.name = name

            items.append(BatchCloneItem(
                source_role_id=source_id,
                variation_name=variation.name,
                name=name,
                configuration=configuration,
            ))
    return items


def validate_batch_config(
    config: CloneBatchConfig,
    max_variations: Optional[int] = None,
) -> CloneValidationResult:
    """
    提交前的批量配置结构检查

    重复的源角色会生成重名的克隆，和重复的变体名一样按错误处理。
    """
    max_variations = max_variations or settings.MAX_BATCH_VARIATIONS
    errors: List[ValidationIssue] = []

    if not config.source_roles:
        errors.append(ValidationIssue("source_roles", "Select at least one source role"))
    duplicated = [rid for rid, n in Counter(config.source_roles).items() if n > 1]
    if duplicated:
        errors.append(ValidationIssue(
            "source_roles", f"Source roles listed more than once: {duplicated}"
        ))

    if not config.variations:
        errors.append(ValidationIssue("variations", "Add at least one variation"))
    elif len(config.variations) > max_variations:
        errors.append(ValidationIssue(
            "variations", f"A batch can contain at most {max_variations} variations"
        ))

    names = [v.name.strip() for v in config.variations]
    if any(not n for n in names):
        errors.append(ValidationIssue("variations", "Every variation needs a name"))
    repeated = sorted(n for n, count in Counter(names).items() if n and count > 1)
    if repeated:
        errors.append(ValidationIssue("variations", f"Duplicate variation names: {repeated}"))

    has_errors = any(e.severity == Severity.ERROR for e in errors)
    return CloneValidationResult(is_valid=not has_errors, errors=errors)


__all__ = [
    "SOURCE_NAME_PLACEHOLDER",
    "VARIATION_PLACEHOLDER",
    "BatchCloneItem",
    "render_name",
    "plan_batch",
    "validate_batch_config",
]

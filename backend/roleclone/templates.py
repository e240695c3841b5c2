"""
roleclone/templates.py

克隆模板 - 保存常用的部分配置，应用到批量克隆
"""
from typing import Any, Dict, Mapping
import copy

from roleclone.types import CloneBatchConfig, CloneConfiguration, CloneTemplate


def template_adjustments(configuration: Mapping[str, Any]) -> Dict[str, Any]:
    """
    规范化模板配置

    source_role_id 由批量克隆的每个源角色决定，因此从模板中去掉。
    未知字段抛出 ValueError（与 CloneConfiguration.merged 规则相同）。

    Returns:
        可直接用作 global_adjustments 的 dict 副本
    """
    adjustments = {k: copy.deepcopy(v) for k, v in configuration.items() if k != "source_role_id"}
    # 只为校验字段
    CloneConfiguration(source_role_id="").merged(adjustments)
    return adjustments


def template_from_configuration(
    config: CloneConfiguration,
    name: str,
    description: str = "",
    **kwargs: Any
) -> CloneTemplate:
    """把一次克隆配置保存为模板（名称不随模板保存）"""
    data = config.to_dict()
    data.pop("source_role_id")
    data["new_metadata"].pop("name")
    return CloneTemplate(
        name=name,
        description=description,
        source_role_id=config.source_role_id,
        configuration=template_adjustments(data),
        **kwargs
    )


def apply_template(batch: CloneBatchConfig, template: CloneTemplate) -> CloneBatchConfig:
    """
    把模板应用到批量配置，返回新配置

    模板按顶层字段覆盖 global_adjustments，未涉及的字段保持不变。
    """
    result = copy.deepcopy(batch)
    result.global_adjustments = {
        **result.global_adjustments,
        **template_adjustments(template.configuration),
    }
    return result


__all__ = [
    "template_adjustments",
    "template_from_configuration",
    "apply_template",
]

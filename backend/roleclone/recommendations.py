"""
roleclone/recommendations.py

智能推荐 - 名称建议和级别调整

推荐只是建议；应用推荐就是一次普通的配置更新。
每种推荐类型是独立的 dataclass，只携带自己需要的字段。
"""
from typing import Any, ClassVar, Dict, List, Optional, Union
from dataclasses import dataclass
from datetime import date
import logging

from roleclone.level_estimator import estimate_level
from roleclone.types import CloneConfiguration, CloneType, Role

logger = logging.getLogger(__name__)

NAME_SUGGESTION_CONFIDENCE = 0.8
LEVEL_ADJUSTMENT_CONFIDENCE = 0.9


@dataclass(frozen=True)
class NameSuggestion:
    """
    名称建议

    Attributes:
        suggested_value: 建议的角色名称
        confidence: 置信度 0-1
        explanation: 面向用户的说明
        reasoning: 推荐依据
        is_auto_applicable: 是否可自动应用
    """

    recommendation_type: ClassVar[str] = "name_suggestion"

    suggested_value: str
    confidence: float = NAME_SUGGESTION_CONFIDENCE
    explanation: str = ""
    reasoning: str = "Follows naming conventions for cloned roles"
    is_auto_applicable: bool = True

    def to_updates(self) -> Dict[str, Any]:
        return {"new_metadata": {"name": self.suggested_value}}


@dataclass(frozen=True)
class LevelAdjustment:
    """级别调整建议"""

    recommendation_type: ClassVar[str] = "level_adjustment"

    suggested_value: int
    confidence: float = LEVEL_ADJUSTMENT_CONFIDENCE
    explanation: str = ""
    reasoning: str = "Level calculated based on permission scope and complexity"
    is_auto_applicable: bool = True

    def to_updates(self) -> Dict[str, Any]:
        return {"new_metadata": {"level": self.suggested_value}}


SmartCloneRecommendation = Union[NameSuggestion, LevelAdjustment]


def suggest_name(base_name: str, clone_type: Union[str, CloneType], today: Optional[date] = None) -> str:
    if clone_type == CloneType.TEMPLATE:
        return f"{base_name} Template"
    if clone_type == CloneType.HIERARCHY:
        return f"{base_name} (Modified)"
    if clone_type == CloneType.PARTIAL:
        return f"{base_name} (Partial)"
    stamp = (today or date.today()).strftime("%Y%m%d")
    return f"{base_name} Copy {stamp}"


def generate_recommendations(
    source_role: Role,
    config: CloneConfiguration,
    today: Optional[date] = None,
) -> List[SmartCloneRecommendation]:
    """
    根据源角色和当前配置生成推荐

    级别建议基于源角色的权限和克隆类型计算，与目标级别无关，
    因此应用后再次生成不会重复推荐同一个值。

    Args:
        source_role: 源角色
        config: 当前配置
        today: 名称日期戳使用的日期（默认今天）

    Returns:
        推荐列表（最多两条）
    """
    recommendations: List[SmartCloneRecommendation] = []
    clone_type = getattr(config.clone_type, "value", config.clone_type)

    if not config.new_metadata.name:
        recommendations.append(NameSuggestion(
            suggested_value=suggest_name(source_role.name, config.clone_type, today),
            explanation=f"Suggested name based on {clone_type} clone pattern",
        ))

    if config.inheritance_rules.auto_suggest_level:
        suggested_level = estimate_level(source_role.permissions, config.clone_type)
        if suggested_level != config.new_metadata.level:
            recommendations.append(LevelAdjustment(
                suggested_value=suggested_level,
                explanation=f"Suggested level {suggested_level} based on permission analysis",
            ))

    logger.debug(f"Generated {len(recommendations)} recommendations for role {source_role.id}")
    return recommendations


def recommendation_updates(recommendation: SmartCloneRecommendation) -> Dict[str, Any]:
    """
    推荐 -> 配置更新

    不可自动应用的推荐返回空 dict，调用方需要自行编辑。
    """
    if not recommendation.is_auto_applicable:
        return {}
    return recommendation.to_updates()


__all__ = [
    "NAME_SUGGESTION_CONFIDENCE",
    "LEVEL_ADJUSTMENT_CONFIDENCE",
    "NameSuggestion",
    "LevelAdjustment",
    "SmartCloneRecommendation",
    "suggest_name",
    "generate_recommendations",
    "recommendation_updates",
]

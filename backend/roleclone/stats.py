"""
roleclone/stats.py

克隆统计 - 由血缘记录和模板汇总克隆活动
"""
from typing import Dict, Iterable, Optional, Union
from collections import Counter
from datetime import datetime

from roleclone.lineage import LineageRecord
from roleclone.types import (
    CloneActivity,
    CloneTemplate,
    CloneType,
    DuplicationStats,
    PopularSourceRole,
    TemplateUsageSummary,
    coerce_clone_type,
)


def _type_key(clone_type: Optional[Union[str, CloneType]]) -> str:
    if clone_type is None:
        return CloneType.FULL.value
    value = coerce_clone_type(clone_type)
    return value.value if isinstance(value, CloneType) else str(value)


def compute_duplication_stats(
    records: Iterable[LineageRecord],
    templates: Iterable[CloneTemplate] = (),
    popular_limit: int = 5,
    recent_limit: int = 10,
) -> DuplicationStats:
    """
    汇总克隆统计

    只有带 parent_role_id 的记录计为克隆；未保留血缘的克隆无法区分，不计入。

    Args:
        records: 全部角色的血缘记录
        templates: 模板（含使用统计）
        popular_limit: 热门源角色条数
        recent_limit: 最近活动条数

    Returns:
        DuplicationStats
    """
    records = list(records)
    by_id: Dict[str, LineageRecord] = {r.id: r for r in records}
    clones = [r for r in records if r.parent_role_id is not None]

    clones_by_type = {t.value: 0 for t in CloneType}
    for record in clones:
        key = _type_key(record.clone_type)
        clones_by_type[key] = clones_by_type.get(key, 0) + 1

    def name_of(role_id: str) -> str:
        parent = by_id.get(role_id)
        return parent.name if parent else role_id

    counts = Counter(r.parent_role_id for r in clones)
    popular = sorted(
        (PopularSourceRole(role_id=rid, role_name=name_of(rid), clone_count=n) for rid, n in counts.items()),
        key=lambda p: (-p.clone_count, p.role_name),
    )[:popular_limit]

    # 没有时间的记录排在最后
    recent = sorted(clones, key=lambda r: r.cloned_at or datetime.min, reverse=True)[:recent_limit]
    activity = [
        CloneActivity(
            source_role_id=r.parent_role_id,
            source_role_name=name_of(r.parent_role_id),
            target_role_id=r.id,
            target_role_name=r.name,
            clone_type=_type_key(r.clone_type),
            cloned_at=r.cloned_at,
        )
        for r in recent
    ]

    usage = sorted(
        (
            TemplateUsageSummary(
                template_id=t.id,
                template_name=t.name,
                times_used=t.usage.times_used,
                success_rate=t.usage.success_rate,
            )
            for t in templates
        ),
        key=lambda u: (-u.times_used, u.template_name),
    )

    return DuplicationStats(
        total_clones=len(clones),
        clones_by_type=clones_by_type,
        popular_source_roles=popular,
        recent_activity=activity,
        template_usage=usage,
    )


__all__ = ["compute_duplication_stats"]

"""
克隆模板服务: 模板的保存、查询和使用统计
"""
from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from sqlalchemy.orm import Session

from hoteladmin.system.models.clone_template import SysCloneTemplate
from hoteladmin.system.services.rbac_service import RoleService
from roleclone.templates import template_adjustments
from roleclone.types import CloneTemplate, TemplateCategory, TemplateUsage

logger = logging.getLogger(__name__)


def to_domain_template(template: SysCloneTemplate) -> CloneTemplate:
    """ORM 模板 -> 引擎 CloneTemplate"""
    return CloneTemplate(
        id=str(template.id),
        name=template.name,
        description=template.description or "",
        source_role_id=str(template.source_role_id) if template.source_role_id else None,
        configuration=dict(template.configuration or {}),
        tags=list(template.tags or []),
        category=TemplateCategory(template.category),
        is_recommended=bool(template.is_recommended),
        created_by=str(template.created_by) if template.created_by is not None else None,
        created_at=template.created_at,
        usage=TemplateUsage(
            times_used=template.times_used or 0,
            success_count=template.success_count or 0,
            last_used=template.last_used,
        ),
    )


class CloneTemplateService:
    """克隆模板服务"""

    def __init__(self, db: Session):
        self.db = db

    def list_templates(self, category: Optional[str] = None) -> List[SysCloneTemplate]:
        """推荐的在前，其次按使用次数"""
        q = self.db.query(SysCloneTemplate)
        if category:
            q = q.filter(SysCloneTemplate.category == category)
        return q.order_by(
            SysCloneTemplate.is_recommended.desc(),
            SysCloneTemplate.times_used.desc(),
            SysCloneTemplate.name,
        ).all()

    def get_template(self, template_id: int) -> Optional[SysCloneTemplate]:
        return self.db.query(SysCloneTemplate).filter(SysCloneTemplate.id == template_id).first()

    def get_template_by_name(self, name: str) -> Optional[SysCloneTemplate]:
        return self.db.query(SysCloneTemplate).filter(SysCloneTemplate.name == name).first()

    def create_template(self, name: str, configuration: Dict[str, Any],
                        description: str = "", source_role_id: Optional[int] = None,
                        tags: Optional[List[str]] = None, category: str = "custom",
                        is_recommended: bool = False,
                        created_by: Optional[int] = None) -> SysCloneTemplate:
        """
        保存模板（只 flush，不提交）

        Raises:
            ValueError: 名称重复、分类未知、源角色不存在或配置包含未知字段
        """
        if self.get_template_by_name(name):
            raise ValueError(f"模板名称 '{name}' 已存在")
        try:
            category = TemplateCategory(category).value
        except ValueError:
            raise ValueError(f"未知的模板分类 '{category}'")
        if source_role_id is not None and not RoleService(self.db).get_role_by_id(source_role_id):
            raise ValueError(f"角色 ID {source_role_id} 不存在")

        template = SysCloneTemplate(
            name=name,
            description=description,
            source_role_id=source_role_id,
            configuration=template_adjustments(configuration),
            tags=list(tags or []),
            category=category,
            is_recommended=is_recommended,
            created_by=created_by,
        )
        self.db.add(template)
        self.db.flush()
        logger.info(f"Created clone template {template.id} ({name})")
        return template

    def record_usage(self, template_id: int, success: bool) -> SysCloneTemplate:
        """记录一次模板使用（批量克隆成功或失败后调用）"""
        template = self.get_template(template_id)
        if not template:
            raise ValueError(f"模板 ID {template_id} 不存在")
        template.times_used = (template.times_used or 0) + 1
        if success:
            template.success_count = (template.success_count or 0) + 1
        template.last_used = datetime.utcnow()
        self.db.flush()
        return template

    def get_domain_templates(self) -> List[CloneTemplate]:
        return [to_domain_template(t) for t in self.list_templates()]

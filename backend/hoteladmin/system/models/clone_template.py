"""
克隆模板 ORM 模型

configuration 保存部分克隆配置（不含 source_role_id），批量克隆时覆盖 global_adjustments。
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON
from hoteladmin.database import Base


class SysCloneTemplate(Base):
    """克隆模板表"""
    __tablename__ = "sys_clone_template"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, default="")
    # 创建模板时参考的角色，只作展示
    source_role_id = Column(Integer, ForeignKey("sys_role.id"), nullable=True)
    configuration = Column(JSON, default=dict, nullable=False)
    tags = Column(JSON, default=list)
    # department / hierarchy / specialized / property / custom
    category = Column(String(20), default="custom", nullable=False)
    is_recommended = Column(Boolean, default=False)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # 使用统计
    times_used = Column(Integer, default=0, nullable=False)
    success_count = Column(Integer, default=0, nullable=False)
    last_used = Column(DateTime, nullable=True)

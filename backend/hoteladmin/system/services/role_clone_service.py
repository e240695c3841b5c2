"""
角色克隆持久化服务: 引擎网关契约的 SQLAlchemy 实现

- RoleCloneService: 同步服务，负责读写 sys_role / sys_role_permission / sys_user_role
- SqlRoleCloneGateway: 异步适配器，按调用提交或回滚事务；同步数据库操作在线程池中执行，不阻塞事件循环
"""
from typing import Callable, List, Optional, TypeVar
from datetime import datetime
import logging
import re

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hoteladmin.system.models.rbac import SysRole, SysUserRole
from hoteladmin.system.services.clone_template_service import CloneTemplateService, to_domain_template
from hoteladmin.system.services.rbac_service import RoleService
from roleclone.batch import plan_batch, validate_batch_config
from roleclone.config import settings as clone_settings
from roleclone.errors import (
    CloneConflictError,
    CloneServiceError,
    CloneValidationFailed,
    RoleNotFoundError,
)
from roleclone.lineage import LineageRecord, build_lineage_forest, snapshot_for
from roleclone.permission_algebra import TemplateFilter, compute_resulting_permissions
from roleclone.stats import compute_duplication_stats
from roleclone.types import (
    CloneBatchConfig,
    CloneConfiguration,
    CloneTemplate,
    CloneType,
    DuplicationStats,
    HierarchyConstraints,
    LineageSnapshot,
    Permission,
    Role,
    RoleDuplicationContext,
)
from roleclone.validation import validate_configuration

logger = logging.getLogger(__name__)

T = TypeVar("T")


def to_domain_role(role: SysRole) -> Role:
    """ORM 角色 -> 引擎 Role（ID 转为字符串，scope 取覆盖后的值）"""
    permissions = [
        Permission(
            id=str(rp.permission_id),
            resource=rp.permission.resource,
            action=rp.permission.action,
            scope=rp.effective_scope,
            description=rp.permission.description,
        )
        for rp in role.role_permissions
    ]
    return Role(
        id=str(role.id),
        name=role.name,
        description=role.description or "",
        level=role.level,
        permissions=permissions,
        user_count=len(role.user_roles),
    )


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    return slug or "role"


class RoleCloneService:
    """角色克隆服务"""

    def __init__(self, db: Session, template_filter: Optional[TemplateFilter] = None):
        self.db = db
        self.roles = RoleService(db)
        self.template_filter = template_filter

    # ===== Read =====

    def _load_role(self, role_id: str) -> SysRole:
        try:
            pk = int(role_id)
        except (TypeError, ValueError):
            raise RoleNotFoundError(str(role_id))
        role = self.roles.get_role_by_id(pk)
        if not role:
            raise RoleNotFoundError(str(role_id))
        return role

    def get_role(self, role_id: str) -> Role:
        return to_domain_role(self._load_role(role_id))

    def build_context(self) -> RoleDuplicationContext:
        return RoleDuplicationContext(
            existing_names=self.roles.get_role_names(),
            hierarchy_constraints=HierarchyConstraints(
                min_level=clone_settings.MIN_LEVEL,
                max_level=clone_settings.MAX_LEVEL,
            ),
        )

    # ===== Write =====

    def _unique_code(self, name: str) -> str:
        base = slugify(name)
        code, n = base, 1
        while self.roles.get_role_by_code(code):
            n += 1
            code = f"{base}_{n}"
        return code

    def clone_role(self, config: CloneConfiguration) -> Role:
        """
        按配置创建新角色（只 flush，不提交）

        Raises:
            RoleNotFoundError: 源角色不存在
            CloneConflictError: 名称已被占用
            CloneValidationFailed: 配置无效
        """
        source = self._load_role(config.source_role_id)

        validation = validate_configuration(config, self.build_context())
        if validation.conflicts:
            raise CloneConflictError(validation.conflicts[0].message, config.new_metadata.name)
        if not validation.is_valid:
            raise CloneValidationFailed(validation)

        source_permissions = to_domain_role(source).permissions
        resulting = compute_resulting_permissions(source_permissions, config, self.template_filter)
        base_scopes = {str(rp.permission_id): rp.permission.scope for rp in source.role_permissions}

        metadata = config.new_metadata
        lineage = {}
        if config.preserve_lineage:
            lineage = dict(
                parent_role_id=source.id,
                clone_type=getattr(config.clone_type, "value", config.clone_type),
                cloned_at=datetime.utcnow(),
            )

        role = self.roles.create_role(
            code=self._unique_code(metadata.name),
            name=metadata.name,
            description=metadata.description,
            level=metadata.level if config.inheritance_rules.adjust_level else source.level,
            category=metadata.category or source.category,
            tags=metadata.tags,
            **lineage
        )

        # 与权限原始 scope 相同则不记录覆盖
        overrides = {
            int(p.id): p.scope for p in resulting if base_scopes.get(p.id) != p.scope
        }
        self.roles.assign_permissions(role.id, [int(p.id) for p in resulting], overrides)

        if config.inheritance_rules.copy_user_assignments:
            assignments = self.db.query(SysUserRole).filter(SysUserRole.role_id == source.id).all()
            for ur in assignments:
                self.db.add(SysUserRole(user_id=ur.user_id, role_id=role.id))
            self.db.flush()
            self.db.expire(role, ["user_roles"])

        logger.info(
            f"Cloned role {source.id} ({source.name}) as {role.id} ({role.name}), "
            f"{len(resulting)} permissions, type={config.clone_type}"
        )
        return to_domain_role(role)

    def batch_clone_roles(self, config: CloneBatchConfig) -> List[Role]:
        """
        批量创建 len(source_roles) x len(variations) 个角色

        任何一个失败都会抛出异常，由调用方回滚整批。
        """
        validation = validate_batch_config(config)
        if not validation.is_valid:
            raise CloneValidationFailed(validation, "Batch configuration is incomplete")

        source_names = {rid: self._load_role(rid).name for rid in config.source_roles}
        items = plan_batch(config, source_names)
        return [self.clone_role(item.configuration) for item in items]

    # ===== Lineage =====

    def _lineage_records(self) -> List[LineageRecord]:
        roles = self.db.query(SysRole).order_by(SysRole.cloned_at, SysRole.id).all()
        return [
            LineageRecord(
                id=str(r.id),
                name=r.name,
                parent_role_id=str(r.parent_role_id) if r.parent_role_id else None,
                clone_type=self._clone_type(r.clone_type),
                cloned_at=r.cloned_at,
            )
            for r in roles
        ]

    @staticmethod
    def _clone_type(value: Optional[str]):
        if value is None:
            return None
        try:
            return CloneType(value)
        except ValueError:
            return value

    def get_role_lineage(self, role_id: str) -> LineageSnapshot:
        self._load_role(role_id)
        for tree in build_lineage_forest(self._lineage_records()):
            snapshot = snapshot_for(tree, str(role_id))
            if snapshot is not None:
                return snapshot
        # 处于血缘环中的角色不会出现在任何树里
        raise RoleNotFoundError(str(role_id))

    # ===== Stats =====

    def get_duplication_stats(self) -> DuplicationStats:
        """克隆统计（基于血缘记录和模板使用情况）"""
        templates = CloneTemplateService(self.db).get_domain_templates()
        return compute_duplication_stats(
            self._lineage_records(),
            templates,
            popular_limit=clone_settings.STATS_POPULAR_LIMIT,
            recent_limit=clone_settings.STATS_RECENT_LIMIT,
        )


class SqlRoleCloneGateway:
    """
    RoleCloneGateway 的数据库实现

    每个写操作是一个事务：成功提交，失败回滚后原样抛出；
    数据库约束错误转换为 CloneServiceError。
    """

    def __init__(self, db: Session, template_filter: Optional[TemplateFilter] = None):
        self.db = db
        self.service = RoleCloneService(db, template_filter)
        self.templates = CloneTemplateService(db)

    def _transaction(self, operation: Callable[[], T]) -> T:
        try:
            result = operation()
            self.db.commit()
            return result
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Role clone rejected by the database: {e.orig}")
            raise CloneServiceError(f"Database rejected the clone: {e.orig}") from e
        except Exception:
            self.db.rollback()
            raise

    async def get_role(self, role_id: str) -> Role:
        return await run_in_threadpool(self.service.get_role, role_id)

    async def clone_role(self, config: CloneConfiguration) -> Role:
        return await run_in_threadpool(self._transaction, lambda: self.service.clone_role(config))

    async def batch_clone_roles(self, config: CloneBatchConfig) -> List[Role]:
        return await run_in_threadpool(self._transaction, lambda: self.service.batch_clone_roles(config))

    async def get_role_lineage(self, role_id: str) -> LineageSnapshot:
        return await run_in_threadpool(self.service.get_role_lineage, role_id)

    async def build_context(self) -> RoleDuplicationContext:
        return await run_in_threadpool(self.service.build_context)

    # ===== Templates =====

    async def get_template(self, template_id: int) -> Optional[CloneTemplate]:
        def load() -> Optional[CloneTemplate]:
            template = self.templates.get_template(template_id)
            return to_domain_template(template) if template else None

        return await run_in_threadpool(load)

    async def record_template_usage(self, template_id: int, success: bool) -> None:
        await run_in_threadpool(
            self._transaction, lambda: self.templates.record_usage(template_id, success)
        )

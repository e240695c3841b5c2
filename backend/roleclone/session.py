"""
roleclone/session.py

克隆会话编排 - 单个克隆和批量克隆的有状态工作流

    idle -> configuring -> previewing -> confirming -> (executed | cancelled) -> idle

每个会话实例拥有自己的配置，会话之间互不影响。异步操作只在网关调用处挂起；
挂起期间会话若被取消、重新开始或配置被修改，结果照常返回给调用方，但不会写回会话状态
（调用方可用 is_live(session_id) 判断会话是否仍然有效）。
"""
from typing import Any, List, Mapping, Optional
from dataclasses import dataclass, field, fields
import copy
import logging
import uuid

from roleclone.batch import validate_batch_config
from roleclone.config import settings
from roleclone.engine.event_bus import (
    BULK_CLONE_COMPLETED,
    BULK_CLONE_FAILED,
    BULK_CLONE_STARTED,
    CLONE_CANCELLED,
    CLONE_COMPLETED,
    CLONE_FAILED,
    CLONE_STARTED,
    Event,
    EventBus,
    event_bus as default_event_bus,
)
from roleclone.engine.state_machine import (
    CloneSessionState,
    InvalidTransition,
    build_clone_session_machine,
)
from roleclone.errors import ClonePermissionDenied, CloneSessionError, CloneValidationFailed
from roleclone.level_estimator import estimate_level
from roleclone.lineage import LineageTracker
from roleclone.permission_algebra import (
    TemplateFilter,
    compute_resulting_permissions,
    diff_permissions,
)
from roleclone.ports import ROLE_CREATE_PERMISSION, PermissionChecker, RoleCloneGateway
from roleclone.recommendations import (
    SmartCloneRecommendation,
    generate_recommendations,
    recommendation_updates,
)
from roleclone.templates import apply_template as apply_clone_template
from roleclone.types import (
    BatchVariation,
    CloneBatchConfig,
    CloneConfiguration,
    ClonePreview,
    CloneTemplate,
    CloneValidationResult,
    NewMetadata,
    Role,
    RoleDuplicationContext,
)
from roleclone.validation import analyze_conflicts, validate_configuration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionState:
    """
    会话对外暴露的派生状态（只读快照）

    Attributes:
        session_id: 当前会话ID，空闲时为 None
        state: 状态机状态
        is_cloning: 是否有进行中的单个克隆
        configuration: 当前配置的副本
        clone_preview: 最近一次预览
        validation_result: 最近一次校验结果
        recommendations: 当前推荐
        batch_config: 进行中的批量配置副本
    """

    session_id: Optional[str]
    state: CloneSessionState
    is_cloning: bool
    configuration: Optional[CloneConfiguration] = None
    clone_preview: Optional[ClonePreview] = None
    validation_result: Optional[CloneValidationResult] = None
    recommendations: List[SmartCloneRecommendation] = field(default_factory=list)
    batch_config: Optional[CloneBatchConfig] = None


class RoleCloneSession:
    """
    克隆会话编排器

    Example:
        >>> session = RoleCloneSession(gateway, StaticPermissionChecker({"role.create"}))
        >>> await session.start_clone("r1", {"clone_type": "hierarchy"})
        >>> session.update_configuration({"new_metadata": {"name": "Night Auditor", "level": 40}})
        >>> preview = await session.generate_preview()
        >>> role = await session.execute_clone()
    """

    def __init__(
        self,
        gateway: RoleCloneGateway,
        permission_checker: PermissionChecker,
        context: Optional[RoleDuplicationContext] = None,
        lineage_tracker: Optional[LineageTracker] = None,
        event_bus: Optional[EventBus] = None,
        template_filter: Optional[TemplateFilter] = None,
    ):
        self._gateway = gateway
        self._permission_checker = permission_checker
        self._context = context
        self._lineage_tracker = lineage_tracker
        self._event_bus = event_bus if event_bus is not None else default_event_bus
        self._template_filter = template_filter
        self._machine = build_clone_session_machine()

        self._session_id: Optional[str] = None
        self._source_role: Optional[Role] = None
        self._configuration: Optional[CloneConfiguration] = None
        self._preview: Optional[ClonePreview] = None
        self._validation: Optional[CloneValidationResult] = None
        self._recommendations: List[SmartCloneRecommendation] = []
        # 每次配置变更递增，用于识别过期的异步结果
        self._revision = 0
        self._batch_id: Optional[str] = None
        self._batch_config: Optional[CloneBatchConfig] = None
        self._batch_template_id: Optional[str] = None

    # ============== 状态 ==============

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def current_state(self) -> CloneSessionState:
        return CloneSessionState(self._machine.current_state)

    @property
    def is_cloning(self) -> bool:
        return self._configuration is not None

    @property
    def configuration(self) -> Optional[CloneConfiguration]:
        return copy.deepcopy(self._configuration)

    @property
    def clone_preview(self) -> Optional[ClonePreview]:
        return self._preview

    @property
    def validation_result(self) -> Optional[CloneValidationResult]:
        return self._validation

    @property
    def recommendations(self) -> List[SmartCloneRecommendation]:
        return list(self._recommendations)

    @property
    def batch_config(self) -> Optional[CloneBatchConfig]:
        return copy.deepcopy(self._batch_config)

    @property
    def batch_template_id(self) -> Optional[str]:
        return self._batch_template_id

    @property
    def state(self) -> SessionState:
        return SessionState(
            session_id=self._session_id,
            state=self.current_state,
            is_cloning=self.is_cloning,
            configuration=self.configuration,
            clone_preview=self._preview,
            validation_result=self._validation,
            recommendations=self.recommendations,
            batch_config=self.batch_config,
        )

    def is_live(self, session_id: Optional[str]) -> bool:
        """异步结果返回时，判断它所属的会话是否仍然有效"""
        return session_id is not None and session_id == self._session_id

    # ============== 内部 ==============

    def _require_permission(self) -> None:
        if not self._permission_checker.has_permission(ROLE_CREATE_PERMISSION):
            raise ClonePermissionDenied(ROLE_CREATE_PERMISSION)

    def _require_session(self) -> CloneConfiguration:
        if self._configuration is None:
            raise CloneSessionError("No clone session in progress")
        return self._configuration

    def _require_batch(self) -> CloneBatchConfig:
        if self._batch_config is None:
            raise CloneSessionError("No batch clone in progress")
        return self._batch_config

    def _fire(self, trigger: str) -> None:
        try:
            self._machine.fire(trigger)
        except InvalidTransition as e:
            raise CloneSessionError(str(e)) from e

    def _reset_machine(self, trigger: str) -> None:
        if self._machine.current_state != CloneSessionState.IDLE.value:
            self._machine.fire(trigger)
            self._machine.fire("reset")

    def _clear_single(self) -> None:
        self._session_id = None
        self._source_role = None
        self._configuration = None
        self._preview = None
        self._validation = None
        self._recommendations = []

    def _refresh_recommendations(self) -> None:
        self._recommendations = generate_recommendations(self._source_role, self._configuration)

    def _publish(self, event_type: str, correlation_id: Optional[str], **data: Any) -> None:
        self._event_bus.publish(Event(
            event_type=event_type,
            data=data,
            source="RoleCloneSession",
            correlation_id=correlation_id,
        ))

    # ============== 单个克隆 ==============

    async def start_clone(
        self,
        source_role_id: str,
        initial_config: Optional[Mapping[str, Any]] = None,
    ) -> SessionState:
        """
        开始克隆会话

        Args:
            source_role_id: 源角色ID
            initial_config: 可选的部分配置，深度合并到默认配置

        Returns:
            新会话的状态

        Raises:
            ClonePermissionDenied: 没有 role.create 权限
            RoleNotFoundError: 源角色不存在（会话保持原状）
        """
        self._require_permission()

        configuration = CloneConfiguration(
            source_role_id=source_role_id,
            new_metadata=NewMetadata(level=settings.DEFAULT_LEVEL),
        )
        if initial_config:
            configuration = configuration.merged(initial_config)
            configuration.source_role_id = source_role_id

        source_role = await self._gateway.get_role(source_role_id)

        if self._session_id is not None:
            logger.info(f"Abandoning clone session {self._session_id} for a new one")
        self._reset_machine("cancel")
        self._clear_single()

        self._session_id = uuid.uuid4().hex
        self._source_role = source_role
        self._configuration = configuration
        self._fire("start")
        self._refresh_recommendations()

        self._publish(
            CLONE_STARTED, self._session_id,
            source_role_id=source_role_id,
            clone_type=getattr(configuration.clone_type, "value", configuration.clone_type),
        )
        return self.state

    def update_configuration(self, updates: Mapping[str, Any]) -> SessionState:
        """
        深度合并配置更新并重新生成推荐

        new_metadata / permission_filters / inheritance_rules 逐字段合并。

        Returns:
            更新后的会话状态
        """
        current = self._require_session()
        if "source_role_id" in updates and str(updates["source_role_id"]) != current.source_role_id:
            raise ValueError("source_role_id cannot change within a session; start a new clone")

        self._configuration = current.merged(updates)
        self._revision += 1
        self._preview = None
        self._validation = None
        self._fire("update")
        self._refresh_recommendations()
        return self.state

    async def generate_preview(self) -> ClonePreview:
        """
        生成预览（调用时配置的快照）

        Raises:
            CloneSessionError: 没有进行中的会话
            RoleNotFoundError / CloneServiceError: 获取源角色失败，会话状态不变
        """
        config = copy.deepcopy(self._require_session())
        session_id = self._session_id
        revision = self._revision

        source_role = await self._gateway.get_role(config.source_role_id)

        resulting = compute_resulting_permissions(
            source_role.permissions, config, self._template_filter
        )
        added, removed, modified = diff_permissions(source_role.permissions, resulting)
        validation = validate_configuration(config, self._context)

        preview = ClonePreview(
            source_role=source_role,
            configuration=config,
            resulting_permissions=resulting,
            added_permissions=added,
            removed_permissions=removed,
            modified_permissions=modified,
            validation_errors=validation.error_messages,
            validation_warnings=validation.warning_messages,
            suggested_improvements=[s.message for s in validation.suggestions],
            estimated_level=estimate_level(resulting, config.clone_type),
            conflict_analysis=analyze_conflicts(config, self._context, source_role),
        )

        if not self.is_live(session_id) or revision != self._revision:
            logger.info(f"Preview for outdated configuration of session {session_id} not stored")
            return preview

        self._source_role = source_role
        self._preview = preview
        self._validation = validation
        self._fire("preview")
        return preview

    def validate_configuration(self) -> CloneValidationResult:
        """校验当前配置；任何状态下都可调用，不改变状态"""
        result = validate_configuration(self._require_session(), self._context)
        self._validation = result
        return result

    def confirm(self) -> SessionState:
        """previewing -> confirming"""
        self._require_session()
        self._fire("confirm")
        return self.state

    async def execute_clone(self) -> Role:
        """
        校验并提交克隆

        成功后会话回到 idle；失败时会话保持原状以便重试。

        Raises:
            CloneValidationFailed: 配置无效，不会调用持久化服务
            CloneGatewayError: 持久化服务失败
        """
        config = copy.deepcopy(self._require_session())
        session_id = self._session_id
        clone_type = getattr(config.clone_type, "value", config.clone_type)

        validation = self.validate_configuration()
        if not validation.is_valid:
            raise CloneValidationFailed(validation)

        try:
            role = await self._gateway.clone_role(config)
        except Exception as e:
            logger.error(f"Error executing role clone of {config.source_role_id}: {e}")
            self._publish(
                CLONE_FAILED, session_id,
                source_role_id=config.source_role_id, clone_type=clone_type, error=str(e),
            )
            raise

        if self._lineage_tracker is not None and config.preserve_lineage:
            self._lineage_tracker.invalidate_for_role(config.source_role_id)

        self._publish(
            CLONE_COMPLETED, session_id,
            source_role_id=config.source_role_id, target_role_id=role.id, clone_type=clone_type,
        )
        logger.info(f"Role {config.source_role_id} cloned as {role.id} ({role.name})")

        if self.is_live(session_id):
            self._fire("execute")
            self._machine.fire("reset")
            self._clear_single()
        return role

    def cancel_clone(self) -> SessionState:
        """从任何状态清空会话（包括批量配置）"""
        if self._session_id is not None:
            self._publish(
                CLONE_CANCELLED, self._session_id,
                source_role_id=self._configuration.source_role_id if self._configuration else None,
            )
        self._reset_machine("cancel")
        self._clear_single()
        self._batch_id = None
        self._batch_config = None
        self._batch_template_id = None
        return self.state

    # ============== 推荐 ==============

    def apply_recommendation(self, recommendation: SmartCloneRecommendation) -> SessionState:
        """应用可自动应用的推荐；手动推荐不做任何修改"""
        self._require_session()
        updates = recommendation_updates(recommendation)
        if not updates:
            return self.state
        return self.update_configuration(updates)

    def get_smart_suggestions(self) -> List[SmartCloneRecommendation]:
        return self.recommendations

    # ============== 批量克隆 ==============

    def start_batch_clone(self, config: CloneBatchConfig) -> SessionState:
        self._require_permission()
        self._batch_id = uuid.uuid4().hex
        self._batch_config = copy.deepcopy(config)
        self._batch_template_id = None
        return self.state

    def add_batch_variation(
        self, name: str, adjustments: Optional[Mapping[str, Any]] = None
    ) -> SessionState:
        batch = self._require_batch()
        if not name.strip():
            raise ValueError("Variation name is required")
        batch.variations.append(BatchVariation(name=name, adjustments=dict(adjustments or {})))
        return self.state

    def remove_batch_variation(self, index: int) -> SessionState:
        batch = self._require_batch()
        del batch.variations[index]
        return self.state

    def update_batch_config(self, updates: Mapping[str, Any]) -> SessionState:
        batch = self._require_batch()
        known = {f.name for f in fields(batch)}
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown batch fields: {sorted(unknown)}")
        for key, value in updates.items():
            setattr(batch, key, copy.deepcopy(value))
        return self.state

    def apply_template(self, template: CloneTemplate) -> SessionState:
        """
        把克隆模板应用到当前批量配置

        模板配置按顶层字段覆盖 global_adjustments；之后的 BULK_CLONE_* 事件带上模板ID。

        Raises:
            CloneSessionError: 没有进行中的批量配置
            ValueError: 模板包含未知的配置字段
        """
        batch = self._require_batch()
        self._batch_config = apply_clone_template(batch, template)
        self._batch_template_id = template.id
        logger.info(f"Applied template {template.name!r} to batch {self._batch_id}")
        return self.state

    async def execute_batch_clone(self) -> List[Role]:
        """
        提交批量克隆（一次网关调用）

        Raises:
            CloneSessionError: 没有进行中的批量配置
            CloneValidationFailed: 批量配置不完整
            CloneGatewayError: 持久化服务失败，批量配置保留
        """
        batch = copy.deepcopy(self._require_batch())
        batch_id = self._batch_id
        template_id = self._batch_template_id

        validation = validate_batch_config(batch)
        if not validation.is_valid:
            raise CloneValidationFailed(validation, "Batch configuration is incomplete")

        self._publish(
            BULK_CLONE_STARTED, batch_id,
            source_roles=list(batch.source_roles), total_roles=batch.total_roles, template_id=template_id,
        )
        try:
            roles = await self._gateway.batch_clone_roles(batch)
        except Exception as e:
            logger.error(f"Error executing batch clone {batch_id}: {e}")
            self._publish(
                BULK_CLONE_FAILED, batch_id,
                total_roles=batch.total_roles, template_id=template_id, error=str(e),
            )
            raise

        if self._lineage_tracker is not None:
            for source_id in batch.source_roles:
                self._lineage_tracker.invalidate_for_role(source_id)

        self._publish(
            BULK_CLONE_COMPLETED, batch_id,
            total_roles=batch.total_roles,
            completed_roles=len(roles),
            failed_roles=max(batch.total_roles - len(roles), 0),
            template_id=template_id,
        )
        logger.info(f"Batch clone {batch_id} created {len(roles)} of {batch.total_roles} roles")

        if batch_id is not None and batch_id == self._batch_id:
            self._batch_id = None
            self._batch_config = None
            self._batch_template_id = None
        return roles


__all__ = [
    "SessionState",
    "RoleCloneSession",
]

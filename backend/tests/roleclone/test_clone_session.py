"""
测试 roleclone.session 克隆会话编排
"""
import pytest

from fakes import FakeRoleCloneGateway
from roleclone.engine.event_bus import (
    BULK_CLONE_COMPLETED,
    BULK_CLONE_FAILED,
    BULK_CLONE_STARTED,
    CLONE_CANCELLED,
    CLONE_COMPLETED,
    CLONE_FAILED,
    CLONE_STARTED,
)
from roleclone.engine.state_machine import CloneSessionState
from roleclone.errors import (
    ClonePermissionDenied,
    CloneServiceError,
    CloneSessionError,
    CloneValidationFailed,
    RoleNotFoundError,
)
from roleclone.lineage import LineageTracker
from roleclone.ports import StaticPermissionChecker
from roleclone.recommendations import LevelAdjustment, NameSuggestion
from roleclone.session import RoleCloneSession
from roleclone.types import BatchVariation, CloneBatchConfig, CloneTemplate, CloneType

NIGHT_AUDITOR = {"new_metadata": {"name": "Night Auditor", "description": "Overnight audit", "level": 40}}


# ── Start / update ────────────────────────────────────────

class TestStartClone:
    """开始克隆会话"""

    @pytest.mark.asyncio
    async def test_requires_role_create_permission(self, gateway, context, bus):
        session = RoleCloneSession(gateway, StaticPermissionChecker({"role.read"}), context, event_bus=bus)
        with pytest.raises(ClonePermissionDenied) as exc_info:
            await session.start_clone("r2")
        assert exc_info.value.permission == "role.create"
        assert gateway.get_role_calls == []
        assert session.current_state == CloneSessionState.IDLE
        assert session.is_cloning is False

    @pytest.mark.asyncio
    async def test_start_initializes_defaults(self, session, bus):
        state = await session.start_clone("r2")

        assert state.state == CloneSessionState.CONFIGURING
        assert state.is_cloning is True
        assert state.session_id is not None
        config = state.configuration
        assert config.source_role_id == "r2"
        assert config.clone_type == CloneType.FULL
        assert config.new_metadata.name == ""
        assert config.new_metadata.level == 50
        assert config.preserve_lineage is True

        [event] = bus.get_history(CLONE_STARTED)
        assert event.correlation_id == state.session_id
        assert event.data == {"source_role_id": "r2", "clone_type": "full"}

    @pytest.mark.asyncio
    async def test_start_generates_recommendations(self, session):
        state = await session.start_clone("r2")
        types = [type(r) for r in state.recommendations]
        assert types == [NameSuggestion, LevelAdjustment]
        assert state.recommendations[1].suggested_value == 16

    @pytest.mark.asyncio
    async def test_initial_config_is_merged(self, session):
        state = await session.start_clone("r2", {
            "clone_type": "hierarchy",
            "new_metadata": {"name": "Trainee"},
            "source_role_id": "ignored",
        })
        assert state.configuration.clone_type == CloneType.HIERARCHY
        assert state.configuration.new_metadata.name == "Trainee"
        assert state.configuration.new_metadata.level == 50
        assert state.configuration.source_role_id == "r2"

    @pytest.mark.asyncio
    async def test_unknown_source_leaves_session_untouched(self, session):
        first = await session.start_clone("r2", NIGHT_AUDITOR)
        with pytest.raises(RoleNotFoundError):
            await session.start_clone("ghost")
        assert session.session_id == first.session_id
        assert session.configuration.source_role_id == "r2"

    @pytest.mark.asyncio
    async def test_restart_replaces_session(self, session):
        first = await session.start_clone("r2")
        second = await session.start_clone("r1")
        assert second.session_id != first.session_id
        assert session.is_live(first.session_id) is False
        assert session.is_live(second.session_id) is True
        assert session.configuration.source_role_id == "r1"


class TestUpdateConfiguration:
    """深度合并配置"""

    @pytest.mark.asyncio
    async def test_requires_session(self, session):
        with pytest.raises(CloneSessionError):
            session.update_configuration({"clone_type": "full"})

    @pytest.mark.asyncio
    async def test_deep_merge(self, session):
        await session.start_clone("r2", NIGHT_AUDITOR)
        state = session.update_configuration({"new_metadata": {"level": 45}})
        metadata = state.configuration.new_metadata
        assert metadata.name == "Night Auditor"
        assert metadata.description == "Overnight audit"
        assert metadata.level == 45
        assert state.state == CloneSessionState.CONFIGURING

    @pytest.mark.asyncio
    async def test_recommendations_refresh(self, session):
        await session.start_clone("r2")
        state = session.update_configuration({"new_metadata": {"name": "Desk", "level": 16}})
        assert state.recommendations == []

    @pytest.mark.asyncio
    async def test_cannot_change_source(self, session):
        await session.start_clone("r2")
        with pytest.raises(ValueError):
            session.update_configuration({"source_role_id": "r1"})

    @pytest.mark.asyncio
    async def test_unknown_field(self, session):
        await session.start_clone("r2")
        with pytest.raises(ValueError):
            session.update_configuration({"colour": "red"})

    @pytest.mark.asyncio
    async def test_returned_configuration_is_a_copy(self, session):
        state = await session.start_clone("r2", NIGHT_AUDITOR)
        state.configuration.new_metadata.name = "Tampered"
        assert session.configuration.new_metadata.name == "Night Auditor"


# ── Preview ───────────────────────────────────────────────

class TestGeneratePreview:
    """预览"""

    @pytest.mark.asyncio
    async def test_hierarchy_scenario(self, session, p1, p2):
        await session.start_clone("r1", {
            "clone_type": "hierarchy",
            "new_metadata": {"name": "Junior User Admin", "description": "x", "level": 40},
        })
        preview = await session.generate_preview()

        assert preview.resulting_permissions == [p1]
        assert preview.removed_permissions == [p2]
        assert preview.added_permissions == []
        assert preview.modified_permissions == []
        # 2*1 + 6 = 8, * 0.9 -> 7, clamped
        assert preview.estimated_level == 10
        assert preview.validation_errors == []
        assert session.current_state == CloneSessionState.PREVIEWING
        assert session.clone_preview is preview

    @pytest.mark.asyncio
    async def test_naming_conflict_in_preview(self, session):
        await session.start_clone("r2", {"new_metadata": {"name": "Housekeeper"}})
        preview = await session.generate_preview()
        assert preview.conflict_analysis.naming_conflicts == ['Role name "Housekeeper" already exists']
        assert session.validation_result.is_valid is False

    @pytest.mark.asyncio
    async def test_preview_collects_messages(self, session):
        await session.start_clone("r2", {"clone_type": "partial", "new_metadata": {"name": "Desk", "level": 120}})
        preview = await session.generate_preview()
        assert "Partial clone requires at least one permission to be selected" in preview.validation_errors
        assert "Role level cannot exceed 100" in preview.validation_errors
        assert preview.suggested_improvements
        assert preview.conflict_analysis.hierarchy_conflicts == ["Level 120 is outside allowed range 10-100"]

    @pytest.mark.asyncio
    async def test_preview_is_a_snapshot(self, session):
        await session.start_clone("r2", NIGHT_AUDITOR)
        preview = await session.generate_preview()
        session.update_configuration({"new_metadata": {"name": "Changed"}})

        assert preview.configuration.new_metadata.name == "Night Auditor"
        assert session.clone_preview is None
        assert session.current_state == CloneSessionState.CONFIGURING

    @pytest.mark.asyncio
    async def test_failure_keeps_configuring(self, session, gateway):
        await session.start_clone("r2", NIGHT_AUDITOR)
        del gateway.roles["r2"]
        with pytest.raises(RoleNotFoundError):
            await session.generate_preview()
        assert session.current_state == CloneSessionState.CONFIGURING
        assert session.clone_preview is None
        assert session.is_cloning is True

    @pytest.mark.asyncio
    async def test_requires_session(self, session):
        with pytest.raises(CloneSessionError):
            await session.generate_preview()

    @pytest.mark.asyncio
    async def test_stale_preview_is_not_stored(self, session, gateway):
        state = await session.start_clone("r2", NIGHT_AUDITOR)

        async def cancel_meanwhile(role_id):
            session.cancel_clone()

        gateway.before_get_role = cancel_meanwhile
        preview = await session.generate_preview()

        assert preview.configuration.new_metadata.name == "Night Auditor"
        assert session.is_live(state.session_id) is False
        assert session.clone_preview is None
        assert session.current_state == CloneSessionState.IDLE

    @pytest.mark.asyncio
    async def test_preview_of_edited_configuration_is_not_stored(self, session, gateway):
        state = await session.start_clone("r2", NIGHT_AUDITOR)

        async def edit_meanwhile(role_id):
            session.update_configuration({"new_metadata": {"name": "ab"}})

        gateway.before_get_role = edit_meanwhile
        preview = await session.generate_preview()

        assert preview.configuration.new_metadata.name == "Night Auditor"
        assert session.is_live(state.session_id) is True
        assert session.configuration.new_metadata.name == "ab"
        assert session.clone_preview is None
        assert session.validation_result is None
        assert session.current_state == CloneSessionState.CONFIGURING

        # 对当前配置重新预览后才会保存
        gateway.before_get_role = None
        preview = await session.generate_preview()
        assert session.clone_preview is preview
        assert session.validation_result.is_valid is False
        assert session.current_state == CloneSessionState.PREVIEWING


class TestValidateAndConfirm:
    """校验与确认"""

    @pytest.mark.asyncio
    async def test_validation_does_not_change_state(self, session):
        await session.start_clone("r2", {"clone_type": "partial", "new_metadata": {"name": "Desk"}})
        first = session.validate_configuration()
        second = session.validate_configuration()
        assert first == second
        assert first.is_valid is False
        assert first.errors_for("permissions")
        assert session.current_state == CloneSessionState.CONFIGURING

    @pytest.mark.asyncio
    async def test_confirm_requires_preview(self, session):
        await session.start_clone("r2", NIGHT_AUDITOR)
        with pytest.raises(CloneSessionError):
            session.confirm()
        await session.generate_preview()
        assert session.confirm().state == CloneSessionState.CONFIRMING


# ── Execute / cancel ──────────────────────────────────────

class TestExecuteClone:
    """执行克隆"""

    @pytest.mark.asyncio
    async def test_invalid_configuration_never_reaches_gateway(self, session, gateway):
        await session.start_clone("r2", {"clone_type": "partial", "new_metadata": {"name": "Desk"}})
        with pytest.raises(CloneValidationFailed) as exc_info:
            await session.execute_clone()
        assert exc_info.value.result.errors_for("permissions")
        assert gateway.clone_calls == []
        assert session.is_cloning is True

    @pytest.mark.asyncio
    async def test_naming_conflict_blocks_execution(self, session, gateway):
        await session.start_clone("r2", {"new_metadata": {"name": "User Admin", "description": "x"}})
        with pytest.raises(CloneValidationFailed) as exc_info:
            await session.execute_clone()
        assert len(exc_info.value.result.conflicts) == 1
        assert exc_info.value.result.errors == []
        assert gateway.clone_calls == []

    @pytest.mark.asyncio
    async def test_success_resets_session(self, session, gateway, bus):
        state = await session.start_clone("r2", NIGHT_AUDITOR)
        await session.generate_preview()
        session.confirm()
        role = await session.execute_clone()

        assert role.name == "Night Auditor"
        assert role.level == 40
        assert len(gateway.clone_calls) == 1
        assert session.current_state == CloneSessionState.IDLE
        assert session.is_cloning is False
        assert session.session_id is None
        assert session.clone_preview is None
        assert session.recommendations == []

        [event] = bus.get_history(CLONE_COMPLETED)
        assert event.correlation_id == state.session_id
        assert event.data["target_role_id"] == role.id

    @pytest.mark.asyncio
    async def test_success_invalidates_lineage(self, gateway, checker, context, bus):
        tracker = LineageTracker(gateway)
        await tracker.load_lineage("r2")
        session = RoleCloneSession(gateway, checker, context, lineage_tracker=tracker, event_bus=bus)

        await session.start_clone("r2", NIGHT_AUDITOR)
        await session.execute_clone()

        assert tracker.find("r21") is None
        await tracker.load_lineage("r2")
        assert gateway.lineage_calls == ["r2", "r2"]

    @pytest.mark.asyncio
    async def test_failure_keeps_state_for_retry(self, session, gateway, bus):
        await session.start_clone("r2", NIGHT_AUDITOR)
        await session.generate_preview()
        gateway.fail_with = CloneServiceError("database unavailable")

        with pytest.raises(CloneServiceError):
            await session.execute_clone()
        assert session.current_state == CloneSessionState.PREVIEWING
        assert session.configuration.new_metadata.name == "Night Auditor"
        [failed] = bus.get_history(CLONE_FAILED)
        assert failed.data["error"] == "database unavailable"

        gateway.fail_with = None
        role = await session.execute_clone()
        assert role.name == "Night Auditor"
        assert len(gateway.clone_calls) == 2

    @pytest.mark.asyncio
    async def test_requires_session(self, session):
        with pytest.raises(CloneSessionError):
            await session.execute_clone()


class TestCancelClone:
    """取消"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("steps", ["start", "preview", "confirm"])
    async def test_cancel_from_any_state(self, session, bus, steps):
        state = await session.start_clone("r2", NIGHT_AUDITOR)
        if steps in ("preview", "confirm"):
            await session.generate_preview()
        if steps == "confirm":
            session.confirm()

        cancelled = session.cancel_clone()
        assert cancelled.state == CloneSessionState.IDLE
        assert cancelled.is_cloning is False
        assert cancelled.clone_preview is None
        assert cancelled.validation_result is None
        assert session.is_live(state.session_id) is False
        [event] = bus.get_history(CLONE_CANCELLED)
        assert event.correlation_id == state.session_id

    def test_cancel_when_idle(self, session, bus):
        assert session.cancel_clone().state == CloneSessionState.IDLE
        assert bus.get_history(CLONE_CANCELLED) == []

    def test_cancel_clears_batch(self, session):
        session.start_batch_clone(CloneBatchConfig(source_roles=["r1"], variations=[BatchVariation("A")]))
        assert session.cancel_clone().batch_config is None


# ── Recommendations ───────────────────────────────────────

class TestApplyRecommendation:
    """应用推荐"""

    @pytest.mark.asyncio
    async def test_apply_is_idempotent(self, session):
        await session.start_clone("r2")
        for rec in session.get_smart_suggestions():
            state = session.apply_recommendation(rec)
            assert all(
                not (type(r) is type(rec) and r.suggested_value == rec.suggested_value)
                for r in state.recommendations
            )
        config = session.configuration
        assert config.new_metadata.name.startswith("Front Desk Agent Copy ")
        assert config.new_metadata.level == 16
        assert session.recommendations == []

    @pytest.mark.asyncio
    async def test_manual_recommendation_changes_nothing(self, session):
        await session.start_clone("r2")
        before = session.configuration
        session.apply_recommendation(LevelAdjustment(suggested_value=77, is_auto_applicable=False))
        assert session.configuration == before


# ── Batch ─────────────────────────────────────────────────

class TestBatchClone:
    """批量克隆"""

    @pytest.fixture
    def batch(self):
        return CloneBatchConfig(
            source_roles=["r1", "r2", "r3"],
            variations=[BatchVariation("Tower A"), BatchVariation("Tower B")],
        )

    @pytest.mark.asyncio
    async def test_three_by_two_requests_six_roles(self, session, gateway, bus, batch):
        session.start_batch_clone(batch)
        roles = await session.execute_batch_clone()

        assert len(gateway.batch_calls) == 1
        assert gateway.batch_calls[0].total_roles == 6
        assert len(roles) == 6
        assert roles[0].name == "User Admin - Tower A"
        assert roles[5].name == "Housekeeper - Tower B"
        assert session.batch_config is None

        [done] = bus.get_history(BULK_CLONE_COMPLETED)
        assert done.data == {"total_roles": 6, "completed_roles": 6, "failed_roles": 0, "template_id": None}
        assert len(bus.get_history(BULK_CLONE_STARTED)) == 1

    def test_requires_permission(self, gateway, context, bus, batch):
        session = RoleCloneSession(gateway, StaticPermissionChecker(set()), context, event_bus=bus)
        with pytest.raises(ClonePermissionDenied):
            session.start_batch_clone(batch)

    @pytest.mark.asyncio
    async def test_requires_batch(self, session):
        with pytest.raises(CloneSessionError):
            await session.execute_batch_clone()
        with pytest.raises(CloneSessionError):
            session.add_batch_variation("X")

    @pytest.mark.asyncio
    async def test_incomplete_batch_never_reaches_gateway(self, session, gateway):
        session.start_batch_clone(CloneBatchConfig(source_roles=["r1"]))
        with pytest.raises(CloneValidationFailed):
            await session.execute_batch_clone()
        assert gateway.batch_calls == []

    @pytest.mark.asyncio
    async def test_too_many_variations(self, session, gateway):
        session.start_batch_clone(CloneBatchConfig(
            source_roles=["r1"], variations=[BatchVariation(f"V{i}") for i in range(11)],
        ))
        with pytest.raises(CloneValidationFailed):
            await session.execute_batch_clone()
        assert gateway.batch_calls == []

    @pytest.mark.asyncio
    async def test_edit_variations(self, session, gateway):
        session.start_batch_clone(CloneBatchConfig(source_roles=["r3"]))
        session.add_batch_variation("Tower A", {"new_metadata": {"level": 25}})
        session.add_batch_variation("Tower B")
        session.add_batch_variation("Tower C")
        state = session.remove_batch_variation(1)
        assert [v.name for v in state.batch_config.variations] == ["Tower A", "Tower C"]

        with pytest.raises(ValueError):
            session.add_batch_variation("  ")

        session.update_batch_config({"name_pattern": "{variation} {sourceName}"})
        roles = await session.execute_batch_clone()
        assert [r.name for r in roles] == ["Tower A Housekeeper", "Tower C Housekeeper"]
        assert roles[0].level == 25

    def test_update_batch_config_unknown_field(self, session, batch):
        session.start_batch_clone(batch)
        with pytest.raises(ValueError):
            session.update_batch_config({"colour": "red"})

    def test_batch_config_is_copied(self, session, batch):
        session.start_batch_clone(batch)
        batch.variations.append(BatchVariation("Tower C"))
        assert len(session.batch_config.variations) == 2

    @pytest.mark.asyncio
    async def test_failure_keeps_batch(self, session, gateway, bus, batch):
        session.start_batch_clone(batch)
        gateway.fail_with = CloneServiceError("timeout")
        with pytest.raises(CloneServiceError):
            await session.execute_batch_clone()
        assert session.batch_config is not None
        [failed] = bus.get_history(BULK_CLONE_FAILED)
        assert failed.data["error"] == "timeout"

    @pytest.mark.asyncio
    async def test_apply_template(self, session, gateway, bus, batch):
        batch.global_adjustments = {"preserve_lineage": False, "new_metadata": {"description": "Tower staff"}}
        session.start_batch_clone(batch)
        template = CloneTemplate(
            id="t1", name="Tower Staff",
            configuration={"source_role_id": "r9", "new_metadata": {"level": 45}},
        )
        state = session.apply_template(template)

        # 按顶层字段覆盖
        assert state.batch_config.global_adjustments == {
            "preserve_lineage": False, "new_metadata": {"level": 45},
        }
        assert session.batch_template_id == "t1"
        assert template.configuration["source_role_id"] == "r9"

        roles = await session.execute_batch_clone()
        assert {r.level for r in roles} == {45}
        assert gateway.batch_calls[0].source_roles == ["r1", "r2", "r3"]
        [started] = bus.get_history(BULK_CLONE_STARTED)
        assert started.data["template_id"] == "t1"
        assert session.batch_template_id is None

    def test_apply_template_requires_batch(self, session):
        with pytest.raises(CloneSessionError):
            session.apply_template(CloneTemplate(name="Any"))

    def test_apply_template_rejects_unknown_fields(self, session, batch):
        session.start_batch_clone(batch)
        with pytest.raises(ValueError):
            session.apply_template(CloneTemplate(name="Broken", configuration={"colour": "red"}))
        assert session.batch_config.global_adjustments == {}
        assert session.batch_template_id is None


@pytest.mark.asyncio
async def test_sessions_are_independent(gateway, checker, context, bus):
    first = RoleCloneSession(gateway, checker, context, event_bus=bus)
    second = RoleCloneSession(gateway, checker, context, event_bus=bus)

    await first.start_clone("r1", {"new_metadata": {"name": "First"}})
    await second.start_clone("r2", {"new_metadata": {"name": "Second"}})
    second.cancel_clone()

    assert first.configuration.new_metadata.name == "First"
    assert first.current_state == CloneSessionState.CONFIGURING
    assert second.is_cloning is False


@pytest.mark.asyncio
async def test_default_event_bus_is_global(gateway, checker):
    from roleclone.engine.event_bus import event_bus

    session = RoleCloneSession(FakeRoleCloneGateway(list(gateway.roles.values())), checker)
    before = len(event_bus.get_history(CLONE_STARTED, limit=1000))
    await session.start_clone("r2")
    assert len(event_bus.get_history(CLONE_STARTED, limit=1000)) == min(before + 1, 100)

"""
测试 roleclone.permission_algebra 权限集合计算
"""
import pytest

from roleclone.permission_algebra import (
    apply_category_filters,
    apply_scope_adjustments,
    compute_resulting_permissions,
    diff_permissions,
    get_template_filter,
    identity_template_filter,
    register_template_filter,
)
from roleclone.types import CloneConfiguration, CloneType, Permission


def make_config(**updates) -> CloneConfiguration:
    return CloneConfiguration(source_role_id="r2").merged(updates)


@pytest.fixture(autouse=True)
def restore_template_filter():
    yield
    register_template_filter(None)


class TestStructuralFilter:
    """按克隆类型的结构过滤"""

    @pytest.mark.parametrize("clone_type", ["full", "permissions"])
    def test_full_and_permissions_keep_everything(self, front_desk_permissions, clone_type):
        config = make_config(clone_type=clone_type)
        assert compute_resulting_permissions(front_desk_permissions, config) == front_desk_permissions

    def test_full_clone_with_any_level_keeps_everything(self, front_desk_permissions):
        config = make_config(clone_type="full", new_metadata={"level": 10})
        assert compute_resulting_permissions(front_desk_permissions, config) == front_desk_permissions

    def test_partial_keeps_only_selected(self, front_desk_permissions):
        config = make_config(clone_type="partial", permission_filters={"custom_selections": ["p4", "p1"]})
        result = compute_resulting_permissions(front_desk_permissions, config)
        assert [p.id for p in result] == ["p1", "p4"]
        assert set(result) <= set(front_desk_permissions)

    def test_partial_with_empty_selection_is_empty(self, front_desk_permissions):
        config = make_config(clone_type="partial")
        assert compute_resulting_permissions(front_desk_permissions, config) == []

    def test_partial_ignores_unknown_selection(self, front_desk_permissions):
        config = make_config(clone_type="partial", permission_filters={"custom_selections": ["p1", "nope"]})
        assert [p.id for p in compute_resulting_permissions(front_desk_permissions, config)] == ["p1"]

    def test_hierarchy_drops_platform_below_70(self, p1, p2):
        config = make_config(clone_type="hierarchy", new_metadata={"level": 40})
        result = compute_resulting_permissions([p1, p2], config)
        assert result == [p1]
        added, removed, modified = diff_permissions([p1, p2], result)
        assert added == []
        assert removed == [p2]
        assert modified == []

    def test_hierarchy_thresholds(self, front_desk_permissions):
        def scopes_at(level):
            config = make_config(clone_type="hierarchy", new_metadata={"level": level})
            return {p.scope for p in compute_resulting_permissions(front_desk_permissions, config)}

        assert scopes_at(40) == {"property", "department", "own"}
        assert scopes_at(50) == {"organization", "property", "department", "own"}
        assert scopes_at(69) == {"organization", "property", "department", "own"}
        assert "platform" in scopes_at(70)

    def test_template_uses_identity_by_default(self, front_desk_permissions):
        assert get_template_filter() is identity_template_filter
        config = make_config(clone_type="template")
        assert compute_resulting_permissions(front_desk_permissions, config) == front_desk_permissions

    def test_registered_template_filter(self, front_desk_permissions):
        def read_only(permissions, config):
            return [p for p in permissions if p.action == "read"]

        register_template_filter(read_only)
        config = make_config(clone_type="template")
        result = compute_resulting_permissions(front_desk_permissions, config)
        assert [p.id for p in result] == ["p1", "p4"]

    def test_template_filter_override_argument(self, front_desk_permissions):
        config = make_config(clone_type="template")
        result = compute_resulting_permissions(front_desk_permissions, config, lambda perms, cfg: perms[:1])
        assert [p.id for p in result] == ["p1"]

    def test_unknown_clone_type_falls_back_to_full(self, front_desk_permissions, caplog):
        config = make_config(clone_type="mirror")
        assert config.clone_type == "mirror"
        with caplog.at_level("WARNING"):
            result = compute_resulting_permissions(front_desk_permissions, config)
        assert result == front_desk_permissions
        assert "falling back to full clone" in caplog.text


class TestCategoryAndScopeFilters:
    """分类 / 范围过滤"""

    def test_exclude_categories(self, front_desk_permissions):
        config = make_config(permission_filters={"exclude_categories": ["user"]})
        result = apply_category_filters(front_desk_permissions, config)
        assert [p.id for p in result] == ["p3", "p4", "p5"]

    def test_include_categories(self, front_desk_permissions):
        config = make_config(permission_filters={"include_categories": ["user", "room"]})
        result = apply_category_filters(front_desk_permissions, config)
        assert [p.id for p in result] == ["p1", "p2", "p4"]

    def test_exclude_wins_over_include(self, front_desk_permissions):
        config = make_config(permission_filters={
            "include_categories": ["user", "room"],
            "exclude_categories": ["user"],
        })
        result = compute_resulting_permissions(front_desk_permissions, config)
        assert [p.id for p in result] == ["p4"]

    def test_scope_filters(self, front_desk_permissions):
        config = make_config(permission_filters={
            "include_scopes": ["property", "platform", "own"],
            "exclude_scopes": ["platform"],
        })
        result = compute_resulting_permissions(front_desk_permissions, config)
        assert [p.id for p in result] == ["p1", "p5"]

    def test_filters_apply_after_partial_selection(self, front_desk_permissions):
        config = make_config(
            clone_type="partial",
            permission_filters={"custom_selections": ["p1", "p3"], "exclude_categories": ["reservation"]},
        )
        assert [p.id for p in compute_resulting_permissions(front_desk_permissions, config)] == ["p1"]


class TestScopeAdjustments:
    """范围调整"""

    def test_adjustment_replaces_scope_only(self, p1, p2):
        config = make_config(scope_adjustments={"p2": "property"})
        result = apply_scope_adjustments([p1, p2], config)
        assert result[0] is p1
        assert result[1] == Permission(id="p2", resource="user", action="write", scope="property")

    def test_adjusted_permissions_reported_as_modified(self, p1, p2):
        config = make_config(scope_adjustments={"p1": "own"})
        result = compute_resulting_permissions([p1, p2], config)
        added, removed, modified = diff_permissions([p1, p2], result)
        assert added == [] and removed == []
        assert modified == [p1.with_scope("own")]

    def test_adjustment_for_missing_permission_is_ignored(self, p1):
        config = make_config(scope_adjustments={"p9": "own"})
        assert compute_resulting_permissions([p1], config) == [p1]

    def test_source_permissions_not_mutated(self, p1):
        config = make_config(scope_adjustments={"p1": "own"})
        compute_resulting_permissions([p1], config)
        assert p1.scope == "property"

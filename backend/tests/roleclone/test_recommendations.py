"""
测试 roleclone.recommendations 智能推荐
"""
from dataclasses import replace
from datetime import date

import pytest

from roleclone.recommendations import (
    LevelAdjustment,
    NameSuggestion,
    generate_recommendations,
    recommendation_updates,
    suggest_name,
)
from roleclone.types import CloneConfiguration, CloneType

TODAY = date(2026, 10, 19)


@pytest.mark.parametrize("clone_type, expected", [
    (CloneType.TEMPLATE, "Front Desk Agent Template"),
    (CloneType.HIERARCHY, "Front Desk Agent (Modified)"),
    (CloneType.PARTIAL, "Front Desk Agent (Partial)"),
    (CloneType.FULL, "Front Desk Agent Copy 20261019"),
    (CloneType.PERMISSIONS, "Front Desk Agent Copy 20261019"),
])
def test_suggest_name(clone_type, expected):
    assert suggest_name("Front Desk Agent", clone_type, TODAY) == expected


def test_empty_name_and_mismatched_level(front_desk_role):
    config = CloneConfiguration(source_role_id="r2")
    recs = generate_recommendations(front_desk_role, config, TODAY)

    assert [r.recommendation_type for r in recs] == ["name_suggestion", "level_adjustment"]
    name, level = recs
    assert isinstance(name, NameSuggestion)
    assert name.suggested_value == "Front Desk Agent Copy 20261019"
    assert name.confidence == 0.8
    assert name.is_auto_applicable is True
    assert isinstance(level, LevelAdjustment)
    assert level.suggested_value == 16
    assert level.confidence == 0.9
    assert level.explanation


def test_no_recommendations_when_settled(front_desk_role):
    config = CloneConfiguration(source_role_id="r2").merged({"new_metadata": {"name": "Desk", "level": 16}})
    assert generate_recommendations(front_desk_role, config, TODAY) == []


def test_hierarchy_level_suggestion(front_desk_role):
    config = CloneConfiguration(source_role_id="r2", clone_type="hierarchy").merged(
        {"new_metadata": {"name": "Trainee"}}
    )
    recs = generate_recommendations(front_desk_role, config, TODAY)
    assert [r.suggested_value for r in recs] == [14]


def test_auto_suggest_level_disabled(front_desk_role):
    config = CloneConfiguration(source_role_id="r2").merged({"inheritance_rules": {"auto_suggest_level": False}})
    recs = generate_recommendations(front_desk_role, config, TODAY)
    assert [r.recommendation_type for r in recs] == ["name_suggestion"]


def test_applying_recommendations_is_idempotent(front_desk_role, user_admin_role):
    for role in (front_desk_role, user_admin_role):
        for clone_type in CloneType:
            config = CloneConfiguration(source_role_id=role.id, clone_type=clone_type)
            for rec in generate_recommendations(role, config, TODAY):
                applied = config.merged(recommendation_updates(rec))
                again = generate_recommendations(role, applied, TODAY)
                assert all(
                    not (type(r) is type(rec) and r.suggested_value == rec.suggested_value)
                    for r in again
                )


def test_recommendation_updates():
    assert recommendation_updates(NameSuggestion("Desk Copy")) == {"new_metadata": {"name": "Desk Copy"}}
    assert recommendation_updates(LevelAdjustment(30)) == {"new_metadata": {"level": 30}}


def test_manual_recommendation_has_no_updates():
    manual = replace(LevelAdjustment(30), is_auto_applicable=False)
    assert recommendation_updates(manual) == {}

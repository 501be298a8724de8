from __future__ import annotations

import pytest

from tycoon.game_data_loader import GameDataLoader


def test_packaged_data_is_valid(packaged_loader):
    assert packaged_loader.validate_data() == []
    assert packaged_loader.get_power_division_id() == "energy"
    assert len(packaged_loader.get_division_ids()) == 6
    for division_id in packaged_loader.get_division_ids():
        assert packaged_loader.get_tier_config(division_id, 5) is not None


def test_lookups(data_loader):
    assert data_loader.get_tier_config("factory", 0)["name"] == "Widget"
    assert data_loader.get_tier_config("factory", 2) is None
    assert data_loader.get_tier_config("factory", -1) is None
    assert data_loader.get_tier_config("nowhere", 0) is None
    assert data_loader.get_automation_speed_table() == [1, 2]
    assert data_loader.get_max_automation_level() == 2
    assert data_loader.get_division_unlock_cost("factory") == 100
    assert data_loader.get_division_unlock_cost("nowhere") is None
    assert data_loader.get_research_node("grid")["prerequisites"] == ["basics"]
    assert data_loader.get_rules("missing_section") == {}


def test_validation_reports_broken_content():
    loader = GameDataLoader.from_documents({
        "divisions": {
            "power_division": "reactor",
            "divisions": [
                {"id": "shop", "tiers": [{"base_cost": 0, "cost_multiplier": 1.0, "cycle_duration": 0}]},
            ],
        },
        "research": {"research": [{"id": "a", "prerequisites": ["ghost"]}]},
    })
    errors = loader.validate_data()
    assert "Power division not defined: reactor" in errors
    assert any("cost multiplier" in e for e in errors)
    assert any("unknown prerequisite ghost" in e for e in errors)


def test_unknown_document_name_is_rejected():
    with pytest.raises(KeyError):
        GameDataLoader.from_documents({"cheats": {}})

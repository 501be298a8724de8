from __future__ import annotations

import pytest

from tycoon.config import TestingConfig
from tycoon.events import EventBus
from tycoon.game_data_loader import GameDataLoader
from tycoon.production import ProductionEngine
from tycoon.state import create_initial_state


def _documents():
    return {
        "divisions": {
            "power_division": "energy",
            "starter_divisions": ["energy", "factory"],
            "divisions": [
                {
                    "id": "energy",
                    "name": "Grid",
                    "unlock_cost": 0,
                    "tiers": [
                        {"name": "Panel", "base_cost": 10, "base_revenue": 1, "cycle_duration": 1,
                         "cost_multiplier": 1.1, "revenue_multiplier": 1.1, "power_mw": 5},
                    ],
                },
                {
                    "id": "factory",
                    "name": "Factory",
                    "unlock_cost": 100,
                    "tiers": [
                        {"name": "Widget", "base_cost": 15, "base_revenue": 2, "cycle_duration": 1.2,
                         "cost_multiplier": 1.15, "revenue_multiplier": 1.1, "power_mw": 0},
                        {"name": "Assembler", "base_cost": 100, "base_revenue": 20, "cycle_duration": 3,
                         "cost_multiplier": 1.2, "revenue_multiplier": 1.1, "power_mw": -10},
                    ],
                },
            ],
        },
        "automation": {
            "automation_levels": [
                {"level": 1, "name": "Chief", "cost": 500, "speed_multiplier": 1},
                {"level": 2, "name": "Director", "cost": 5000, "speed_multiplier": 2},
            ]
        },
        "milestones": {"milestones": [{"threshold": 25, "reward_type": "speed", "multiplier": 2}]},
        "upgrades": {
            "upgrades": [
                {"id": "factory_speed", "category": "speed", "target": "factory", "tier_index": 0,
                 "value": 2, "cost": 50},
                {"id": "factory_revenue", "category": "revenue", "target": "factory", "value": 3,
                 "cost": 100, "requires_tier_count": {"division": "factory", "tier": 0, "count": 10}},
                {"id": "offline_boost", "category": "offline", "target": "all", "value": 0.25, "cost": 10},
            ]
        },
        "research": {
            "research": [
                {"id": "basics", "cost": 10, "time_ms": 1000, "prerequisites": [],
                 "effects": [{"type": "production_speed", "target": "factory", "value": 0.5}]},
                {"id": "grid", "cost": 20, "time_ms": 2000, "prerequisites": ["basics"],
                 "effects": [{"type": "power_output", "target": "energy", "value": 1.0}]},
            ]
        },
        "bottlenecks": {
            "bottlenecks": [
                {"id": "power_deficit", "global": True, "severity": 0.15,
                 "trigger": {"metric": "power_deficit"}},
                {"id": "supply_chain", "division": "factory", "severity": 0.5,
                 "trigger": {"metric": "tier_count", "tier": 0, "threshold": 50},
                 "cash_cost": 1000, "research_cost": 5, "wait_ms": 10000},
            ]
        },
        "buffs": {
            "buffs": [
                {"id": "contract_bonus", "kind": "revenue", "value": 2, "target": "all", "duration_ms": 120000},
            ]
        },
        "synergies": {"synergies": []},
        "random_events": {"rules": {}, "events": []},
        "economic_rules": {
            "unlock_cost_multiplier": 5,
            "max_bulk_purchase": 10000,
            "level_up": {"base_cost_multiplier": 10, "cost_growth": 2.5},
            "prestige": {"min_total_value": 1000, "revenue_per_colony_tech": 0.03},
            "division_prestige": {"unit_requirements": [10, 20], "revenue_per_star": 0.1, "speed_per_star": 0.05},
            "workers": {"base_cost": 1000, "cost_growth": 1.5, "bonus_per_worker": 0.02, "max_per_division": 5},
            "contracts": {"max_active": 3, "first_spawn_ms": 15000,
                          "spawn_interval_min_ms": 300000, "spawn_interval_max_ms": 600000},
        },
    }


@pytest.fixture
def data_loader():
    return GameDataLoader.from_documents(_documents())


@pytest.fixture
def packaged_loader():
    return GameDataLoader()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def engine(data_loader, bus):
    return ProductionEngine(data_loader, TestingConfig, bus)


@pytest.fixture
def state(data_loader):
    return create_initial_state(data_loader, TestingConfig, unlocked_divisions=["energy", "factory"])


@pytest.fixture
def make_loader():
    """Build a loader from the test documents with some of them replaced."""
    def build(**documents):
        return GameDataLoader.from_documents({**_documents(), **documents})
    return build

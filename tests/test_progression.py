from __future__ import annotations

import pytest

from tycoon.buffs import add_buff, tick_buffs
from tycoon.config import TestingConfig
from tycoon.events import PRESTIGE_COMPLETED, RESEARCH_COMPLETED, UPGRADE_PURCHASED
from tycoon.prestige import PrestigeSystem, calculate_colony_tech, should_suggest_prestige
from tycoon.research import ResearchSystem
from tycoon.upgrades import UpgradeSystem
from tycoon.workers import WorkerSystem


def test_research_runs_to_completion(data_loader, state, bus):
    research = ResearchSystem(data_loader, bus)
    assert not research.can_start(state, "basics")
    state["research_points"] = 15.0

    assert not research.can_start(state, "grid")
    assert research.start_research(state, "basics")
    assert state["research_points"] == 5
    assert not research.start_research(state, "basics")

    assert research.tick_research(state, 500) == []
    events = research.tick_research(state, 500)
    assert events == [{"type": RESEARCH_COMPLETED, "research": "basics"}]
    assert state["unlocked_research"] == ["basics"]
    assert state["active_research"] is None
    assert [n["id"] for n in research.available_nodes(state)] == ["grid"]


def test_research_completes_inside_the_tick(engine, state):
    state["research_points"] = 10.0
    engine.research.start_research(state, "basics")
    events = engine.tick(state, 1000)
    assert RESEARCH_COMPLETED in [e["type"] for e in events]
    # Trickle is earned on top of the spent points
    assert state["research_points"] == pytest.approx(TestingConfig.RESEARCH_POINTS_PER_SEC)


def test_upgrade_requirements_and_purchase(data_loader, state, bus):
    bought = []
    bus.subscribe(UPGRADE_PURCHASED, bought.append)
    upgrades = UpgradeSystem(data_loader, bus)
    state["cash"] = 1000.0

    assert not upgrades.can_purchase(state, "factory_revenue")
    state["divisions"]["factory"]["tiers"][0]["count"] = 10
    assert upgrades.purchase_upgrade(state, "factory_revenue")
    assert not upgrades.purchase_upgrade(state, "factory_revenue")
    assert state["cash"] == 900
    assert bought[0]["category"] == "revenue"
    assert "factory_revenue" not in [u["id"] for u in upgrades.available_upgrades(state)]


def test_workers_hire_and_allocate(data_loader, state):
    workers = WorkerSystem(data_loader)
    state["cash"] = 3000.0
    assert workers.hire_cost(state) == 1000
    assert workers.hire_worker(state)
    assert workers.hire_cost(state) == 1500
    assert workers.hire_worker(state)
    assert not workers.hire_worker(state)

    assert workers.allocate_workers(state, "factory", 2)
    assert workers.free_workers(state) == 0
    assert not workers.allocate_workers(state, "energy", 1)
    assert workers.allocate_workers(state, "factory", 0)
    assert state["workers"]["allocation"] == {}
    assert not workers.allocate_workers(state, "factory", 6)


def test_colony_tech_formula():
    assert calculate_colony_tech(0) == 0
    assert calculate_colony_tech(1e6) == 60
    assert calculate_colony_tech(1e9) == 90
    assert should_suggest_prestige(1.0, 100.0, 1e6, 0)
    assert not should_suggest_prestige(50.0, 100.0, 1e6, 0)
    assert not should_suggest_prestige(1.0, 100.0, 1e6, 55)


def test_colony_prestige_resets_and_keeps_permanent_progress(data_loader, state, bus):
    announced = []
    bus.subscribe(PRESTIGE_COMPLETED, announced.append)
    prestige = PrestigeSystem(data_loader, TestingConfig, bus)
    assert prestige.prestige(state) == (None, None)

    state["total_value_earned"] = 1e6
    state["cash"] = 5e5
    state["unlocked_research"] = ["basics"]
    state["division_stars"]["factory"] = 2
    state["divisions"]["factory"]["tiers"][0]["count"] = 40

    new_state, event = prestige.prestige(state, now_ms=99)

    assert new_state["cash"] == TestingConfig.STARTING_CASH
    assert new_state["colony_tech"] == 60
    assert new_state["prestige_count"] == 1
    assert new_state["stats"]["total_prestiges"] == 1
    assert new_state["unlocked_research"] == ["basics"]
    assert new_state["division_stars"]["factory"] == 2
    assert new_state["divisions"]["factory"]["unlocked"]
    assert new_state["divisions"]["factory"]["tiers"][0]["count"] == 0
    assert new_state["last_played"] == 99
    assert event["type"] == PRESTIGE_COMPLETED
    assert event["colony_tech_gained"] == 60
    # Publishing is left to whoever installs the new state
    assert announced == []
    # The old state is left alone
    assert state["divisions"]["factory"]["tiers"][0]["count"] == 40

    # Nothing more to gain until lifetime earnings grow
    assert prestige.prestige(new_state) == (None, None)


def test_division_prestige_awards_a_star(data_loader, state):
    prestige = PrestigeSystem(data_loader, TestingConfig)
    state["divisions"]["factory"]["tiers"][0]["count"] = 9
    assert not prestige.prestige_division(state, "factory")

    state["divisions"]["factory"]["tiers"][0]["count"] = 10
    assert prestige.prestige_division(state, "factory")
    assert state["division_stars"]["factory"] == 1
    assert state["divisions"]["factory"]["tiers"][0]["count"] == 0
    assert prestige.next_star_requirement(state, "factory") == 20

    state["division_stars"]["factory"] = 2
    assert prestige.next_star_requirement(state, "factory") is None


def test_buffs_refresh_and_expire(data_loader, state):
    assert add_buff(state, data_loader, "contract_bonus", duration_ms=1000)
    assert add_buff(state, data_loader, "contract_bonus", duration_ms=500)
    assert state["active_buffs"][0]["remaining_ms"] == 1000
    assert not add_buff(state, data_loader, "no_such_buff")

    assert tick_buffs(state, 999) == []
    assert tick_buffs(state, 1) == [{"type": "buff_expired", "buff": "contract_bonus"}]
    assert state["active_buffs"] == []

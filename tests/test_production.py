from __future__ import annotations

from copy import deepcopy
import json

import pytest

from tycoon.config import TestingConfig
from tycoon.events import PRODUCTION_COMPLETED, STATE_CHANGED, TIER_PURCHASED
from tycoon.state import create_initial_state


def _signature(state) -> str:
    return json.dumps(state, sort_keys=True)


def test_first_purchase_costs_base_and_next_costs_more(engine, state):
    assert engine.get_purchase_cost(state, "factory", 0) == pytest.approx(15)
    assert engine.purchase_tier(state, "factory", 0)

    tier = state["divisions"]["factory"]["tiers"][0]
    assert tier["count"] == 1
    assert tier["level"] == 0
    assert state["cash"] == pytest.approx(10)
    assert engine.get_purchase_cost(state, "factory", 0) == pytest.approx(17.25)
    assert not engine.purchase_tier(state, "factory", 0)


def test_bulk_max_purchase_spends_within_budget(engine, state):
    state["cash"] = 1000.0
    bought = engine.purchase_tier_bulk(state, "factory", 0, "max")
    assert bought > 1
    assert state["cash"] >= 0
    assert state["cash"] < engine.get_purchase_cost(state, "factory", 0)


def test_purchase_rejects_locked_tier(engine, state):
    state["cash"] = 1e6
    assert engine.purchase_tier_bulk(state, "factory", 1, 1) == 0
    assert engine.purchase_tier_bulk(state, "factory", 0, 0) == 0


def test_tap_pays_exactly_one_cycle(engine, state, bus):
    seen = []
    bus.subscribe(PRODUCTION_COMPLETED, seen.append)
    engine.purchase_tier(state, "factory", 0)

    assert engine.tap_produce(state, "factory", 0)
    assert state["cash"] == pytest.approx(12)
    assert state["stats"]["total_taps"] == 1
    assert seen[-1]["manual"] is True
    assert seen[-1]["amount"] == pytest.approx(2)


def test_manual_cycle_completes_once_then_idles(engine, state):
    engine.purchase_tier(state, "factory", 0)
    assert engine.start_production(state, "factory", 0)

    engine.tick(state, 600)
    assert state["cash"] == pytest.approx(10)
    engine.tick(state, 600)
    tier = state["divisions"]["factory"]["tiers"][0]
    assert state["cash"] == pytest.approx(12)
    assert tier["producing"] is False
    assert tier["progress"] == 0.0

    # Idle manual tiers earn nothing more
    engine.tick(state, 5000)
    assert state["cash"] == pytest.approx(12)


def test_automated_tier_keeps_cycling_and_carries_remainder(engine, state):
    engine.purchase_tier(state, "factory", 0)
    state["cash"] = 1000.0
    assert engine.hire_chief(state, "factory")
    tier = state["divisions"]["factory"]["tiers"][0]
    assert tier["producing"] is True
    cash_after_hire = state["cash"]

    events = engine.tick(state, 1200)
    assert state["cash"] == pytest.approx(cash_after_hire + 2)
    assert events[-1]["type"] == STATE_CHANGED

    events = engine.tick(state, 3000)
    completed = [e for e in events if e["type"] == PRODUCTION_COMPLETED]
    assert completed[0]["cycles"] == 2
    assert tier["progress"] == pytest.approx(0.5)
    assert tier["producing"] is True


def test_earned_cash_matches_production_events(engine, state, bus):
    amounts = []
    bus.subscribe(PRODUCTION_COMPLETED, lambda e: amounts.append(e["amount"]))
    state["cash"] = 2000.0
    engine.purchase_tier_bulk(state, "factory", 0, 5)
    engine.hire_chief(state, "factory")

    for _ in range(50):
        engine.tick(state, 100)

    assert amounts
    assert state["total_value_earned"] == pytest.approx(sum(amounts))
    assert state["stats"]["total_cash_earned"] == pytest.approx(sum(amounts))


def test_tick_is_deterministic(engine, state):
    state["cash"] = 5000.0
    engine.purchase_tier_bulk(state, "factory", 0, 10)
    engine.purchase_tier_bulk(state, "energy", 0, 3)
    engine.hire_chief(state, "factory")
    twin = deepcopy(state)

    for elapsed in (100, 250, 1000, 7, 3300):
        engine.tick(state, elapsed)
        engine.tick(twin, elapsed)

    assert _signature(state) == _signature(twin)


def test_tick_ignores_non_positive_elapsed(engine, state):
    before = _signature(state)
    assert engine.tick(state, 0) == []
    assert engine.tick(state, -50) == []
    assert engine.tick(state, float("nan")) == []
    assert _signature(state) == before


def test_unlock_tier_requires_previous_tier(engine, state):
    state["cash"] = 10000.0
    assert engine.get_tier_unlock_cost("factory", 1) == 500
    assert engine.unlock_tier(state, "factory", 1)
    assert state["cash"] == pytest.approx(9500)
    assert not engine.unlock_tier(state, "factory", 3)


def test_unlock_division_opens_first_tier(engine, data_loader):
    state = create_initial_state(data_loader, TestingConfig)
    assert not state["divisions"]["factory"]["unlocked"]
    assert not engine.unlock_division(state, "factory")

    state["cash"] = 150.0
    assert engine.unlock_division(state, "factory")
    assert state["divisions"]["factory"]["tiers"][0]["unlocked"]
    assert state["cash"] == pytest.approx(50)


def test_level_up_raises_revenue(engine, state):
    engine.purchase_tier(state, "factory", 0)
    state["cash"] = 1000.0
    assert engine.get_level_cost(state, "factory", 0) == 150
    assert engine.level_up_tier(state, "factory", 0)
    assert state["divisions"]["factory"]["tiers"][0]["level"] == 1

    cash = state["cash"]
    engine.tap_produce(state, "factory", 0)
    assert state["cash"] - cash == pytest.approx(2.2)


def test_hire_chief_needs_cash(engine, state):
    assert engine.get_chief_cost(state, "factory") == 500
    assert not engine.hire_chief(state, "factory")
    assert state["divisions"]["factory"]["chief_level"] == 0


def test_income_rate_only_counts_automated_divisions(engine, state):
    engine.purchase_tier(state, "factory", 0)
    assert engine.division_income_per_sec(state, "factory") == 0.0
    assert engine.division_income_per_sec(state, "factory", automated_only=False) == pytest.approx(2 / 1.2)

    state["cash"] = 1000.0
    engine.hire_chief(state, "factory")
    assert engine.total_income_per_sec(state) == pytest.approx(2 / 1.2)


def test_purchase_publishes_event(engine, state, bus):
    seen = []
    bus.subscribe(TIER_PURCHASED, seen.append)
    engine.purchase_tier(state, "factory", 0)
    assert seen == [{"type": TIER_PURCHASED, "division": "factory", "tier": 0,
                     "quantity": 1, "cost": pytest.approx(15), "count": 1}]


@pytest.mark.parametrize("count", ["3", None, -4, float("nan")])
def test_unit_with_unusable_count_is_skipped(engine, state, count):
    state["cash"] = 1000.0
    engine.purchase_tier_bulk(state, "energy", 0, 2)
    engine.purchase_tier_bulk(state, "factory", 0, 2)
    engine.hire_chief(state, "factory")
    state["divisions"]["factory"]["tiers"][0]["count"] = count
    state["divisions"]["factory"]["tiers"][1].update({"unlocked": True, "count": 1})
    state["divisions"]["energy"]["tiers"][0]["producing"] = True

    cash = state["cash"]
    events = engine.tick(state, 1000)

    # The energy unit still produced and the tick finished
    assert state["cash"] == pytest.approx(cash + 2)
    assert events[-1]["type"] == STATE_CHANGED
    assert state["power_generated"] == pytest.approx(10)
    assert engine.division_income_per_sec(state, "factory", automated_only=False) > 0
    assert not engine.tap_produce(state, "factory", 0)


def test_unit_without_tier_config_is_skipped(engine, state, caplog):
    division = state["divisions"]["factory"]
    division["tiers"][4].update({"unlocked": True, "count": 3, "producing": True})

    with caplog.at_level("WARNING", logger="tycoon.production"):
        events = engine.tick(state, 500)

    assert events[-1]["type"] == STATE_CHANGED
    assert division["tiers"][4]["progress"] == 0.0
    assert "Skipping unit factory[4]" in caplog.text


def test_purchase_refuses_a_tier_with_a_corrupt_count(engine, state):
    state["cash"] = 1000.0
    state["divisions"]["factory"]["tiers"][0]["count"] = "lots"
    assert engine.get_purchase_cost(state, "factory", 0) is None
    assert engine.purchase_tier_bulk(state, "factory", 0, "max") == 0
    assert state["cash"] == 1000.0

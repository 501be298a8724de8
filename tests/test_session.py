from __future__ import annotations

import json

import pytest

from tycoon import create_session
from tycoon.config import TestingConfig
from tycoon.events import (
    BUFF_ADDED, EventBus, OFFLINE_APPLIED, PRESTIGE_COMPLETED, RANDOM_EVENT_RESOLVED, SAVE_COMPLETED,
)
from tycoon.save_manager import MemorySaveStore

HOUR_MS = 60 * 60 * 1000


class FakeClock:
    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemorySaveStore()


def _session(store, clock, bus=None):
    return create_session("testing", store=store, clock=clock, event_bus=bus)


def test_new_game_starts_running(store, clock):
    session = _session(store, clock)
    result = session.init()

    assert result["is_new_game"] is True
    assert result["load_status"] == "missing"
    assert result["offline_report"] is None
    assert session.loop.is_running()
    assert session.state["stats"]["sessions_played"] == 1
    assert session.state["cash"] == TestingConfig.STARTING_CASH
    assert session.init()["load_status"] == "running"
    session.close()


def test_actions_and_fixed_steps(store, clock):
    session = _session(store, clock)
    session.init()

    assert session.buy_tier("energy", 0) == 1
    cash = session.state["cash"]
    assert session.tap("energy", 0)
    assert session.state["cash"] == pytest.approx(cash + 1)

    assert session.advance(250) == 2
    assert session.state["clock_ms"] == pytest.approx(200)
    assert not session.resolve_bottleneck("energy", "power_deficit", "bribe")
    assert not session.prestige()

    session.pause()
    assert session.advance(1000) == 0
    session.resume()
    assert session.advance(100) == 1
    session.close()


def test_autosave_runs_on_the_loop(store, clock):
    bus = EventBus()
    saves = []
    bus.subscribe(SAVE_COMPLETED, saves.append)
    session = _session(store, clock, bus)
    session.init()

    for _ in range(TestingConfig.AUTO_SAVE_INTERVAL_MS // 1000):
        session.advance(1000)
    session.save_manager.flush()

    assert store.get(TestingConfig.SAVE_SLOT_KEY) is not None
    assert saves
    session.close()


def test_shutdown_and_return_applies_offline_progress(store, clock):
    first = _session(store, clock)
    first.init()
    first.state["cash"] = 1e6
    first.buy_tier("energy", 0, 10)
    assert first.hire_chief("energy")
    first.close()
    assert set(store.keys()) == {TestingConfig.SAVE_SLOT_KEY, TestingConfig.EMERGENCY_SAVE_KEY}

    bus = EventBus()
    applied = []
    bus.subscribe(OFFLINE_APPLIED, applied.append)
    clock.now += 2 * HOUR_MS
    second = _session(store, clock, bus)
    result = second.init()

    assert result["is_new_game"] is False
    assert result["load_status"] == "loaded"
    report = result["offline_report"]
    assert report["capped_duration_ms"] == 2 * HOUR_MS
    assert report["cash_earned"] > 0
    assert applied
    assert second.state["stats"]["sessions_played"] == 2
    assert second.state["last_played"] == clock.now
    second.close()


def test_corrupt_save_starts_a_new_game(store, clock):
    store.put(TestingConfig.SAVE_SLOT_KEY, '{"cash": "plenty", "divisions": {}}')
    session = _session(store, clock)
    result = session.init()
    assert result["is_new_game"] is True
    assert result["load_status"] == "corrupt"
    session.close()


def test_export_import_and_hard_reset(store, clock):
    session = _session(store, clock)
    session.init()
    session.state["cash"] = 5000.0
    exported = session.export_save()

    session.hard_reset()
    assert session.state["cash"] == TestingConfig.STARTING_CASH
    assert not session.import_save("garbage")

    assert session.import_save(exported)
    assert session.state["cash"] == 5000.0
    session.close()


def test_teardown_writes_emergency_snapshot(store, clock):
    session = _session(store, clock)
    session.init()
    session.on_teardown()
    assert store.get(TestingConfig.EMERGENCY_SAVE_KEY) is not None
    session.close()


def test_saved_game_missing_stats_still_starts(store, clock):
    first = _session(store, clock)
    first.init()
    first.buy_tier("energy", 0)
    first.close()
    for key in store.keys():
        doc = json.loads(store.get(key))
        del doc["stats"]
        del doc["timers"]
        store.put(key, json.dumps(doc))

    clock.now += 1000
    second = _session(store, clock)
    result = second.init()

    assert result["is_new_game"] is False
    assert second.state["stats"]["sessions_played"] == 1
    assert second.state["divisions"]["energy"]["tiers"][0]["count"] == 1
    assert second.advance(500) == 5
    second.close()


def test_prestige_listeners_see_the_new_colony(store, clock):
    bus = EventBus()
    session = _session(store, clock, bus)
    seen = []
    bus.subscribe(PRESTIGE_COMPLETED,
                  lambda event: seen.append((session.state["prestige_count"], session.state["cash"])))
    session.init()
    session.state["total_value_earned"] = 1e9
    session.state["cash"] = 12345.0

    assert session.prestige()
    assert seen == [(1, float(TestingConfig.STARTING_CASH))]
    session.close()


def test_external_buffs_and_scripted_events(store, clock):
    bus = EventBus()
    added, resolved = [], []
    bus.subscribe(BUFF_ADDED, added.append)
    bus.subscribe(RANDOM_EVENT_RESOLVED, resolved.append)
    session = _session(store, clock, bus)
    session.init()

    assert session.grant_buff("tax_break", source="seasonal")
    assert not session.grant_buff("no_such_buff")
    assert [(e["buff"], e["source"]) for e in added] == [("tax_break", "seasonal")]

    assert session.trigger_event("crunch_week")
    assert session.state["random_events"]["pending"]["id"] == "crunch_week"
    assert not session.trigger_event("tax_break")
    assert session.choose_event_option(0)

    assert resolved[0]["choice"] == "approve_overtime"
    assert {b["id"] for b in session.state["active_buffs"]} == {"tax_break", "overtime"}
    assert session.state["stats"]["total_random_events"] == 1
    session.close()

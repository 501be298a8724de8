from __future__ import annotations

from copy import deepcopy
import json

import pytest

from tycoon.config import TestingConfig
from tycoon.events import BUFF_ADDED, RANDOM_EVENT_FIRED, RANDOM_EVENT_RESOLVED
from tycoon.random_events import RandomEventSystem
from tycoon.state import create_initial_state

RANDOM_EVENTS = {
    "rules": {"first_event_ms": 1000, "interval_min_ms": 2000, "interval_max_ms": 3000, "recent_window": 1},
    "events": [
        {"id": "windfall", "choices": [
            {"id": "take", "effects": [{"type": "cash", "fraction": 0.1, "minimum": 100}]},
        ]},
        {"id": "crunch", "timeout_ms": 500, "choices": [
            {"id": "overtime", "effects": [{"type": "buff", "buff": "overtime"}]},
            {"id": "rest", "effects": []},
        ]},
        {"id": "factory_news", "requires_division": "factory", "choices": [
            {"id": "hype", "effects": [{"type": "buff", "buff": "hype"},
                                       {"type": "research_points", "fraction": 0.5, "minimum": 25}]},
        ]},
        {"id": "sabotage", "timeout_ms": 400, "choices": [
            {"id": "pay", "effects": [{"type": "cash_cost", "fraction": 0.05, "minimum": 1000}]},
            {"id": "take_the_hit", "effects": []},
        ]},
    ],
}
BUFFS = {
    "buffs": [
        {"id": "overtime", "kind": "speed", "value": 2, "target": "all", "duration_ms": 60000},
        {"id": "hype", "kind": "revenue", "value": 1.5, "target": "factory", "duration_ms": 1000},
    ]
}


@pytest.fixture
def loader(make_loader):
    return make_loader(random_events=RANDOM_EVENTS, buffs=BUFFS)


@pytest.fixture
def events_state(loader):
    return create_initial_state(loader, TestingConfig, unlocked_divisions=["energy", "factory"], seed=7)


@pytest.fixture
def system(loader, bus):
    return RandomEventSystem(loader, bus)


def _record(bus, *event_types):
    seen = []
    for event_type in event_types:
        bus.subscribe(event_type, seen.append)
    return seen


def test_first_event_fires_after_the_delay(system, events_state, bus):
    fired = _record(bus, RANDOM_EVENT_FIRED)

    system.tick(events_state, 999)
    assert fired == []
    system.tick(events_state, 1)

    assert len(fired) == 1
    schedule = events_state["random_events"]
    assert schedule["fired"] == 1
    assert schedule["recent"] == [fired[0]["event"]]
    assert 2000 <= schedule["next_event_ms"] <= 3000
    assert events_state["stats"]["total_random_events"] == 1


def test_schedule_is_reproducible_for_a_seed(system, events_state):
    twin = deepcopy(events_state)
    for _ in range(30):
        system.tick(events_state, 700)
        system.tick(twin, 700)
    assert events_state["random_events"]["fired"] > 1
    assert json.dumps(events_state, sort_keys=True) == json.dumps(twin, sort_keys=True)


def test_single_choice_event_applies_at_once(system, events_state, bus):
    seen = _record(bus, RANDOM_EVENT_FIRED, RANDOM_EVENT_RESOLVED)
    events_state["cash"] = 5000.0

    assert system.trigger(events_state, "windfall")

    assert events_state["cash"] == pytest.approx(5500)
    assert [e["type"] for e in seen] == [RANDOM_EVENT_FIRED, RANDOM_EVENT_RESOLVED]
    assert seen[1]["choice"] == "take"
    assert events_state["random_events"]["pending"] is None
    # Windfalls are not production earnings
    assert events_state["total_value_earned"] == 0.0


def test_buff_and_research_effects(system, events_state, bus):
    added = _record(bus, BUFF_ADDED)
    events_state["research_points"] = 10.0

    assert system.trigger(events_state, "factory_news")

    assert events_state["research_points"] == pytest.approx(35)
    assert [b["id"] for b in events_state["active_buffs"]] == ["hype"]
    assert added[0]["source"] == "event:factory_news"


def test_unanswered_choice_times_out_to_the_first_option(system, events_state, bus):
    resolved = _record(bus, RANDOM_EVENT_RESOLVED)
    assert system.trigger(events_state, "crunch")
    assert events_state["random_events"]["pending"]["id"] == "crunch"

    system.tick(events_state, 300)
    assert resolved == []
    # The schedule does not advance while a choice is pending
    assert events_state["timers"]["random_event_ms"] == 0.0

    system.tick(events_state, 300)
    assert resolved[0]["choice"] == "overtime"
    assert resolved[0]["timed_out"] is True
    assert [b["id"] for b in events_state["active_buffs"]] == ["overtime"]


def test_player_answers_a_pending_event(system, events_state):
    events_state["cash"] = 100.0
    assert system.trigger(events_state, "sabotage")
    assert not system.trigger(events_state, "crunch")
    assert not system.choose(events_state, 5)

    assert system.choose(events_state, 0)
    assert events_state["cash"] == 0.0
    assert events_state["random_events"]["pending"] is None
    assert not system.choose(events_state, 0)


def test_eligibility_follows_divisions_and_recent_events(loader, system):
    state = create_initial_state(loader, TestingConfig)
    assert "factory_news" not in [d["id"] for d in system.eligible_events(state)]

    system.trigger(state, "windfall")
    assert [d["id"] for d in system.eligible_events(state)] == ["crunch", "sabotage"]
    assert not system.trigger(state, "no_such_event")


def test_every_packaged_buff_can_be_granted(packaged_loader):
    reachable = {packaged_loader.get_rules("contracts").get("income", {}).get("buff")}
    for definition in packaged_loader.load_random_events():
        for choice in definition["choices"]:
            reachable.update(e["buff"] for e in choice["effects"] if e["type"] == "buff")

    assert {b["id"] for b in packaged_loader.load_buffs()} <= reachable

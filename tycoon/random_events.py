"""Random events: occasional news that grants buffs, cash or research.

An event fires every few minutes of simulation time. Events with a single
choice apply it at once; events with several choices wait for the player and
fall back to the first choice when their timer runs out. Picks and intervals
come from a random.Random seeded by the save's event seed and fire counter,
so a given save always sees the same sequence.
"""
import logging
import random

from tycoon.buffs import add_buff
from tycoon.events import BUFF_ADDED, RANDOM_EVENT_FIRED, RANDOM_EVENT_RESOLVED, make_event

logger = logging.getLogger(__name__)


class RandomEventSystem:
    """Schedules, fires and resolves random events."""

    def __init__(self, data_loader, event_bus=None):
        self.data_loader = data_loader
        self.event_bus = event_bus

    @property
    def rules(self):
        return self.data_loader.get_random_event_rules()

    def _publish(self, event):
        if self.event_bus is not None:
            self.event_bus.publish(event)

    def _rng(self, state, salt):
        schedule = state['random_events']
        return random.Random(f"{schedule.get('seed', 0)}:{salt}:{schedule.get('fired', 0)}")

    # Selection

    def is_eligible(self, state, definition):
        """Not fired recently and its required division (if any) is unlocked."""
        if definition['id'] in state['random_events'].get('recent', []):
            return False
        required = definition.get('requires_division')
        if required:
            division = state['divisions'].get(required)
            return bool(division and division.get('unlocked'))
        return True

    def eligible_events(self, state):
        return [d for d in self.data_loader.load_random_events() if self.is_eligible(state, d)]

    def pick(self, state):
        """Choose the next event, or None when nothing is eligible."""
        candidates = self.eligible_events(state)
        if not candidates:
            return None
        return self._rng(state, 'pick').choice(candidates)

    # Tick

    def tick(self, state, elapsed_ms):
        """Count down a pending choice, or the time to the next event."""
        schedule = state['random_events']
        pending = schedule.get('pending')
        if pending:
            # The schedule is paused while the player decides
            if pending.get('timeout_ms', 0) > 0:
                pending['remaining_ms'] -= elapsed_ms
                if pending['remaining_ms'] <= 0:
                    self.choose(state, 0, timed_out=True)
            return

        if schedule.get('next_event_ms') is None:
            schedule['next_event_ms'] = self.rules.get('first_event_ms', 120000)
        timers = state['timers']
        timers['random_event_ms'] = timers.get('random_event_ms', 0.0) + elapsed_ms
        if timers['random_event_ms'] < schedule['next_event_ms']:
            return

        timers['random_event_ms'] = 0.0
        definition = self.pick(state)
        schedule['next_event_ms'] = self._rng(state, 'interval').uniform(
            self.rules.get('interval_min_ms', 120000), self.rules.get('interval_max_ms', 300000))
        if definition is not None:
            self.fire(state, definition)

    # Firing and resolving

    def trigger(self, state, event_id):
        """Fire a specific event now, outside the schedule.

        Returns:
            False for unknown events or while another event awaits a choice.
        """
        definition = self.data_loader.get_random_event(event_id)
        if definition is None:
            logger.warning(f"Unknown random event: {event_id}")
            return False
        if state['random_events'].get('pending'):
            return False
        self.fire(state, definition)
        return True

    def fire(self, state, definition):
        schedule = state['random_events']
        schedule['fired'] = schedule.get('fired', 0) + 1
        recent = schedule.setdefault('recent', [])
        recent.append(definition['id'])
        del recent[:-self.rules.get('recent_window', 5)]
        state['stats']['total_random_events'] += 1

        choices = definition.get('choices', [])
        logger.info(f"Random event: {definition.get('name', definition['id'])}")
        if len(choices) > 1:
            timeout = definition.get('timeout_ms', 0)
            schedule['pending'] = {'id': definition['id'], 'timeout_ms': timeout, 'remaining_ms': timeout}
            self._publish(make_event(RANDOM_EVENT_FIRED, event=definition['id'],
                                     choices=[c['id'] for c in choices], timeout_ms=timeout))
            return

        self._publish(make_event(RANDOM_EVENT_FIRED, event=definition['id'], choices=[], timeout_ms=0))
        if choices:
            self._apply(state, definition, choices[0])
        self._publish(make_event(RANDOM_EVENT_RESOLVED, event=definition['id'],
                                 choice=choices[0]['id'] if choices else None, timed_out=False))

    def choose(self, state, choice_index, timed_out=False):
        """Resolve the pending event with one of its choices.

        Returns:
            True when a pending event was resolved.
        """
        schedule = state['random_events']
        pending = schedule.get('pending')
        if not pending:
            return False
        definition = self.data_loader.get_random_event(pending['id'])
        if definition is None:
            logger.warning(f"Dropping pending event with no definition: {pending['id']}")
            schedule['pending'] = None
            return False
        choices = definition.get('choices', [])
        if not isinstance(choice_index, int) or not 0 <= choice_index < len(choices):
            return False

        schedule['pending'] = None
        choice = choices[choice_index]
        self._apply(state, definition, choice)
        self._publish(make_event(RANDOM_EVENT_RESOLVED, event=definition['id'],
                                 choice=choice['id'], timed_out=timed_out))
        return True

    def _apply(self, state, definition, choice):
        source = f"event:{definition['id']}"
        for effect in choice.get('effects', []):
            kind = effect.get('type')
            if kind == 'buff':
                if add_buff(state, self.data_loader, effect['buff'], source=source):
                    self._publish(make_event(BUFF_ADDED, buff=effect['buff'], source=source))
            elif kind == 'cash':
                state['cash'] += max(state['cash'] * effect.get('fraction', 0.0), effect.get('minimum', 0))
            elif kind == 'cash_cost':
                cost = max(state['cash'] * effect.get('fraction', 0.0), effect.get('minimum', 0))
                state['cash'] -= min(state['cash'], cost)
            elif kind == 'research_points':
                state['research_points'] += max(
                    state['research_points'] * effect.get('fraction', 0.0), effect.get('minimum', 0))
            else:
                logger.warning(f"Unknown random event effect type: {kind}")

"""Bottleneck detection and resolution.

Each (definition, division) pair is a small state machine stored in the
division's 'bottlenecks' list:

    dormant (no entry, or inactive) -> active -> resolved

Resolved is terminal. The global power-deficit definition never resolves;
it toggles between dormant and active as the grid falls behind and catches up.
"""
import logging

from tycoon.config import Config
from tycoon.events import BOTTLENECK_ACTIVATED, BOTTLENECK_RESOLVED, make_event
from tycoon.state import unit_count

logger = logging.getLogger(__name__)


def _find_instance(division_state, bottleneck_id):
    for instance in division_state.get('bottlenecks', []):
        if instance.get('id') == bottleneck_id:
            return instance
    return None


def _new_instance(definition):
    return {
        'id': definition['id'],
        'active': True,
        'severity': definition.get('severity', 0.0),
        'resolved': False,
        'wait_started_at': None,
    }


class BottleneckEngine:
    """Evaluates bottleneck triggers and applies their speed penalty."""

    def __init__(self, data_loader, config=None, event_bus=None):
        self.data_loader = data_loader
        self.event_bus = event_bus
        self.config = config or Config
        self.floor = self.config.BOTTLENECK_FLOOR
        self.check_interval_ms = self.config.BOTTLENECK_CHECK_INTERVAL_MS

    # Metrics

    def metric_value(self, state, definition, division_id):
        """Current value of a definition's trigger metric for one division."""
        trigger = definition.get('trigger', {})
        metric = trigger.get('metric')
        division = state['divisions'].get(division_id, {})
        tiers = division.get('tiers', [])

        if metric == 'tier_count':
            tier_index = trigger.get('tier', 0)
            if 0 <= tier_index < len(tiers):
                return unit_count(tiers[tier_index])
            return 0
        if metric == 'division_units':
            return sum(unit_count(t) for t in tiers)
        if metric == 'chief_level':
            return division.get('chief_level', 0)
        if metric == 'power_deficit':
            return state.get('power_consumed', 0.0) - state.get('power_generated', 0.0)
        logger.debug(f"Unknown bottleneck metric {metric} in {definition.get('id')}")
        return 0

    def is_triggered(self, state, definition, division_id):
        trigger = definition.get('trigger', {})
        if trigger.get('metric') == 'power_deficit':
            generated = state.get('power_generated', 0.0)
            consumed = state.get('power_consumed', 0.0)
            return consumed > generated > 0
        return self.metric_value(state, definition, division_id) >= trigger.get('threshold', 0)

    # Evaluation

    def maybe_evaluate(self, state, elapsed_ms):
        """Accumulate elapsed time and evaluate once per check interval.

        Returns:
            List of transition events (empty when the interval has not elapsed).
        """
        timers = state['timers']
        timers['bottleneck_check_ms'] = timers.get('bottleneck_check_ms', 0.0) + elapsed_ms
        if timers['bottleneck_check_ms'] < self.check_interval_ms:
            return []
        timers['bottleneck_check_ms'] = 0.0
        return self.evaluate(state)

    def evaluate(self, state):
        """Run every bottleneck state machine against the current state.

        Returns:
            List of bottleneck_activated / bottleneck_resolved events.
        """
        events = []
        now = state.get('clock_ms', 0.0)
        power_division = self.data_loader.get_power_division_id()

        for definition in self.data_loader.load_bottlenecks():
            if definition.get('global'):
                for division_id, division in state['divisions'].items():
                    if division_id == power_division or not division.get('unlocked'):
                        continue
                    events.extend(self._evaluate_global(state, definition, division_id, division))
                continue

            division_id = definition.get('division')
            division = state['divisions'].get(division_id)
            if not division or not division.get('unlocked'):
                continue
            events.extend(self._evaluate_local(state, definition, division_id, division, now))
        return events

    def _evaluate_global(self, state, definition, division_id, division):
        instance = _find_instance(division, definition['id'])
        triggered = self.is_triggered(state, definition, division_id)
        if triggered and (instance is None or not instance['active']):
            if instance is None:
                instance = _new_instance(definition)
                division.setdefault('bottlenecks', []).append(instance)
            else:
                instance['active'] = True
            return [make_event(BOTTLENECK_ACTIVATED, division=division_id,
                               bottleneck=definition['id'], severity=instance['severity'])]
        if not triggered and instance is not None and instance['active']:
            # Back to dormant so it can re-trigger
            instance['active'] = False
            return [make_event(BOTTLENECK_RESOLVED, division=division_id,
                               bottleneck=definition['id'], path='recovered')]
        return []

    def _evaluate_local(self, state, definition, division_id, division, now):
        instance = _find_instance(division, definition['id'])
        if instance is None:
            if self.is_triggered(state, definition, division_id):
                instance = _new_instance(definition)
                division.setdefault('bottlenecks', []).append(instance)
                return [make_event(BOTTLENECK_ACTIVATED, division=division_id,
                                   bottleneck=definition['id'], severity=instance['severity'])]
            return []

        if instance['active'] and instance.get('wait_started_at') is not None:
            if now - instance['wait_started_at'] >= definition.get('wait_ms', 0):
                self._resolve(instance)
                return [make_event(BOTTLENECK_RESOLVED, division=division_id,
                                   bottleneck=definition['id'], path='wait')]
        return []

    def _publish(self, event):
        if self.event_bus is not None:
            self.event_bus.publish(event)

    # Resolution paths

    def _resolve(self, instance):
        instance['active'] = False
        instance['resolved'] = True
        instance['wait_started_at'] = None

    def _active_local(self, state, division_id, bottleneck_id):
        """Return (definition, instance) for an active, resolvable bottleneck."""
        definition = self.data_loader.get_bottleneck(bottleneck_id)
        if not definition or definition.get('global'):
            return None, None
        division = state['divisions'].get(division_id)
        if not division:
            return None, None
        instance = _find_instance(division, bottleneck_id)
        if not instance or not instance.get('active'):
            return None, None
        return definition, instance

    def resolve_with_cash(self, state, division_id, bottleneck_id):
        """Pay the definition's cash cost to resolve immediately."""
        definition, instance = self._active_local(state, division_id, bottleneck_id)
        if not instance:
            return False
        price = definition.get('cash_cost', 0)
        if state['cash'] < price:
            return False
        state['cash'] -= price
        self._resolve(instance)
        self._publish(make_event(BOTTLENECK_RESOLVED, division=division_id,
                                 bottleneck=bottleneck_id, path='cash'))
        return True

    def resolve_with_research(self, state, division_id, bottleneck_id):
        """Pay the definition's research point cost, when it offers one."""
        definition, instance = self._active_local(state, division_id, bottleneck_id)
        if not instance:
            return False
        price = definition.get('research_cost')
        if price is None or state['research_points'] < price:
            return False
        state['research_points'] -= price
        self._resolve(instance)
        self._publish(make_event(BOTTLENECK_RESOLVED, division=division_id,
                                 bottleneck=bottleneck_id, path='research'))
        return True

    def start_wait(self, state, division_id, bottleneck_id):
        """Start the wait timer. Resolution happens on a later evaluation."""
        _, instance = self._active_local(state, division_id, bottleneck_id)
        if not instance or instance.get('wait_started_at') is not None:
            return False
        instance['wait_started_at'] = state.get('clock_ms', 0.0)
        return True

    # Effect

    def division_multiplier(self, state, division_id):
        """Product of (1 - severity) over the division's active bottlenecks."""
        division = state['divisions'].get(division_id, {})
        multiplier = 1.0
        for instance in division.get('bottlenecks', []):
            if instance.get('active'):
                multiplier *= 1.0 - instance.get('severity', 0.0)
        return multiplier

    def speed_penalty(self, state, division_id, power_efficiency=1.0):
        """Combined bottleneck and power penalty, never below the floor."""
        return max(self.floor, power_efficiency * self.division_multiplier(state, division_id))

    def active_bottlenecks(self, state, division_id):
        division = state['divisions'].get(division_id, {})
        return [b for b in division.get('bottlenecks', []) if b.get('active')]

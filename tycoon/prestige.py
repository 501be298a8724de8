"""Colony prestige (full reset for colony tech) and division prestige (stars)."""
import copy
import logging
import math

from tycoon.config import Config
from tycoon.events import DIVISION_PRESTIGED, PRESTIGE_COMPLETED, make_event
from tycoon.state import create_division_state, create_initial_state, unit_count

logger = logging.getLogger(__name__)

# Fields that survive a colony prestige
PRESERVED_FIELDS = (
    'unlocked_research',
    'division_stars',
    'achievements',
    'achievement_timestamps',
    'discovered_synergies',
    'settings',
    'stats',
    'total_value_earned',
)


def calculate_colony_tech(total_value_earned):
    """Colony tech for lifetime earnings: about ten points per tenfold earnings."""
    if total_value_earned <= 0:
        return 0
    return math.floor(math.log10(total_value_earned) * 10)


def should_suggest_prestige(current_income, peak_income, total_value_earned, colony_tech):
    """True when a reset would pay at least 10 points and income has stalled."""
    if calculate_colony_tech(total_value_earned) - colony_tech < 10:
        return False
    return peak_income > 0 and current_income < peak_income * 0.05


class PrestigeSystem:
    """Handles both prestige layers."""

    def __init__(self, data_loader, config=None, event_bus=None):
        self.data_loader = data_loader
        self.config = config or Config
        self.event_bus = event_bus

    def _publish(self, event):
        if self.event_bus is not None:
            self.event_bus.publish(event)

    # Colony prestige

    def colony_tech_gain(self, state):
        """Points a colony prestige would award right now."""
        potential = calculate_colony_tech(state.get('total_value_earned', 0.0))
        return max(0, potential - state.get('colony_tech', 0))

    def can_prestige(self, state):
        minimum = self.data_loader.get_rules('prestige').get('min_total_value', 0)
        if state.get('total_value_earned', 0.0) < minimum:
            return False
        return self.colony_tech_gain(state) > 0

    def prestige(self, state, now_ms=0):
        """Reset to a new colony, keeping permanent progress.

        Args:
            state: Current game state (not modified).
            now_ms: Wall-clock timestamp for the new state.

        Returns:
            Tuple (new state, prestige_completed event), or (None, None) when
            prestige is not available. The caller publishes the event once
            the new state is in place.
        """
        if not self.can_prestige(state):
            return None, None

        gain = self.colony_tech_gain(state)
        # Every colony after the first starts with the starter divisions open
        unlocked = set(self.data_loader.get_starter_division_ids())
        unlocked.add(self.data_loader.get_power_division_id())
        new_state = create_initial_state(
            self.data_loader, self.config, now_ms=now_ms,
            unlocked_divisions=unlocked,
            seed=state.get('contracts', {}).get('seed', 0) + 1,
        )

        for field in PRESERVED_FIELDS:
            if field in state:
                new_state[field] = copy.deepcopy(state[field])
        for division_id in new_state['divisions']:
            new_state['division_stars'].setdefault(division_id, 0)

        new_state['colony_tech'] = state.get('colony_tech', 0) + gain
        new_state['prestige_count'] = state.get('prestige_count', 0) + 1
        new_state['stats']['total_prestiges'] += 1

        logger.info(f"Colony prestige #{new_state['prestige_count']}: +{gain} colony tech")
        event = make_event(PRESTIGE_COMPLETED, colony_tech_gained=gain,
                           colony_tech=new_state['colony_tech'],
                           prestige_count=new_state['prestige_count'])
        return new_state, event

    # Division prestige

    def division_units(self, state, division_id):
        division = state['divisions'].get(division_id, {})
        return sum(unit_count(t) for t in division.get('tiers', []))

    def next_star_requirement(self, state, division_id):
        """Owned units needed for the next star, or None at the cap."""
        requirements = self.data_loader.get_rules('division_prestige').get('unit_requirements', [])
        stars = state.get('division_stars', {}).get(division_id, 0)
        if stars >= len(requirements):
            return None
        return requirements[stars]

    def can_prestige_division(self, state, division_id):
        division = state['divisions'].get(division_id)
        if not division or not division.get('unlocked'):
            return False
        requirement = self.next_star_requirement(state, division_id)
        return requirement is not None and self.division_units(state, division_id) >= requirement

    def prestige_division(self, state, division_id):
        """Reset one division's units and chief for a permanent star."""
        if not self.can_prestige_division(state, division_id):
            return False
        old = state['divisions'][division_id]
        fresh = create_division_state(unlocked=True, tier_count=len(old['tiers']))
        state['divisions'][division_id] = fresh
        stars = state['division_stars'].get(division_id, 0) + 1
        state['division_stars'][division_id] = stars
        self._publish(make_event(DIVISION_PRESTIGED, division=division_id, stars=stars))
        return True

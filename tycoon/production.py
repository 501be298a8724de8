"""Tick / production engine and the player actions that change production."""
import logging
import math

from tycoon import economy
from tycoon.bottlenecks import BottleneckEngine
from tycoon.config import Config
from tycoon.events import (
    CHIEF_HIRED, DIVISION_UNLOCKED, PRODUCTION_COMPLETED, PRODUCTION_STARTED,
    STATE_CHANGED, TIER_LEVELED, TIER_PURCHASED, TIER_UNLOCKED, make_event,
)
from tycoon.modifiers import ModifierResolver
from tycoon.power import calculate_power_balance, calculate_power_efficiency
from tycoon.research import ResearchSystem
from tycoon.buffs import tick_buffs
from tycoon.state import credit_cash, get_tier, is_number, unit_count
from tycoon.synergies import update_synergies

logger = logging.getLogger(__name__)


class ProductionEngine:
    """Advances production by elapsed time and applies production actions.

    The engine mutates the state dict it is given. It never reads a clock or
    a random source, so the same state and elapsed time always give the same
    result.
    """

    def __init__(self, data_loader, config=None, event_bus=None,
                 bottleneck_engine=None, modifier_resolver=None, research_system=None):
        self.data_loader = data_loader
        self.config = config or Config
        self.event_bus = event_bus
        self.bottleneck_engine = bottleneck_engine or BottleneckEngine(data_loader, self.config)
        self.modifiers = modifier_resolver or ModifierResolver(
            data_loader, self.bottleneck_engine, self.config)
        self.research = research_system or ResearchSystem(data_loader)

    def _publish(self, events):
        if self.event_bus is None:
            return
        for event in events:
            self.event_bus.publish(event)

    # Tick

    def tick(self, state, elapsed_ms, publish=True):
        """Advance the simulation by elapsed_ms.

        Phase 1 recomputes global aggregates (power, bottlenecks, synergies).
        Phase 2 advances every production unit using those fresh aggregates.

        Args:
            state: Game state dict, mutated in place.
            elapsed_ms: Simulated milliseconds to advance.
            publish: Publish collected events on the bus after the tick.

        Returns:
            List of events produced by this tick, in order.
        """
        if elapsed_ms is None or elapsed_ms <= 0 or not math.isfinite(elapsed_ms):
            logger.debug(f"Skipping tick with elapsed_ms={elapsed_ms}")
            return []

        state['clock_ms'] = state.get('clock_ms', 0.0) + elapsed_ms
        state['stats']['play_time_ms'] += elapsed_ms

        # Phase 1: global aggregates
        power_efficiency = self.recompute_power(state)
        events = self.bottleneck_engine.maybe_evaluate(state, elapsed_ms)
        events.extend(update_synergies(state, self.data_loader))

        # Phase 2: per-unit progress
        for division_id, division in state['divisions'].items():
            if not division.get('unlocked'):
                continue
            for tier_index, tier in enumerate(division.get('tiers', [])):
                events.extend(self._advance_unit(
                    state, division_id, division, tier_index, tier, elapsed_ms, power_efficiency))

        events.extend(self.research.tick_research(state, elapsed_ms))
        events.extend(tick_buffs(state, elapsed_ms))
        state['research_points'] += self.config.RESEARCH_POINTS_PER_SEC * elapsed_ms / 1000

        events.append(make_event(STATE_CHANGED, clock_ms=state['clock_ms']))
        if publish:
            self._publish(events)
        return events

    def recompute_power(self, state):
        """Store the current power balance on the state and return efficiency."""
        generated, consumed = calculate_power_balance(state, self.data_loader)
        state['power_generated'] = generated
        state['power_consumed'] = consumed
        return calculate_power_efficiency(generated, consumed)

    def _advance_unit(self, state, division_id, division, tier_index, tier,
                      elapsed_ms, power_efficiency):
        count = tier.get('count', 0)
        if not tier.get('unlocked') or count == 0:
            return []
        tier_config = self.data_loader.get_tier_config(division_id, tier_index)
        chief_level = division.get('chief_level', 0)
        if (tier_config is None or not is_number(count) or count < 0 or not is_number(chief_level)
                or not is_number(tier.get('level', 0)) or not is_number(tier.get('progress', 0.0))):
            logger.warning(f"Skipping unit {division_id}[{tier_index}]: count={count!r}, "
                           f"level={tier.get('level')!r}, progress={tier.get('progress')!r}, "
                           f"config missing={tier_config is None}")
            return []

        if not tier.get('producing'):
            if chief_level > 0:
                # Auto-start; progress begins accruing next step
                tier['producing'] = True
                tier['progress'] = 0.0
                return [make_event(PRODUCTION_STARTED, division=division_id, tier=tier_index)]
            return []

        mods = self.modifiers.resolve(state, division_id, tier_index, power_efficiency)
        base_cycle_ms = economy.cycle_time_ms(
            tier_config, chief_level, self.data_loader.get_automation_speed_table())
        cycle_ms = self.modifiers.effective_cycle_time_ms(base_cycle_ms, mods['speed'])
        if not math.isfinite(cycle_ms) or cycle_ms <= 0:
            return []

        tier['progress'] = tier.get('progress', 0.0) + elapsed_ms / cycle_ms
        if tier['progress'] < 1.0:
            return []

        completed = math.floor(tier['progress'])
        revenue = economy.cycle_revenue(tier_config, count, tier.get('level', 0)) * mods['revenue']
        amount = revenue * completed
        credit_cash(state, amount)
        state['stats']['total_productions'] += completed

        if chief_level > 0:
            tier['progress'] -= completed
        else:
            tier['progress'] = 0.0
            tier['producing'] = False

        return [make_event(PRODUCTION_COMPLETED, division=division_id, tier=tier_index,
                           cycles=completed, amount=amount, manual=False)]

    # Player actions

    def start_production(self, state, division_id, tier_index):
        """Start a manual cycle on an idle tier."""
        division = state['divisions'].get(division_id)
        tier = get_tier(state, division_id, tier_index)
        if not division or not division.get('unlocked') or not tier:
            return False
        if not tier.get('unlocked') or unit_count(tier) <= 0 or tier.get('producing'):
            return False
        tier['producing'] = True
        tier['progress'] = 0.0
        self._publish([make_event(PRODUCTION_STARTED, division=division_id, tier=tier_index)])
        return True

    def tap_produce(self, state, division_id, tier_index):
        """Complete one cycle immediately and pay exactly one cycle's revenue.

        Manual tiers go back to idle; automated tiers keep their running cycle.

        Returns:
            True when revenue was paid.
        """
        division = state['divisions'].get(division_id)
        tier = get_tier(state, division_id, tier_index)
        tier_config = self.data_loader.get_tier_config(division_id, tier_index)
        if not division or not division.get('unlocked') or not tier or tier_config is None:
            return False
        if not tier.get('unlocked') or unit_count(tier) <= 0 or not is_number(tier.get('level', 0)):
            return False

        mods = self.modifiers.resolve(state, division_id, tier_index)
        amount = economy.cycle_revenue(tier_config, unit_count(tier), tier.get('level', 0)) * mods['revenue']
        credit_cash(state, amount)
        state['stats']['total_productions'] += 1
        state['stats']['total_taps'] += 1

        if division.get('chief_level', 0) == 0:
            tier['progress'] = 0.0
            tier['producing'] = False

        self._publish([make_event(PRODUCTION_COMPLETED, division=division_id, tier=tier_index,
                                  cycles=1, amount=amount, manual=True)])
        return True

    def get_purchase_cost(self, state, division_id, tier_index, quantity=1):
        """Cost of buying `quantity` more units, after cost modifiers."""
        tier = get_tier(state, division_id, tier_index)
        tier_config = self.data_loader.get_tier_config(division_id, tier_index)
        if not tier or tier_config is None or not is_number(tier.get('count', 0)):
            return None
        mods = self.modifiers.resolve(state, division_id, tier_index)
        return economy.bulk_cost(tier_config, tier.get('count', 0), quantity) * mods['cost']

    def get_max_buyable(self, state, division_id, tier_index):
        tier = get_tier(state, division_id, tier_index)
        tier_config = self.data_loader.get_tier_config(division_id, tier_index)
        if not tier or tier_config is None or not is_number(tier.get('count', 0)):
            return 0
        mods = self.modifiers.resolve(state, division_id, tier_index)
        limit = self.data_loader.get_rules('max_bulk_purchase', 10000)
        return economy.max_buyable(tier_config, tier.get('count', 0), state['cash'], mods['cost'], limit)

    def purchase_tier(self, state, division_id, tier_index):
        """Buy one unit of a tier."""
        return self.purchase_tier_bulk(state, division_id, tier_index, 1) == 1

    def purchase_tier_bulk(self, state, division_id, tier_index, quantity):
        """Buy several units at once, or as many as affordable with 'max'.

        Returns:
            Number of units bought (0 when nothing was bought).
        """
        division = state['divisions'].get(division_id)
        tier = get_tier(state, division_id, tier_index)
        if not division or not division.get('unlocked') or not tier or not tier.get('unlocked'):
            return 0

        if quantity == 'max':
            quantity = self.get_max_buyable(state, division_id, tier_index)
        if not isinstance(quantity, int) or quantity <= 0:
            return 0

        price = self.get_purchase_cost(state, division_id, tier_index, quantity)
        if price is None or state['cash'] < price:
            return 0

        state['cash'] -= price
        tier['count'] = tier.get('count', 0) + quantity
        self._publish([make_event(TIER_PURCHASED, division=division_id, tier=tier_index,
                                  quantity=quantity, cost=price, count=tier['count'])])
        return quantity

    def get_chief_cost(self, state, division_id):
        division = state['divisions'].get(division_id)
        if not division:
            return None
        entry = self.data_loader.get_automation_level(division.get('chief_level', 0) + 1)
        return entry['cost'] if entry else None

    def hire_chief(self, state, division_id):
        """Raise a division's automation level by one.

        Idle tiers with units start producing right away.
        """
        division = state['divisions'].get(division_id)
        if not division or not division.get('unlocked'):
            return False
        price = self.get_chief_cost(state, division_id)
        if price is None or state['cash'] < price:
            return False

        state['cash'] -= price
        division['chief_level'] += 1
        for tier in division['tiers']:
            if tier.get('unlocked') and unit_count(tier) > 0 and not tier.get('producing'):
                tier['producing'] = True
                tier['progress'] = 0.0
        self._publish([make_event(CHIEF_HIRED, division=division_id,
                                  level=division['chief_level'], cost=price)])
        return True

    def get_tier_unlock_cost(self, division_id, tier_index):
        tier_config = self.data_loader.get_tier_config(division_id, tier_index)
        if tier_config is None:
            return None
        multiplier = self.data_loader.get_rules('unlock_cost_multiplier', 5)
        return economy.unlock_cost(tier_config, tier_index, multiplier)

    def unlock_tier(self, state, division_id, tier_index):
        """Unlock the next tier of a division. The previous tier must be unlocked."""
        division = state['divisions'].get(division_id)
        tier = get_tier(state, division_id, tier_index)
        if not division or not division.get('unlocked') or not tier or tier.get('unlocked'):
            return False
        if tier_index > 0 and not division['tiers'][tier_index - 1].get('unlocked'):
            return False
        price = self.get_tier_unlock_cost(division_id, tier_index)
        if price is None or state['cash'] < price:
            return False

        state['cash'] -= price
        tier['unlocked'] = True
        self._publish([make_event(TIER_UNLOCKED, division=division_id, tier=tier_index, cost=price)])
        return True

    def unlock_division(self, state, division_id):
        """Pay the division's unlock cost."""
        division = state['divisions'].get(division_id)
        price = self.data_loader.get_division_unlock_cost(division_id)
        if not division or division.get('unlocked') or price is None:
            return False
        if state['cash'] < price:
            return False

        state['cash'] -= price
        division['unlocked'] = True
        division['tiers'][0]['unlocked'] = True
        self._publish([make_event(DIVISION_UNLOCKED, division=division_id, cost=price)])
        return True

    def get_level_cost(self, state, division_id, tier_index):
        tier = get_tier(state, division_id, tier_index)
        tier_config = self.data_loader.get_tier_config(division_id, tier_index)
        if not tier or tier_config is None or not is_number(tier.get('level', 0)):
            return None
        return economy.level_cost(tier_config, tier.get('level', 0),
                                  self.data_loader.get_rules('level_up'))

    def level_up_tier(self, state, division_id, tier_index):
        """Raise a tier's revenue level by one. Requires at least one unit."""
        tier = get_tier(state, division_id, tier_index)
        if not tier or not tier.get('unlocked') or unit_count(tier) <= 0:
            return False
        price = self.get_level_cost(state, division_id, tier_index)
        if price is None or state['cash'] < price:
            return False

        state['cash'] -= price
        tier['level'] = tier.get('level', 0) + 1
        self._publish([make_event(TIER_LEVELED, division=division_id, tier=tier_index,
                                  level=tier['level'], cost=price)])
        return True

    # Income rates

    def division_income_per_sec(self, state, division_id, automated_only=True):
        """Steady-state income of a division under current modifiers.

        Args:
            state: Game state dict.
            division_id: Division ID.
            automated_only: Return 0 for divisions without a chief, which stop
                after every cycle and earn nothing unattended.
        """
        division = state['divisions'].get(division_id)
        if not division or not division.get('unlocked'):
            return 0.0
        chief_level = division.get('chief_level', 0)
        if automated_only and chief_level <= 0:
            return 0.0

        power_efficiency = calculate_power_efficiency(
            state.get('power_generated', 0.0), state.get('power_consumed', 0.0))
        speed_table = self.data_loader.get_automation_speed_table()
        total = 0.0
        for tier_index, tier in enumerate(division.get('tiers', [])):
            if not tier.get('unlocked') or unit_count(tier) <= 0 or not is_number(tier.get('level', 0)):
                continue
            tier_config = self.data_loader.get_tier_config(division_id, tier_index)
            if tier_config is None:
                continue
            mods = self.modifiers.resolve(state, division_id, tier_index, power_efficiency)
            cycle_ms = self.modifiers.effective_cycle_time_ms(
                economy.cycle_time_ms(tier_config, chief_level, speed_table), mods['speed'])
            if not math.isfinite(cycle_ms) or cycle_ms <= 0:
                continue
            revenue = economy.cycle_revenue(tier_config, unit_count(tier), tier.get('level', 0))
            total += revenue * mods['revenue'] / (cycle_ms / 1000)
        return total

    def total_income_per_sec(self, state, automated_only=True):
        return sum(self.division_income_per_sec(state, division_id, automated_only)
                   for division_id in state['divisions'])

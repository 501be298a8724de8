"""Modifier resolution.

Every source contributes one multiplicative factor per channel (speed,
revenue, cost). The final multiplier is the product of the factors, so the
order in which sources are applied never matters.
"""
import math

from tycoon.config import Config
from tycoon.power import calculate_power_efficiency
from tycoon.state import get_tier, unit_count
from tycoon.synergies import synergy_factors

SPEED = 'speed'
REVENUE = 'revenue'
COST = 'cost'

RESEARCH_EFFECT_CHANNELS = {
    'production_speed': SPEED,
    'revenue_multiplier': REVENUE,
    'cost_reduction': COST,
}


def _targets(target, division_id):
    return target == 'all' or target == division_id


class ModifierResolver:
    """Combines every multiplier source for a (division, tier) pair."""

    def __init__(self, data_loader, bottleneck_engine, config=None):
        self.data_loader = data_loader
        self.bottleneck_engine = bottleneck_engine
        self.config = config or Config

    def resolve(self, state, division_id, tier_index, power_efficiency=None):
        """Resolve speed, revenue and cost multipliers.

        Args:
            state: Game state dict.
            division_id: Division ID.
            tier_index: Tier index within the division.
            power_efficiency: Grid efficiency in [0, 1]. Computed from the
                state's last power balance when omitted. Ignored for the
                power division, which always runs at full efficiency.

        Returns:
            Dict with 'speed', 'revenue', 'cost' floats and 'sources', a map of
            source name -> {channel: factor}.
        """
        if division_id == self.data_loader.get_power_division_id():
            power_efficiency = 1.0
        elif power_efficiency is None:
            power_efficiency = calculate_power_efficiency(
                state.get('power_generated', 0.0), state.get('power_consumed', 0.0))

        sources = {
            'milestones': self.milestone_factors(state, division_id, tier_index),
            'upgrades': self.upgrade_factors(state, division_id, tier_index),
            'research': self.research_factors(state, division_id),
            'synergies': synergy_factors(state, self.data_loader, division_id),
            'stars': self.star_factors(state, division_id),
            'workers': self.worker_factors(state, division_id),
            'buffs': self.buff_factors(state, division_id),
            'prestige': {REVENUE: self.prestige_factor(state)},
            'bottlenecks': {SPEED: self.bottleneck_engine.speed_penalty(
                state, division_id, power_efficiency)},
        }

        result = {'sources': sources}
        for channel in (SPEED, REVENUE, COST):
            result[channel] = math.prod(
                factors[channel] for factors in sources.values() if channel in factors)
        return result

    def effective_cycle_time_ms(self, base_cycle_ms, speed):
        """Cycle time after speed modifiers; infinite when speed is zero."""
        if speed <= 0:
            return math.inf
        return base_cycle_ms / speed

    # Individual sources

    def milestone_factors(self, state, division_id, tier_index):
        """Milestones reached by the tier's owned count."""
        tier = get_tier(state, division_id, tier_index)
        count = unit_count(tier) if tier else 0
        factors = {SPEED: 1.0, REVENUE: 1.0}
        for milestone in self.data_loader.load_milestones():
            if count >= milestone['threshold']:
                channel = milestone.get('reward_type', SPEED)
                factors[channel] *= milestone['multiplier']
        return factors

    def upgrade_factors(self, state, division_id, tier_index):
        """Purchased one-time upgrades scoped to all divisions, the division or the tier."""
        factors = {SPEED: 1.0, REVENUE: 1.0, COST: 1.0}
        for upgrade_id in state.get('purchased_upgrades', []):
            upgrade = self.data_loader.get_upgrade(upgrade_id)
            if not upgrade or upgrade.get('category') not in factors:
                continue
            target = upgrade.get('target')
            if target == 'all' or (target == division_id and
                                   upgrade.get('tier_index', -1) in (-1, tier_index)):
                factors[upgrade['category']] *= upgrade['value']
        return factors

    def research_factors(self, state, division_id):
        """Completed research nodes.

        Within a node matching effects add up and apply as (1 + sum); cost
        reductions apply as (1 - sum). Nodes multiply together.
        """
        factors = {SPEED: 1.0, REVENUE: 1.0, COST: 1.0}
        for node_id in state.get('unlocked_research', []):
            node = self.data_loader.get_research_node(node_id)
            if not node:
                continue
            sums = {SPEED: 0.0, REVENUE: 0.0, COST: 0.0}
            for effect in node.get('effects', []):
                channel = RESEARCH_EFFECT_CHANNELS.get(effect.get('type'))
                if channel and _targets(effect.get('target'), division_id):
                    sums[channel] += effect.get('value', 0)
            factors[SPEED] *= 1.0 + sums[SPEED]
            factors[REVENUE] *= 1.0 + sums[REVENUE]
            factors[COST] *= max(0.0, 1.0 - sums[COST])
        return factors

    def star_factors(self, state, division_id):
        """Division prestige stars: linear revenue and speed tracks."""
        stars = state.get('division_stars', {}).get(division_id, 0)
        rules = self.data_loader.get_rules('division_prestige')
        return {
            SPEED: 1.0 + stars * rules.get('speed_per_star', 0.0),
            REVENUE: 1.0 + stars * rules.get('revenue_per_star', 0.0),
        }

    def worker_factors(self, state, division_id):
        """Workers allocated to the division boost speed and revenue alike."""
        allocated = state.get('workers', {}).get('allocation', {}).get(division_id, 0)
        bonus = self.data_loader.get_rules('workers').get('bonus_per_worker', 0.0)
        factor = 1.0 + allocated * bonus
        return {SPEED: factor, REVENUE: factor}

    def buff_factors(self, state, division_id):
        """Time-boxed buffs from contracts and events."""
        factors = {SPEED: 1.0, REVENUE: 1.0}
        for buff in state.get('active_buffs', []):
            if buff.get('remaining_ms', 0) <= 0:
                continue
            definition = self.data_loader.get_buff(buff.get('id'))
            if not definition or definition.get('kind') not in factors:
                continue
            if _targets(definition.get('target', 'all'), division_id):
                factors[definition['kind']] *= definition.get('value', 1.0)
        return factors

    def prestige_factor(self, state):
        """Colony tech points from colony prestige."""
        per_point = self.data_loader.get_rules('prestige').get(
            'revenue_per_colony_tech', self.config.PRESTIGE_REVENUE_PER_POINT)
        return 1.0 + state.get('colony_tech', 0) * per_point

    def offline_efficiency_bonus(self, state):
        """Extra offline efficiency from purchased offline upgrades."""
        bonus = 0.0
        for upgrade_id in state.get('purchased_upgrades', []):
            upgrade = self.data_loader.get_upgrade(upgrade_id)
            if upgrade and upgrade.get('category') == 'offline':
                bonus += upgrade.get('value', 0)
        return bonus


"""Timed contracts: rotating objectives with cash, research or buff rewards.

Contracts are generated from the live state using a random.Random seeded by
the save's contract seed and spawn counter, and they time out on the
simulation clock.
"""
import logging
import random

from tycoon.buffs import add_buff
from tycoon.events import (
    CONTRACT_COMPLETED, CONTRACT_EXPIRED, CONTRACT_SPAWNED, PRODUCTION_COMPLETED,
    TIER_PURCHASED, make_event,
)
from tycoon.state import credit_cash, unit_count

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000


class ContractBoard:
    """Spawns, tracks and pays out contracts."""

    def __init__(self, data_loader, production_engine, event_bus=None):
        self.data_loader = data_loader
        self.production = production_engine
        self.event_bus = event_bus
        self._unsubscribers = []

    @property
    def rules(self):
        return self.data_loader.get_rules('contracts')

    def _publish(self, event):
        if self.event_bus is not None:
            self.event_bus.publish(event)

    # Event wiring

    def attach(self, event_bus, get_state):
        """Follow production and purchase events to update contract progress.

        Args:
            event_bus: EventBus to subscribe on.
            get_state: Callable returning the live state dict.
        """
        self.detach()

        def on_production(event):
            self.record_progress(get_state(), 'produce', event.get('division'),
                                 event.get('tier'), event.get('cycles', 0))

        def on_purchase(event):
            self.record_progress(get_state(), 'buy', event.get('division'),
                                 event.get('tier'), event.get('quantity', 0))

        self._unsubscribers = [
            event_bus.subscribe(PRODUCTION_COMPLETED, on_production),
            event_bus.subscribe(TIER_PURCHASED, on_purchase),
        ]

    def detach(self):
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def record_progress(self, state, target_type, division_id, tier_index, amount):
        """Add progress to matching open contracts and pay out finished ones."""
        if state is None or amount <= 0:
            return
        for contract in list(state['contracts']['active']):
            target = contract['target']
            if target['type'] != target_type:
                continue
            if target.get('division') not in (None, division_id):
                continue
            if target.get('tier') not in (None, tier_index):
                continue
            contract['progress'] += amount
            if contract['progress'] >= target['target']:
                self._complete(state, contract)

    # Tick

    def tick(self, state, elapsed_ms):
        """Expire stale contracts, check income goals and spawn new ones."""
        board = state['contracts']
        now = state.get('clock_ms', 0.0)

        for contract in list(board['active']):
            if contract['target']['type'] == 'income':
                income = self.production.total_income_per_sec(state)
                contract['progress'] = income
                if income >= contract['target']['target']:
                    self._complete(state, contract)
                    continue
            if now - contract['created_at'] >= contract['time_limit_ms']:
                board['active'].remove(contract)
                self._publish(make_event(CONTRACT_EXPIRED, contract=contract['id']))

        if board.get('next_spawn_ms') is None:
            board['next_spawn_ms'] = self.rules.get('first_spawn_ms', 15000)
        timers = state['timers']
        timers['contract_spawn_ms'] = timers.get('contract_spawn_ms', 0.0) + elapsed_ms
        if timers['contract_spawn_ms'] < board['next_spawn_ms']:
            return
        if len(board['active']) >= self.rules.get('max_active', 3):
            return

        timers['contract_spawn_ms'] = 0.0
        contract = self.generate(state)
        rng = self._rng(state, 'interval')
        board['next_spawn_ms'] = rng.uniform(self.rules.get('spawn_interval_min_ms', 300000),
                                             self.rules.get('spawn_interval_max_ms', 600000))
        if contract is not None:
            board['active'].append(contract)
            self._publish(make_event(CONTRACT_SPAWNED, contract=contract['id'],
                                     target=contract['target']))

    # Generation

    def _rng(self, state, salt):
        board = state['contracts']
        return random.Random(f"{board.get('seed', 0)}:{salt}:{board.get('spawned', 0)}")

    def generate(self, state):
        """Pick one contract from the templates available for this state."""
        rng = self._rng(state, 'contract')
        income = self.production.total_income_per_sec(state)
        candidates = []

        for division_id, division in state['divisions'].items():
            if not division.get('unlocked'):
                continue
            for tier_index, tier in enumerate(division['tiers']):
                if not tier.get('unlocked'):
                    continue
                tier_config = self.data_loader.get_tier_config(division_id, tier_index)
                if tier_config is None:
                    continue
                if unit_count(tier) > 0:
                    candidates.append(('produce', division_id, tier_index, tier, tier_config))
                candidates.append(('buy', division_id, tier_index, tier, tier_config))

        if income > 0:
            candidates.append(('income', None, None, None, None))
        if not candidates:
            return None

        kind, division_id, tier_index, tier, tier_config = rng.choice(candidates)
        builder = getattr(self, f'_build_{kind}')
        contract = builder(rng, income, division_id, tier_index, tier, tier_config)

        board = state['contracts']
        board['spawned'] = board.get('spawned', 0) + 1
        contract.update({
            'id': f"contract_{board['spawned']}",
            'created_at': state.get('clock_ms', 0.0),
            'progress': 0,
        })
        return contract

    def _build_produce(self, rng, income, division_id, tier_index, tier, tier_config):
        rules = self.rules.get('produce', {})
        cycles = rng.randint(rules.get('cycles_min', 20), rules.get('cycles_max', 80))
        target = max(1, int(cycles * unit_count(tier) * 0.3 + 0.999))
        minutes = rng.randint(rules.get('time_limit_min_minutes', 2), rules.get('time_limit_max_minutes', 5))
        reward = max(rules.get('min_cash_reward', 100),
                     round(income * minutes * rules.get('income_seconds_reward', 30)))
        return {
            'description': f"Produce {target} {tier_config['name']} in {minutes} min",
            'target': {'type': 'produce', 'division': division_id, 'tier': tier_index, 'target': target},
            'reward': {'type': 'cash', 'amount': reward},
            'time_limit_ms': minutes * MINUTE_MS,
        }

    def _build_buy(self, rng, income, division_id, tier_index, tier, tier_config):
        rules = self.rules.get('buy', {})
        units = rng.randint(rules.get('units_min', 5), rules.get('units_max', 25))
        minutes = rng.randint(rules.get('time_limit_min_minutes', 2), rules.get('time_limit_max_minutes', 4))
        reward = max(rules.get('min_rp_reward', 10),
                     round(rules.get('base_rp_reward', 50) + income * rules.get('income_rp_ratio', 0.5)))
        return {
            'description': f"Buy {units} {tier_config['name']} in {minutes} min",
            'target': {'type': 'buy', 'division': division_id, 'tier': tier_index, 'target': units},
            'reward': {'type': 'rp', 'amount': reward},
            'time_limit_ms': minutes * MINUTE_MS,
        }

    def _build_income(self, rng, income, division_id, tier_index, tier, tier_config):
        rules = self.rules.get('income', {})
        goal = income * rng.uniform(rules.get('target_ratio_min', 2), rules.get('target_ratio_max', 5))
        minutes = rng.randint(rules.get('time_limit_min_minutes', 5), rules.get('time_limit_max_minutes', 10))
        return {
            'description': f"Reach {goal:.0f}/s income within {minutes} min",
            'target': {'type': 'income', 'target': goal},
            'reward': {'type': 'buff', 'buff': rules.get('buff', 'contract_bonus')},
            'time_limit_ms': minutes * MINUTE_MS,
        }

    # Rewards

    def _complete(self, state, contract):
        board = state['contracts']
        if contract not in board['active']:
            return
        board['active'].remove(contract)
        board['total_completed'] = board.get('total_completed', 0) + 1
        state['stats']['total_contracts_completed'] += 1

        reward = contract['reward']
        if reward['type'] == 'cash':
            credit_cash(state, reward['amount'])
        elif reward['type'] == 'rp':
            state['research_points'] += reward['amount']
        elif reward['type'] == 'buff':
            add_buff(state, self.data_loader, reward['buff'], source=contract['id'])
        else:
            logger.warning(f"Unknown contract reward type: {reward['type']}")

        self._publish(make_event(CONTRACT_COMPLETED, contract=contract['id'], reward=reward))

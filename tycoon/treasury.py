"""Treasury: savings account and three market instruments.

Prices move in fixed steps. Each step draws from a random.Random seeded with
the treasury seed and the step number, so a given save always sees the same
price path.
"""
import logging
import math
import random

from tycoon.config import Config

logger = logging.getLogger(__name__)

MS_PER_YEAR = 365 * 24 * 60 * 60 * 1000


class Treasury:
    """Cash management outside of production."""

    def __init__(self, data_loader, config=None):
        self.data_loader = data_loader
        self.config = config or Config

    @property
    def rules(self):
        return self.data_loader.get_rules('treasury')

    @property
    def instruments(self):
        return self.rules.get('instruments', {})

    def _rng(self, treasury, salt):
        return random.Random(f"{treasury.get('seed', 0)}:{salt}:{treasury.get('price_steps', 0)}")

    def ensure_prices(self, state):
        """Fill in starting prices for instruments the save has not seen yet."""
        treasury = state['treasury']
        for instrument_id, definition in self.instruments.items():
            treasury['prices'].setdefault(instrument_id, float(definition['base_price']))
            treasury['holdings'].setdefault(instrument_id, 0.0)
            treasury['invested'].setdefault(instrument_id, 0.0)
            treasury['history'].setdefault(instrument_id, [])

    def quote(self, state, instrument_id):
        """Current price, including an active meme pump."""
        treasury = state['treasury']
        price = treasury['prices'].get(instrument_id)
        if price is None:
            definition = self.instruments.get(instrument_id)
            return float(definition['base_price']) if definition else None
        if instrument_id == 'meme' and treasury.get('pump_remaining_ms', 0) > 0:
            price *= treasury.get('pump_multiplier', 1.0)
        return price

    # Tick

    def tick(self, state, elapsed_ms):
        """Accrue savings interest and advance market prices.

        Returns:
            Number of price steps taken.
        """
        treasury = state['treasury']
        self.ensure_prices(state)

        if treasury['savings'] > 0:
            treasury['savings'] *= 1 + self.config.SAVINGS_APY * elapsed_ms / MS_PER_YEAR

        if treasury.get('pump_remaining_ms', 0) > 0:
            treasury['pump_remaining_ms'] = max(0.0, treasury['pump_remaining_ms'] - elapsed_ms)
            if treasury['pump_remaining_ms'] == 0:
                treasury['pump_multiplier'] = 1.0

        timers = state['timers']
        timers['treasury_price_ms'] = timers.get('treasury_price_ms', 0.0) + elapsed_ms
        timers['treasury_event_ms'] = timers.get('treasury_event_ms', 0.0) + elapsed_ms

        steps = 0
        interval = self.config.TREASURY_PRICE_INTERVAL_MS
        while timers['treasury_price_ms'] >= interval:
            timers['treasury_price_ms'] -= interval
            self._step_prices(treasury)
            steps += 1

        event_interval = self.rules.get('event_check_interval_ms', 15000)
        if timers['treasury_event_ms'] >= event_interval:
            timers['treasury_event_ms'] = 0.0
            self._roll_events(treasury)
        return steps

    def _step_prices(self, treasury):
        rng = self._rng(treasury, 'price')
        max_history = self.rules.get('max_history', 60)
        for instrument_id, definition in sorted(self.instruments.items()):
            price = treasury['prices'][instrument_id]
            shock = rng.gauss(definition.get('drift', 0.0), definition.get('volatility', 0.0))
            # Pull back toward the base price so the walk stays in a sane band
            reversion = 0.001 * math.log(definition['base_price'] / price) if price > 0 else 0.0
            price = price * math.exp(shock + reversion)
            price = max(definition.get('min_price', 0.0), price)
            treasury['prices'][instrument_id] = price
            history = treasury['history'][instrument_id]
            history.append(price)
            del history[:-max_history]
        treasury['price_steps'] = treasury.get('price_steps', 0) + 1

    def _roll_events(self, treasury):
        rng = self._rng(treasury, 'event')
        for instrument_id, definition in sorted(self.instruments.items()):
            roll = rng.random()
            crash = definition.get('crash_probability', 0.0)
            moon = definition.get('moon_probability', 0.0)
            pump = definition.get('pump_probability', 0.0)
            price = treasury['prices'][instrument_id]
            if roll < crash:
                low, high = definition.get('crash_range', [1.0, 1.0])
                price *= rng.uniform(low, high)
                logger.info(f"{definition.get('name', instrument_id)} crashed to {price:.4f}")
            elif roll < crash + moon:
                low, high = definition.get('moon_range', [1.0, 1.0])
                price *= rng.uniform(low, high)
                logger.info(f"{definition.get('name', instrument_id)} surged to {price:.4f}")
            elif roll < crash + moon + pump and treasury.get('pump_remaining_ms', 0) <= 0:
                low, high = definition.get('pump_range', [1.0, 1.0])
                shortest, longest = definition.get('pump_duration_ms', [0, 0])
                treasury['pump_multiplier'] = rng.uniform(low, high)
                treasury['pump_remaining_ms'] = rng.uniform(shortest, longest)
            treasury['prices'][instrument_id] = max(definition.get('min_price', 0.0), price)

    # Savings

    def deposit_savings(self, state, amount):
        if amount <= 0 or amount > state['cash']:
            return False
        state['cash'] -= amount
        state['treasury']['savings'] += amount
        return True

    def withdraw_savings(self, state, amount):
        if amount <= 0 or amount > state['treasury']['savings']:
            return False
        state['treasury']['savings'] -= amount
        state['cash'] += amount
        return True

    # Markets

    def buy(self, state, instrument_id, amount):
        """Spend `amount` cash on an instrument at the current quote."""
        if instrument_id not in self.instruments or amount <= 0 or amount > state['cash']:
            return False
        self.ensure_prices(state)
        price = self.quote(state, instrument_id)
        if not price or price <= 0:
            return False
        treasury = state['treasury']
        state['cash'] -= amount
        treasury['holdings'][instrument_id] += amount / price
        treasury['invested'][instrument_id] += amount
        return True

    def sell(self, state, instrument_id, units):
        """Sell units of an instrument back to cash at the current quote."""
        if instrument_id not in self.instruments or units <= 0:
            return False
        self.ensure_prices(state)
        treasury = state['treasury']
        held = treasury['holdings'].get(instrument_id, 0.0)
        if units > held:
            return False
        # Cost basis leaves in proportion to the units sold
        basis = treasury['invested'][instrument_id] * units / held
        treasury['holdings'][instrument_id] = held - units
        treasury['invested'][instrument_id] -= basis
        state['cash'] += units * self.quote(state, instrument_id)
        return True

    def position_value(self, state, instrument_id):
        held = state['treasury']['holdings'].get(instrument_id, 0.0)
        if held <= 0:
            return 0.0
        return held * self.quote(state, instrument_id)

    def portfolio_value(self, state):
        """Savings plus the market value of every holding."""
        total = state['treasury']['savings']
        for instrument_id in self.instruments:
            total += self.position_value(state, instrument_id)
        return total

    def portfolio_pnl(self, state):
        """Unrealised gain or loss across market holdings."""
        invested = sum(state['treasury']['invested'].get(i, 0.0) for i in self.instruments)
        value = sum(self.position_value(state, i) for i in self.instruments)
        return value - invested

"""Game state construction.

The state is a plain JSON-native dict so it serializes field for field.
Everything dynamic lives here; static content comes from GameDataLoader.
"""
import math

from tycoon.config import Config

TIERS_PER_DIVISION = 6

# Bumped whenever a migration step is added
CURRENT_VERSION = 5


def create_tier_state(unlocked=False):
    """Fresh state for one production tier."""
    return {
        'unlocked': unlocked,
        'count': 0,
        'level': 0,
        'producing': False,
        'progress': 0.0,
    }


def create_division_state(unlocked=False, tier_count=TIERS_PER_DIVISION):
    """Fresh state for one division. Only its first tier starts unlocked."""
    return {
        'unlocked': unlocked,
        'chief_level': 0,
        'tiers': [create_tier_state(unlocked=(i == 0)) for i in range(tier_count)],
        'bottlenecks': [],
    }


def default_stats():
    return {
        'total_cash_earned': 0.0,
        'total_productions': 0,
        'total_taps': 0,
        'total_research_completed': 0,
        'total_contracts_completed': 0,
        'total_random_events': 0,
        'play_time_ms': 0.0,
        'sessions_played': 0,
        'total_prestiges': 0,
        'highest_income_per_sec': 0.0,
        'offline_cash_earned': 0.0,
    }


def default_settings():
    return {
        'music_enabled': True,
        'sound_enabled': True,
        'notifications_enabled': True,
        'number_format': 'short',
    }


def default_treasury(seed=0):
    return {
        'seed': seed,
        'price_steps': 0,
        'savings': 0.0,
        'holdings': {},
        'invested': {},
        'prices': {},
        'history': {},
        'pump_multiplier': 1.0,
        'pump_remaining_ms': 0.0,
    }


def default_contracts(seed=0):
    return {
        'seed': seed,
        'spawned': 0,
        'active': [],
        'next_spawn_ms': None,
        'total_completed': 0,
    }


def default_random_events(seed=0):
    return {
        'seed': seed,
        'fired': 0,
        'next_event_ms': None,
        'recent': [],
        'pending': None,
    }


def default_timers():
    return {
        'bottleneck_check_ms': 0.0,
        'treasury_price_ms': 0.0,
        'treasury_event_ms': 0.0,
        'contract_spawn_ms': 0.0,
        'random_event_ms': 0.0,
    }


def create_initial_state(data_loader, config=None, now_ms=0, unlocked_divisions=None, seed=0):
    """Build a fresh game state.

    Args:
        data_loader: GameDataLoader providing the division list.
        config: Config class; Config when omitted.
        now_ms: Wall-clock timestamp stamped into last_played/last_saved.
        unlocked_divisions: Division IDs to start unlocked. Defaults to the
            power division alone.
        seed: Seed for deterministic contract, market and random event
            generation.

    Returns:
        New state dict at the current save version.
    """
    config = config or Config
    if unlocked_divisions is None:
        unlocked_divisions = [data_loader.get_power_division_id()]

    divisions = {}
    for division in data_loader.load_divisions():
        tier_count = max(TIERS_PER_DIVISION, len(division.get('tiers', [])))
        divisions[division['id']] = create_division_state(
            unlocked=division['id'] in unlocked_divisions,
            tier_count=tier_count,
        )

    return {
        'version': CURRENT_VERSION,
        'last_played': now_ms,
        'last_saved': now_ms,
        'clock_ms': 0.0,
        'cash': float(config.STARTING_CASH),
        'research_points': 0.0,
        'influence': 0.0,
        'colony_tech': 0,
        'power_generated': 0.0,
        'power_consumed': 0.0,
        'divisions': divisions,
        'purchased_upgrades': [],
        'unlocked_research': [],
        'active_research': None,
        'active_buffs': [],
        'active_synergies': [],
        'discovered_synergies': [],
        'division_stars': {division_id: 0 for division_id in divisions},
        'workers': {'total': 0, 'allocation': {}},
        'treasury': default_treasury(seed),
        'contracts': default_contracts(seed),
        'random_events': default_random_events(seed),
        'timers': default_timers(),
        'prestige_count': 0,
        'total_value_earned': 0.0,
        'achievements': [],
        'achievement_timestamps': {},
        'stats': default_stats(),
        'settings': default_settings(),
    }


def get_tier(state, division_id, tier_index):
    """Return the tier state dict or None when it does not exist."""
    division = state.get('divisions', {}).get(division_id)
    if not division:
        return None
    tiers = division.get('tiers', [])
    if tier_index is None or not 0 <= tier_index < len(tiers):
        return None
    return tiers[tier_index]


def credit_cash(state, amount):
    """Add earned cash and update lifetime counters."""
    if amount <= 0:
        return
    state['cash'] += amount
    state['total_value_earned'] += amount
    state['stats']['total_cash_earned'] += amount


def is_number(value):
    """True for a finite int or float. Booleans do not count."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def unit_count(tier):
    """Owned units of a tier, or 0 when the stored count is not a usable number."""
    count = tier.get('count', 0)
    if not is_number(count) or count < 0:
        return 0
    return count

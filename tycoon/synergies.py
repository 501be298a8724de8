"""Cross-division synergies.

A synergy links a source and a target division. It is active while both
divisions are unlocked and own units in at least the required number of
tiers; the target division then gets a speed, revenue or cost bonus. Bonuses
of one type add up within the target (15% + 20% gives 1.35x) before they
enter the modifier product.
"""
import logging

from tycoon.events import SYNERGY_DISCOVERED, make_event
from tycoon.state import unit_count

logger = logging.getLogger(__name__)


def owned_tier_count(state, division_id):
    """Number of unlocked tiers with at least one unit in an unlocked division."""
    division = state.get('divisions', {}).get(division_id)
    if not division or not division.get('unlocked'):
        return 0
    return sum(1 for tier in division.get('tiers', [])
               if tier.get('unlocked') and unit_count(tier) > 0)


def is_synergy_active(state, synergy):
    return (owned_tier_count(state, synergy['source']) >= synergy.get('source_min_tiers', 1) and
            owned_tier_count(state, synergy['target']) >= synergy.get('target_min_tiers', 1))


def active_synergies(state, data_loader):
    """Definitions of every synergy whose requirements are met right now."""
    return [s for s in data_loader.load_synergies() if is_synergy_active(state, s)]


def synergy_factors(state, data_loader, division_id):
    """Speed, revenue and cost factors a division gets from active synergies."""
    bonus = {'speed': 0.0, 'revenue': 0.0, 'cost': 0.0}
    for synergy in active_synergies(state, data_loader):
        if synergy['target'] != division_id:
            continue
        effect = synergy.get('effect', {})
        if effect.get('type') in bonus:
            bonus[effect['type']] += effect.get('value', 0.0)
    return {
        'speed': 1.0 + bonus['speed'],
        'revenue': 1.0 + bonus['revenue'],
        'cost': max(0.0, 1.0 - bonus['cost']),
    }


def synergy_progress(state, data_loader):
    """Per-synergy progress toward activation, for display.

    Returns:
        List of dicts with 'id', 'active', 'source_progress' and
        'target_progress' (each in [0, 1]).
    """
    report = []
    for synergy in data_loader.load_synergies():
        source = min(1.0, owned_tier_count(state, synergy['source']) / max(1, synergy.get('source_min_tiers', 1)))
        target = min(1.0, owned_tier_count(state, synergy['target']) / max(1, synergy.get('target_min_tiers', 1)))
        report.append({
            'id': synergy['id'],
            'active': source >= 1.0 and target >= 1.0,
            'source_progress': source,
            'target_progress': target,
        })
    return report


def update_synergies(state, data_loader):
    """Refresh the active synergy list stored on the state.

    Returns:
        synergy_discovered events for synergies active for the first time
        in this save.
    """
    active = active_synergies(state, data_loader)
    state['active_synergies'] = [s['id'] for s in active]
    discovered = state.setdefault('discovered_synergies', [])
    events = []
    for synergy in active:
        if synergy['id'] in discovered:
            continue
        discovered.append(synergy['id'])
        effect = synergy.get('effect', {})
        logger.info(f"Synergy discovered: {synergy.get('name', synergy['id'])}")
        events.append(make_event(SYNERGY_DISCOVERED, synergy=synergy['id'],
                                 source=synergy['source'], target=synergy['target'],
                                 effect=effect.get('type'), value=effect.get('value', 0.0)))
    return events

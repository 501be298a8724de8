"""Save document validation, migration and encoding.

A save is the whole game state serialized as JSON. Older documents are
brought forward by MIGRATIONS, an ordered list of steps keyed by the version
they produce. Each step only adds missing fields (or performs one documented
structural change), never raises, and is safe to run twice.
"""
import base64
import binascii
import json
import logging
import math

from tycoon.state import (
    CURRENT_VERSION, TIERS_PER_DIVISION, create_division_state, create_tier_state,
    default_contracts, default_random_events, default_settings, default_stats, default_timers,
    default_treasury,
)

logger = logging.getLogger(__name__)


# Validation

def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def is_valid_state(doc, power_division='energy'):
    """Structural check on the anchors every version has had.

    A document is valid when it is a dict with a numeric, non-NaN cash
    balance and a divisions dict whose power division carries a tiers list.
    """
    if not isinstance(doc, dict):
        return False
    if not _is_number(doc.get('cash')):
        return False
    version = doc.get('version', 0)
    if not isinstance(version, int) or isinstance(version, bool) or version < 0:
        return False
    divisions = doc.get('divisions')
    if not isinstance(divisions, dict):
        return False
    power = divisions.get(power_division)
    if not isinstance(power, dict) or not isinstance(power.get('tiers'), list):
        return False
    return True


# Migrations

def _ensure_dict(doc, key, factory):
    value = doc.get(key)
    if not isinstance(value, dict):
        doc[key] = factory()
        return doc[key]
    # Fill keys that newer versions added to the default
    for name, default in factory().items():
        value.setdefault(name, default)
    return value


def _ensure_list(doc, key):
    if not isinstance(doc.get(key), list):
        doc[key] = []
    return doc[key]


def _ensure_number(doc, key, default):
    if not _is_number(doc.get(key)):
        doc[key] = default
    return doc[key]


def migrate_v0_to_v1(doc, data_loader):
    """Base fields: stats, settings, achievements, research and prestige counters."""
    _ensure_dict(doc, 'stats', default_stats)
    _ensure_dict(doc, 'settings', default_settings)
    _ensure_list(doc, 'achievements')
    _ensure_list(doc, 'unlocked_research')
    _ensure_list(doc, 'purchased_upgrades')
    if 'active_research' not in doc or not (doc['active_research'] is None or
                                            isinstance(doc['active_research'], dict)):
        doc['active_research'] = None
    _ensure_number(doc, 'research_points', 0.0)
    _ensure_number(doc, 'influence', 0.0)
    _ensure_number(doc, 'power_generated', 0.0)
    _ensure_number(doc, 'power_consumed', 0.0)
    _ensure_number(doc, 'last_played', 0)
    _ensure_number(doc, 'last_saved', 0)
    _ensure_number(doc, 'total_value_earned', doc['stats'].get('total_cash_earned', 0.0))
    _ensure_number(doc, 'prestige_count', 0)
    _ensure_number(doc, 'colony_tech', 0)

    for division in doc['divisions'].values():
        if not isinstance(division, dict):
            continue
        division.setdefault('unlocked', False)
        division.setdefault('chief_level', 0)
        if not isinstance(division.get('bottlenecks'), list):
            division['bottlenecks'] = []
    return doc


def _fill_divisions(doc, data_loader):
    divisions = doc['divisions']
    for division_id in data_loader.get_division_ids():
        if not isinstance(divisions.get(division_id), dict):
            divisions[division_id] = create_division_state(unlocked=False)

    for division in divisions.values():
        if not isinstance(division, dict):
            continue
        tiers = division.get('tiers')
        if not isinstance(tiers, list):
            tiers = division['tiers'] = []
        tiers[:] = [t if isinstance(t, dict) else create_tier_state() for t in tiers]
        while len(tiers) < TIERS_PER_DIVISION:
            tiers.append(create_tier_state(unlocked=not tiers))
        for tier in tiers:
            for name, default in create_tier_state().items():
                tier.setdefault(name, default)
    return divisions


def migrate_v1_to_v2(doc, data_loader):
    """Six tiers per division. Resets in-progress production: cycle timing changed."""
    for division in _fill_divisions(doc, data_loader).values():
        if not isinstance(division, dict):
            continue
        for tier in division['tiers']:
            tier['producing'] = False
            tier['progress'] = 0.0
    return doc


def migrate_v2_to_v3(doc, data_loader):
    """Treasury, contracts, division stars, workers and buffs."""
    _ensure_dict(doc, 'treasury', default_treasury)
    _ensure_dict(doc, 'contracts', default_contracts)
    stars = doc.get('division_stars')
    if not isinstance(stars, dict):
        stars = doc['division_stars'] = {}
    for division_id in doc['divisions']:
        stars.setdefault(division_id, 0)
    workers = _ensure_dict(doc, 'workers', lambda: {'total': 0, 'allocation': {}})
    if not isinstance(workers.get('allocation'), dict):
        workers['allocation'] = {}
    _ensure_list(doc, 'active_buffs')
    return doc


def migrate_v3_to_v4(doc, data_loader):
    """Declared achievement timestamps, simulation clock and timers.

    Older builds stashed achievement unlock times in an untyped
    '_achievement_flags' field; those move into 'achievement_timestamps'.
    Bottleneck wait fields used 0 for "not waiting"; that becomes None.
    """
    timestamps = doc.get('achievement_timestamps')
    if not isinstance(timestamps, dict):
        timestamps = doc['achievement_timestamps'] = {}
    legacy = doc.pop('_achievement_flags', None)
    if isinstance(legacy, dict):
        for achievement_id, unlocked_at in legacy.items():
            if _is_number(unlocked_at):
                timestamps.setdefault(achievement_id, unlocked_at)

    _ensure_number(doc, 'clock_ms', 0.0)
    _ensure_dict(doc, 'timers', default_timers)

    for division in doc['divisions'].values():
        if not isinstance(division, dict):
            continue
        instances = []
        for instance in division.get('bottlenecks', []):
            if not isinstance(instance, dict) or 'id' not in instance:
                continue
            definition = data_loader.get_bottleneck(instance['id']) or {}
            instance.setdefault('active', False)
            instance.setdefault('resolved', False)
            instance.setdefault('severity', definition.get('severity', 0.0))
            if not instance.get('wait_started_at'):
                instance['wait_started_at'] = None
            instances.append(instance)
        division['bottlenecks'] = instances
    return doc


def migrate_v4_to_v5(doc, data_loader):
    """Synergy tracking and the random event schedule."""
    active = _ensure_list(doc, 'active_synergies')
    discovered = _ensure_list(doc, 'discovered_synergies')
    active[:] = [s for s in active if isinstance(s, str)]
    discovered[:] = [s for s in discovered if isinstance(s, str)]
    seed = doc['contracts'].get('seed', 0)
    schedule = _ensure_dict(doc, 'random_events', lambda: default_random_events(seed))
    if not isinstance(schedule.get('recent'), list):
        schedule['recent'] = []
    if schedule.get('pending') is not None and not isinstance(schedule['pending'], dict):
        schedule['pending'] = None
    return doc


# (version produced, step)
MIGRATIONS = [
    (1, migrate_v0_to_v1),
    (2, migrate_v1_to_v2),
    (3, migrate_v2_to_v3),
    (4, migrate_v3_to_v4),
    (5, migrate_v4_to_v5),
]


def repair_state(doc, data_loader):
    """Fill every field a current document should carry.

    Runs after the migrations on every load, whatever the stamped version,
    so a current save that lost a field is completed rather than crashing
    the first tick. Only absent or mistyped fields are replaced; unit
    counts and running production are left as they are.
    """
    migrate_v0_to_v1(doc, data_loader)
    _fill_divisions(doc, data_loader)
    migrate_v2_to_v3(doc, data_loader)
    migrate_v3_to_v4(doc, data_loader)
    migrate_v4_to_v5(doc, data_loader)
    return doc


def migrate_state(doc, data_loader):
    """Bring a valid document up to CURRENT_VERSION in place.

    Returns:
        The migrated document.
    """
    version = doc.get('version', 0)
    for target_version, step in MIGRATIONS:
        if version < target_version:
            step(doc, data_loader)
            logger.debug(f"Migrated save to version {target_version}")
    repair_state(doc, data_loader)
    if version > CURRENT_VERSION:
        logger.warning(f"Save version {version} is newer than supported version {CURRENT_VERSION}")
    else:
        doc['version'] = CURRENT_VERSION
    return doc


# Encoding

def serialize_state(state):
    """Serialize a state dict to a JSON string."""
    return json.dumps(state)


def deserialize_state(raw):
    """Parse a JSON string. Returns None for unparseable input."""
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not parse save document: {e}")
        return None


def load_state(raw, data_loader):
    """Parse, validate and migrate a stored document.

    Returns:
        Tuple (state or None, status) with status one of 'missing',
        'corrupt', 'loaded' or 'migrated'.
    """
    if raw is None:
        return None, 'missing'
    doc = deserialize_state(raw)
    if not is_valid_state(doc, data_loader.get_power_division_id()):
        logger.warning("Discarding structurally invalid save")
        return None, 'corrupt'
    stored_version = doc.get('version', 0)
    migrate_state(doc, data_loader)
    return doc, ('migrated' if stored_version < CURRENT_VERSION else 'loaded')


def export_save(state):
    """Encode a state as base64-wrapped JSON for copy/paste transfer."""
    return base64.b64encode(serialize_state(state).encode('utf-8')).decode('ascii')


def import_save(encoded, data_loader):
    """Decode an exported save. Returns the migrated state or None when invalid."""
    try:
        raw = base64.b64decode(encoded.strip(), validate=True).decode('utf-8')
    except (AttributeError, binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Could not decode imported save: {e}")
        return None
    state, status = load_state(raw, data_loader)
    return state

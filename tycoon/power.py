"""Power balance across divisions."""
import logging

from tycoon.state import is_number

logger = logging.getLogger(__name__)


def research_power_bonus(state, data_loader, division_id):
    """Sum of completed research 'power_output' effects for a division."""
    bonus = 0.0
    for node_id in state.get('unlocked_research', []):
        node = data_loader.get_research_node(node_id)
        if not node:
            continue
        for effect in node.get('effects', []):
            if effect.get('type') != 'power_output':
                continue
            if effect.get('target') in ('all', division_id):
                bonus += effect.get('value', 0)
    return bonus


def calculate_power_balance(state, data_loader):
    """Total generated and consumed megawatts across unlocked divisions.

    Positive tier power ratings are generation, negative are consumption.
    Generation is boosted by research 'power_output' effects.

    Returns:
        Tuple (generated_mw, consumed_mw), both non-negative.
    """
    generated = 0.0
    consumed = 0.0
    for division_id, division in state.get('divisions', {}).items():
        if not division.get('unlocked'):
            continue
        output_mult = 1.0 + research_power_bonus(state, data_loader, division_id)
        for tier_index, tier in enumerate(division.get('tiers', [])):
            count = tier.get('count', 0)
            if not is_number(count):
                logger.debug(f"Ignoring {division_id}[{tier_index}] in power balance: count={count!r}")
                continue
            if not tier.get('unlocked') or count <= 0:
                continue
            tier_config = data_loader.get_tier_config(division_id, tier_index)
            if not tier_config:
                continue
            power = tier_config.get('power_mw', 0) * count
            if power > 0:
                generated += power * output_mult
            elif power < 0:
                consumed += -power
    return generated, consumed


def calculate_power_efficiency(generated, consumed):
    """Fraction of demand that is met, in [0, 1]. No demand means 1."""
    if consumed <= 0:
        return 1.0
    return min(1.0, generated / consumed)


def power_status(generated, consumed):
    """Coarse grid status: 'ok', 'warning' (above 80% load) or 'deficit'."""
    if consumed <= 0:
        return 'ok'
    if generated < consumed:
        return 'deficit'
    if consumed / generated > 0.8:
        return 'warning'
    return 'ok'

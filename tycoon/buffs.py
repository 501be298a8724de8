"""Time-boxed buffs granted by contracts, random events and external triggers."""
import logging

from tycoon.events import BUFF_EXPIRED, make_event

logger = logging.getLogger(__name__)


def add_buff(state, data_loader, buff_id, source=None, duration_ms=None):
    """Activate a buff, refreshing its timer when it is already running.

    Returns:
        True when the buff exists in the definition table.
    """
    definition = data_loader.get_buff(buff_id)
    if not definition:
        logger.warning(f"Unknown buff: {buff_id}")
        return False
    remaining = duration_ms if duration_ms is not None else definition.get('duration_ms', 0)
    for buff in state['active_buffs']:
        if buff['id'] == buff_id:
            buff['remaining_ms'] = max(buff['remaining_ms'], remaining)
            buff['source'] = source
            return True
    state['active_buffs'].append({'id': buff_id, 'source': source, 'remaining_ms': remaining})
    return True


def tick_buffs(state, elapsed_ms):
    """Count buff timers down and drop the expired ones.

    Returns:
        List of buff_expired events.
    """
    events = []
    remaining = []
    for buff in state.get('active_buffs', []):
        buff['remaining_ms'] -= elapsed_ms
        if buff['remaining_ms'] > 0:
            remaining.append(buff)
        else:
            events.append(make_event(BUFF_EXPIRED, buff=buff['id']))
    state['active_buffs'] = remaining
    return events

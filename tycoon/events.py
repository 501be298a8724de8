"""Synchronous domain event bus.

Events are plain dicts with a 'type' key plus a payload. The bus is an
explicitly constructed object so each session (and each test) owns its own
subscriber list.
"""
import logging

logger = logging.getLogger(__name__)

WILDCARD = '*'

# Event types emitted by the engine
PRODUCTION_STARTED = 'production_started'
PRODUCTION_COMPLETED = 'production_completed'
TIER_PURCHASED = 'tier_purchased'
TIER_UNLOCKED = 'tier_unlocked'
TIER_LEVELED = 'tier_leveled'
DIVISION_UNLOCKED = 'division_unlocked'
CHIEF_HIRED = 'chief_hired'
BOTTLENECK_ACTIVATED = 'bottleneck_activated'
BOTTLENECK_RESOLVED = 'bottleneck_resolved'
RESEARCH_STARTED = 'research_started'
RESEARCH_COMPLETED = 'research_completed'
UPGRADE_PURCHASED = 'upgrade_purchased'
PRESTIGE_COMPLETED = 'prestige_completed'
DIVISION_PRESTIGED = 'division_prestiged'
CONTRACT_SPAWNED = 'contract_spawned'
CONTRACT_COMPLETED = 'contract_completed'
CONTRACT_EXPIRED = 'contract_expired'
BUFF_ADDED = 'buff_added'
BUFF_EXPIRED = 'buff_expired'
SYNERGY_DISCOVERED = 'synergy_discovered'
RANDOM_EVENT_FIRED = 'random_event_fired'
RANDOM_EVENT_RESOLVED = 'random_event_resolved'
OFFLINE_APPLIED = 'offline_applied'
SAVE_COMPLETED = 'save_completed'
SAVE_FAILED = 'save_failed'
STATE_CHANGED = 'state_changed'


def make_event(event_type, **payload):
    """Build an event dict."""
    event = {'type': event_type}
    event.update(payload)
    return event


class EventBus:
    """Publish/subscribe dispatcher for domain events."""

    def __init__(self):
        self._handlers = {}

    def subscribe(self, event_type, handler):
        """Register a handler for an event type ('*' receives everything).

        Returns:
            A function that removes this subscription when called.
        """
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append(handler)

        def unsubscribe():
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event):
        """Deliver an event to its subscribers, then to wildcard subscribers.

        A failing handler is logged and does not stop delivery to the rest.
        """
        event_type = event.get('type')
        targets = list(self._handlers.get(event_type, []))
        if event_type != WILDCARD:
            targets.extend(self._handlers.get(WILDCARD, []))
        for handler in targets:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler failed for {event_type}")

    def publish_all(self, events):
        for event in events:
            self.publish(event)

    def subscriber_count(self, event_type=None):
        if event_type is None:
            return sum(len(h) for h in self._handlers.values())
        return len(self._handlers.get(event_type, []))

    def clear(self):
        """Remove every subscription."""
        self._handlers.clear()

"""Research tree progression."""
import logging

from tycoon.events import RESEARCH_COMPLETED, RESEARCH_STARTED, make_event

logger = logging.getLogger(__name__)


class ResearchSystem:
    """Starts and advances research nodes."""

    def __init__(self, data_loader, event_bus=None):
        self.data_loader = data_loader
        self.event_bus = event_bus

    def is_unlocked(self, state, node_id):
        return node_id in state.get('unlocked_research', [])

    def prerequisites_met(self, state, node):
        unlocked = state.get('unlocked_research', [])
        return all(prereq in unlocked for prereq in node.get('prerequisites', []))

    def available_nodes(self, state):
        """Nodes that could be started now, ignoring research point cost."""
        return [
            node for node in self.data_loader.load_research_tree()
            if not self.is_unlocked(state, node['id']) and self.prerequisites_met(state, node)
        ]

    def can_start(self, state, node_id):
        node = self.data_loader.get_research_node(node_id)
        if not node or state.get('active_research') is not None:
            return False
        if self.is_unlocked(state, node_id) or not self.prerequisites_met(state, node):
            return False
        return state['research_points'] >= node.get('cost', 0)

    def start_research(self, state, node_id):
        """Pay the node's research point cost and make it the active research.

        Returns:
            True when research started.
        """
        if not self.can_start(state, node_id):
            return False
        node = self.data_loader.get_research_node(node_id)
        state['research_points'] -= node.get('cost', 0)
        state['active_research'] = {'id': node_id, 'progress': 0.0}
        if self.event_bus is not None:
            self.event_bus.publish(make_event(RESEARCH_STARTED, research=node_id))
        return True

    def tick_research(self, state, elapsed_ms):
        """Advance active research by elapsed_ms.

        Returns:
            List with a research_completed event when the node finishes.
        """
        active = state.get('active_research')
        if not active:
            return []
        node = self.data_loader.get_research_node(active.get('id'))
        if not node:
            logger.warning(f"Dropping unknown active research: {active.get('id')}")
            state['active_research'] = None
            return []

        time_ms = node.get('time_ms', 0)
        if time_ms > 0:
            active['progress'] = min(1.0, active['progress'] + elapsed_ms / time_ms)
        else:
            active['progress'] = 1.0

        if active['progress'] < 1.0:
            return []

        state['unlocked_research'].append(node['id'])
        state['active_research'] = None
        state['stats']['total_research_completed'] += 1
        return [make_event(RESEARCH_COMPLETED, research=node['id'])]

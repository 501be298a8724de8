"""Worker hiring and allocation across divisions."""


class WorkerSystem:
    """Hires workers and assigns them to divisions."""

    def __init__(self, data_loader):
        self.data_loader = data_loader

    @property
    def rules(self):
        return self.data_loader.get_rules('workers')

    def hire_cost(self, state):
        total = state['workers'].get('total', 0)
        return self.rules.get('base_cost', 1000) * self.rules.get('cost_growth', 1.5) ** total

    def allocated(self, state):
        return sum(state['workers'].get('allocation', {}).values())

    def free_workers(self, state):
        return state['workers'].get('total', 0) - self.allocated(state)

    def hire_worker(self, state):
        """Hire one worker into the unassigned pool."""
        price = self.hire_cost(state)
        if state['cash'] < price:
            return False
        state['cash'] -= price
        state['workers']['total'] = state['workers'].get('total', 0) + 1
        return True

    def allocate_workers(self, state, division_id, count):
        """Set how many workers a division gets.

        Args:
            state: Game state dict.
            division_id: Unlocked division ID.
            count: New allocation; bounded by free workers and the per-division cap.

        Returns:
            True when the allocation changed.
        """
        division = state['divisions'].get(division_id)
        if not division or not division.get('unlocked') or not isinstance(count, int) or count < 0:
            return False
        allocation = state['workers'].setdefault('allocation', {})
        current = allocation.get(division_id, 0)
        if count > self.rules.get('max_per_division', 50):
            return False
        if count - current > self.free_workers(state):
            return False
        if count == current:
            return False
        if count == 0:
            allocation.pop(division_id, None)
        else:
            allocation[division_id] = count
        return True

"""One-time upgrade purchases."""
from tycoon.events import UPGRADE_PURCHASED, make_event
from tycoon.state import get_tier, unit_count


class UpgradeSystem:
    """Checks requirements and buys one-time upgrades."""

    def __init__(self, data_loader, event_bus=None):
        self.data_loader = data_loader
        self.event_bus = event_bus

    def is_purchased(self, state, upgrade_id):
        return upgrade_id in state.get('purchased_upgrades', [])

    def requirements_met(self, state, upgrade):
        """Check the optional owned-count requirement of an upgrade."""
        requirement = upgrade.get('requires_tier_count')
        if not requirement:
            return True
        tier = get_tier(state, requirement.get('division'), requirement.get('tier'))
        return bool(tier) and unit_count(tier) >= requirement.get('count', 0)

    def available_upgrades(self, state):
        """Upgrades that are not yet bought and whose requirements are met."""
        return [
            upgrade for upgrade in self.data_loader.load_upgrades()
            if not self.is_purchased(state, upgrade['id']) and self.requirements_met(state, upgrade)
        ]

    def can_purchase(self, state, upgrade_id):
        upgrade = self.data_loader.get_upgrade(upgrade_id)
        if not upgrade or self.is_purchased(state, upgrade_id):
            return False
        if not self.requirements_met(state, upgrade):
            return False
        return state['cash'] >= upgrade['cost']

    def purchase_upgrade(self, state, upgrade_id):
        """Buy an upgrade.

        Returns:
            True when the upgrade was bought.
        """
        if not self.can_purchase(state, upgrade_id):
            return False
        upgrade = self.data_loader.get_upgrade(upgrade_id)
        state['cash'] -= upgrade['cost']
        state['purchased_upgrades'].append(upgrade_id)
        if self.event_bus is not None:
            self.event_bus.publish(make_event(UPGRADE_PURCHASED, upgrade=upgrade_id,
                                              category=upgrade.get('category'),
                                              cost=upgrade['cost']))
        return True

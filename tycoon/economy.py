"""Pure economy formulas: purchase cost, cycle revenue and cycle time.

Every function here is a pure function of static tier data and integers, so
results are reproducible across runs and platforms.
"""
import math


def cost(tier_config, count):
    """Cost of the next unit given the current owned count.

    cost = base_cost * cost_multiplier ** count
    """
    return tier_config['base_cost'] * tier_config['cost_multiplier'] ** count


def bulk_cost(tier_config, count, quantity):
    """Total cost of buying `quantity` units starting at `count` owned."""
    if quantity <= 0:
        return 0.0
    rate = tier_config['cost_multiplier']
    # Geometric series of single-unit costs
    return tier_config['base_cost'] * rate ** count * (rate ** quantity - 1) / (rate - 1)


def max_buyable(tier_config, count, budget, cost_multiplier=1.0, limit=10000):
    """Largest quantity whose total cost fits in `budget`.

    Args:
        tier_config: Static tier data.
        count: Units currently owned.
        budget: Cash available.
        cost_multiplier: Discount factor from upgrades and research.
        limit: Upper bound on the result.

    Returns:
        Number of units affordable (0 when even one is too expensive).
    """
    first = cost(tier_config, count) * cost_multiplier
    if budget < first or first <= 0:
        return 0
    rate = tier_config['cost_multiplier']
    # Closed form from the geometric series, then correct for float rounding
    estimate = int(math.log(budget * (rate - 1) / first + 1) / math.log(rate))
    estimate = max(0, min(estimate, limit))
    while estimate > 0 and bulk_cost(tier_config, count, estimate) * cost_multiplier > budget:
        estimate -= 1
    while estimate < limit and bulk_cost(tier_config, count, estimate + 1) * cost_multiplier <= budget:
        estimate += 1
    return estimate


def cycle_revenue(tier_config, count, level):
    """Revenue paid by one completed cycle of a tier.

    revenue = base_revenue * count * revenue_multiplier ** level
    """
    level_factor = tier_config.get('revenue_multiplier', 1.0) ** level
    return tier_config['base_revenue'] * count * level_factor


def cycle_time_ms(tier_config, automation_level, speed_table):
    """Base cycle duration in milliseconds before speed modifiers.

    Args:
        tier_config: Static tier data with `cycle_duration` in seconds.
        automation_level: Chief level of the division (0 is manual).
        speed_table: Automation speed multipliers, index 0 for level 1.
    """
    base_ms = tier_config['cycle_duration'] * 1000
    if automation_level <= 0 or not speed_table:
        return base_ms
    index = min(automation_level, len(speed_table)) - 1
    return base_ms / speed_table[index]


def unlock_cost(tier_config, tier_index, unlock_multiplier=5):
    """Cash needed to unlock a tier. The first tier of a division is free."""
    if tier_index == 0:
        return 0
    return tier_config['base_cost'] * unlock_multiplier


def level_cost(tier_config, level, level_rules):
    """Cost to raise a tier's revenue level from `level` to `level + 1`."""
    base = tier_config['base_cost'] * level_rules.get('base_cost_multiplier', 10)
    return base * level_rules.get('cost_growth', 2.5) ** level

"""Forge pricing."""

import math
from decimal import Decimal
from enum import Enum, auto
from typing import Collection

from core.catalog import ENCRYPTION_ERROR, PRIORITY_ACCESS
from core.rules import DEFAULT_RULES, HouseRules


def _scaled(cost: int, multiplier: float) -> int:
    return math.floor(Decimal(cost) * Decimal(str(multiplier)))


class PurchaseKind(Enum):
    """What is being bought; inflation only hits upgrades."""

    UPGRADE = auto()
    CONSUMABLE = auto()
    PASSIVE = auto()


def price(
    base_cost: int,
    kind: PurchaseKind,
    house_level: int,
    active_passives: Collection[str] = (),
    unlocked_hacks: Collection[str] = (),
    rules: HouseRules = DEFAULT_RULES,
) -> int:
    """
    Compute the essence price of a forge item.

    Modifiers apply in a fixed order and the running cost is floored
    after each one: inflation (upgrades only), encryption error, priority
    access.

    Args:
        base_cost: Catalog cost
        kind: Item category
        house_level: Current house level
        active_passives: Ids of active passives
        unlocked_hacks: Ids of unlocked meta hacks
        rules: House rules

    Returns:
        The integer price
    """
    cost = int(base_cost)
    if kind == PurchaseKind.UPGRADE and house_level >= rules.inflation_level:
        cost = _scaled(cost, rules.inflation_multiplier)
    if ENCRYPTION_ERROR in active_passives:
        cost = _scaled(cost, rules.encryption_multiplier)
    if PRIORITY_ACCESS in unlocked_hacks:
        cost = _scaled(cost, rules.priority_multiplier)
    return cost


def purge_cost(deck_size: int, rules: HouseRules = DEFAULT_RULES) -> int:
    """Purging gets dearer as the deck shrinks below 52 cards."""
    return rules.purge_base_cost + max(0, 52 - deck_size) * rules.purge_step_cost


def can_purge(deck_size: int, rules: HouseRules = DEFAULT_RULES) -> bool:
    """A deck at or below the minimum size cannot lose more cards."""
    return deck_size > rules.purge_min_deck

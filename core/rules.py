"""House rules for a run."""

from dataclasses import dataclass


@dataclass(frozen=True)
class HouseRules:
    """
    Numeric rules of the run engine.

    Everything that tunes the economy or the house's difficulty curve.
    """

    # Starting resources
    initial_credits: int = 100
    initial_essence: int = 0
    corruption_threshold_base: int = 8

    # Betting; credits below min_bet after a payout end the run
    min_bet: int = 10

    # Dealer
    soft_dealer_max_level: int = 3  # Dealer stands on 16 up to this level
    soft_dealer_stand: int = 16
    dealer_stand: int = 17
    boss_interval: int = 5
    hidden_dealer_level: int = 6  # Both dealer cards stay face down from here

    # Payouts
    blackjack_payout: float = 1.5
    blackjack_essence: int = 25
    win_essence: int = 10
    double_down_essence: int = 5
    shield_refund: float = 0.5
    vip_bonus: float = 0.1

    # Ties
    tie_favors_player_max_level: int = 2
    house_wins_ties_level: int = 7

    # Progression
    threshold_step: int = 2
    upgrade_offer_count: int = 3
    curse_min_level: int = 5  # Curses arrive on even levels above this

    # Card effects
    essence_per_card: int = 1
    essence_tax_level: int = 3

    # Forge
    inventory_capacity: int = 3
    inflation_level: int = 4
    inflation_multiplier: float = 1.5
    encryption_multiplier: float = 1.2
    priority_multiplier: float = 0.9
    purge_base_cost: int = 75
    purge_step_cost: int = 10
    purge_min_deck: int = 5
    coolant_reduction: int = 2

    # Boons
    auto_miner_essence: int = 1
    backup_battery_essence: int = 5

    # Meta
    fragments_per_level: int = 5
    essence_per_fragment: int = 10

    def __post_init__(self) -> None:
        """Validate rule combinations."""
        if self.min_bet < 1:
            raise ValueError("min_bet must be at least 1")
        if self.corruption_threshold_base < 1:
            raise ValueError("corruption_threshold_base must be at least 1")
        if self.threshold_step < 0:
            raise ValueError("threshold_step must not be negative")
        if self.inventory_capacity < 1:
            raise ValueError("inventory_capacity must be at least 1")
        if self.boss_interval < 1:
            raise ValueError("boss_interval must be at least 1")
        if self.purge_min_deck < 1:
            raise ValueError("purge_min_deck must be at least 1")

    def dealer_stand_threshold(self, house_level: int) -> int:
        """Dealer stands at or above this score."""
        if house_level <= self.soft_dealer_max_level:
            return self.soft_dealer_stand
        return self.dealer_stand

    def is_boss_level(self, house_level: int) -> bool:
        """Boss rounds happen on multiples of the boss interval."""
        return house_level > 0 and house_level % self.boss_interval == 0

    @classmethod
    def casual(cls) -> "HouseRules":
        """Gentler economy for a first run."""
        return cls(initial_credits=200, corruption_threshold_base=10)


DEFAULT_RULES = HouseRules()

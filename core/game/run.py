"""Run state and cross-run meta state."""

from dataclasses import dataclass, field
from decimal import Decimal
from random import Random

from core.cards import Card, create_deck, shuffle
from core.catalog import CONSUMABLES, META_UPGRADES, STARTING_UPGRADE_IDS, Consumable, Passive
from core.game.state import Phase
from core.hand import Hand
from core.rules import DEFAULT_RULES, HouseRules


class DeckIntegrityError(RuntimeError):
    """The master deck no longer matches the cards in piles and hand."""


@dataclass
class GlobalState:
    """Meta progression that survives across runs."""

    fragments: int = 0
    unlocked_hacks: list[str] = field(default_factory=list)
    total_runs: int = 0

    def has_hack(self, hack_id: str) -> bool:
        """Check if a permanent hack is unlocked."""
        return hack_id in self.unlocked_hacks


@dataclass
class RunState:
    """Everything about the run in progress."""

    credits: Decimal = Decimal("0")
    essence: int = 0

    # Deck management; the same Card objects are shared between the
    # master deck and whichever pile or hand currently holds them
    master_deck: list[Card] = field(default_factory=list)
    draw_pile: list[Card] = field(default_factory=list)
    discard_pile: list[Card] = field(default_factory=list)

    # Inventory and passives
    inventory: list[Consumable] = field(default_factory=list)
    active_passives: list[Passive] = field(default_factory=list)

    # Unlocks
    unlocked_upgrades: list[str] = field(default_factory=lambda: list(STARTING_UPGRADE_IDS))
    offered_upgrade_ids: list[str] = field(default_factory=list)

    # Current round
    player_hand: Hand = field(default_factory=Hand)
    dealer_hand: Hand = field(default_factory=Hand)
    current_bet: int = 0
    dealer_card_revealed: bool = False

    # Progression
    house_level: int = 1
    corruption_tokens: int = 0
    corruption_threshold: int = DEFAULT_RULES.corruption_threshold_base

    phase: Phase = Phase.BETTING
    message: str = ""

    def has_passive(self, passive_id: str) -> bool:
        """Check if a passive is active."""
        return any(p.id == passive_id for p in self.active_passives)

    @property
    def passive_ids(self) -> list[str]:
        return [p.id for p in self.active_passives]

    def find_card(self, card_id: str) -> Card | None:
        """Look up a card of the master deck by id."""
        for card in self.master_deck:
            if card.id == card_id:
                return card
        return None

    def discard_hands(self) -> None:
        """Clear both hands; player cards return to the discard pile."""
        self.discard_pile.extend(self.player_hand.clear())
        self.dealer_hand.clear()

    def verify_deck_integrity(self) -> None:
        """
        Check that the master deck is exactly the cards held elsewhere.

        Raises:
            DeckIntegrityError: on a lost, duplicated or foreign card
        """
        held = [*self.draw_pile, *self.discard_pile, *self.player_hand.cards]
        held_ids = [card.id for card in held]
        if len(held_ids) != len(set(held_ids)):
            raise DeckIntegrityError("A card is held in more than one place")
        master_ids = {card.id for card in self.master_deck}
        if len(master_ids) != len(self.master_deck) or master_ids != set(held_ids):
            raise DeckIntegrityError(
                f"Master deck has {len(self.master_deck)} cards, piles and hand hold {len(held_ids)}"
            )


def new_run(
    meta: GlobalState,
    rng: Random,
    rules: HouseRules = DEFAULT_RULES,
) -> RunState:
    """
    Build the opening state of a run.

    Unlocked meta hacks add their one-time bonuses to the starting
    resources.
    """
    credits = rules.initial_credits
    essence = rules.initial_essence
    threshold = rules.corruption_threshold_base
    inventory: list[Consumable] = []

    for hack_id in meta.unlocked_hacks:
        hack = META_UPGRADES.get(hack_id)
        if hack is None:
            continue
        credits += hack.bonus_credits
        essence += hack.bonus_essence
        threshold += hack.bonus_threshold
        if hack.bonus_consumable is not None and len(inventory) < rules.inventory_capacity:
            inventory.append(CONSUMABLES[hack.bonus_consumable])

    master_deck = shuffle(create_deck(), rng)

    return RunState(
        credits=Decimal(credits),
        essence=essence,
        master_deck=master_deck,
        draw_pile=shuffle(master_deck, rng),
        inventory=inventory,
        corruption_threshold=threshold,
        phase=Phase.BETTING,
        message="System initialized. Place your bet.",
    )

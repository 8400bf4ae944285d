"""Per-card effects applied when a player card is dealt or drawn."""

from dataclasses import dataclass

from core.cards import Card
from core.catalog import EffectKind
from core.rules import DEFAULT_RULES, HouseRules


@dataclass(frozen=True)
class CardEffects:
    """Net resource change caused by one card."""

    essence_delta: int = 0
    credit_delta: int = 0
    corruption_delta: int = 0

    def __add__(self, other: "CardEffects") -> "CardEffects":
        return CardEffects(
            essence_delta=self.essence_delta + other.essence_delta,
            credit_delta=self.credit_delta + other.credit_delta,
            corruption_delta=self.corruption_delta + other.corruption_delta,
        )


def apply_card_effects(
    card: Card,
    house_level: int,
    rules: HouseRules = DEFAULT_RULES,
) -> CardEffects:
    """
    Fold a card's upgrades into a resource delta.

    Every card yields the base essence unless the essence tax level is
    active. Pure: the card and the run are not touched.

    Args:
        card: The card that was just dealt or drawn
        house_level: Current house level
        rules: House rules

    Returns:
        The combined essence, credit and corruption deltas
    """
    essence = 0 if house_level == rules.essence_tax_level else rules.essence_per_card
    credits = 0
    corruption = 0

    for upgrade in card.upgrades:
        for effect in upgrade.effects:
            if effect.kind == EffectKind.BONUS_ESSENCE:
                essence += int(effect.value)
            elif effect.kind == EffectKind.BONUS_CREDITS:
                credits += int(effect.value)
            elif effect.kind == EffectKind.REDUCE_CORRUPTION:
                corruption -= int(effect.value)
            elif effect.kind == EffectKind.RISK_CORRUPTION:
                credits += int(effect.value)
                corruption += 1

    return CardEffects(
        essence_delta=essence,
        credit_delta=credits,
        corruption_delta=corruption,
    )

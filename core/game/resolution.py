"""Round adjudication and payouts."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from random import Random
from typing import Collection

from core.catalog import VIP_PROTOCOL, EffectKind
from core.hand import Hand
from core.rules import DEFAULT_RULES, HouseRules


class RoundOutcome(Enum):
    """How a round ended for the player."""

    BLACKJACK = "blackjack"
    DEALER_BUST = "dealer_bust"
    WIN = "win"
    TIE_YIELD = "tie_yield"  # Low-level tie paid as a win
    PUSH = "push"
    HOUSE_TIE = "house_tie"  # Tie taken by the house
    DEALER_BLACKJACK = "dealer_blackjack"
    LOSS = "loss"
    BUST = "bust"
    MITIGATED = "mitigated"  # Bust with a shield refund; still a loss

    @property
    def is_win(self) -> bool:
        return self in (
            RoundOutcome.BLACKJACK,
            RoundOutcome.DEALER_BUST,
            RoundOutcome.WIN,
            RoundOutcome.TIE_YIELD,
        )

    @property
    def is_push(self) -> bool:
        return self == RoundOutcome.PUSH


@dataclass(frozen=True)
class RoundResult:
    """Everything the engine needs to settle a round."""

    outcome: RoundOutcome
    payout: Decimal
    essence_bonus: int
    extra_credits: int
    extra_essence: int
    multiplier: Decimal
    player_score: int
    dealer_score: int
    message: str

    @property
    def is_win(self) -> bool:
        return self.outcome.is_win

    @property
    def total_credits(self) -> Decimal:
        """Credits returned to the player, hooks included."""
        return self.payout + self.extra_credits

    @property
    def total_essence(self) -> int:
        return self.essence_bonus + self.extra_essence


def _roll_shields(hand: Hand, rng: Random) -> bool:
    """Roll every shield instance; any success mitigates the bust."""
    triggered = False
    for card in hand:
        for upgrade in card.upgrades:
            for chance in upgrade.values_of(EffectKind.SHIELD):
                if rng.random() < chance:
                    triggered = True
    return triggered


def _hook_totals(hand: Hand, busted: bool, player_score: int) -> tuple[int, int]:
    extra_essence = 0
    extra_credits = 0
    for card in hand:
        for upgrade in card.upgrades:
            if busted:
                extra_essence += int(sum(upgrade.values_of(EffectKind.ON_BUST_ESSENCE)))
            if player_score == 21:
                extra_credits += int(sum(upgrade.values_of(EffectKind.ON_21_CREDITS)))
    return extra_essence, extra_credits


def payout_multiplier(
    hand: Hand,
    active_passives: Collection[str] = (),
    rules: HouseRules = DEFAULT_RULES,
) -> Decimal:
    """Profit multiplier from critical upgrades and the VIP boon."""
    multiplier = Decimal(1)
    for card in hand:
        for upgrade in card.upgrades:
            for value in upgrade.values_of(EffectKind.CRITICAL):
                multiplier += Decimal(str(value))
    if VIP_PROTOCOL in active_passives:
        multiplier += Decimal(str(rules.vip_bonus))
    return multiplier


def resolve_round(
    player_hand: Hand,
    dealer_hand: Hand,
    bet: int,
    busted: bool,
    *,
    house_level: int,
    rng: Random,
    active_passives: Collection[str] = (),
    rules: HouseRules = DEFAULT_RULES,
) -> RoundResult:
    """
    Adjudicate a finished round.

    Outcomes are checked in precedence order: player bust (shields may
    refund part of the bet), dealer bust, player natural, dealer natural,
    higher score, tie rules by house level, otherwise a loss. Only the
    profit of a regular win is scaled by the payout multiplier; the
    low-level tie win pays double the bet flat.

    Args:
        player_hand: Player's final hand
        dealer_hand: Dealer's final hand
        bet: Amount at stake (already deducted from credits)
        busted: Whether the player went over 21
        house_level: Current house level
        rng: Random source for shield rolls
        active_passives: Ids of active passives
        rules: House rules

    Returns:
        The settled result; the hands are not modified
    """
    player_score = player_hand.value
    dealer_score = dealer_hand.value
    stake = Decimal(bet)
    is_boss = rules.is_boss_level(house_level)

    extra_essence, extra_credits = _hook_totals(player_hand, busted, player_score)

    essence_bonus = 0
    payout = Decimal(0)
    apply_multiplier = False

    if busted:
        if _roll_shields(player_hand, rng):
            outcome = RoundOutcome.MITIGATED
            payout = stake * Decimal(str(rules.shield_refund))
            message = "FAILURE MITIGATED [SHIELD]."
        else:
            outcome = RoundOutcome.BUST
            message = "Busted! House wins."
    elif dealer_score > 21:
        outcome = RoundOutcome.DEALER_BUST
        payout = stake * 2
        apply_multiplier = True
        message = "Dealer busts! You win!"
    elif player_hand.is_blackjack:
        if dealer_hand.is_blackjack:
            outcome = RoundOutcome.PUSH
            payout = stake
            message = "Push."
        else:
            outcome = RoundOutcome.BLACKJACK
            payout = stake + stake * Decimal(str(rules.blackjack_payout))
            essence_bonus += rules.blackjack_essence
            apply_multiplier = True
            message = "Blackjack! (3:2 Payout)"
    elif dealer_hand.is_blackjack:
        outcome = RoundOutcome.DEALER_BLACKJACK
        message = "Dealer has Blackjack. House wins."
    elif player_score > dealer_score:
        outcome = RoundOutcome.WIN
        payout = stake * 2
        essence_bonus += rules.win_essence
        apply_multiplier = True
        message = "You win!"
    elif player_score == dealer_score:
        if house_level >= rules.house_wins_ties_level or is_boss:
            outcome = RoundOutcome.HOUSE_TIE
            message = "Boss wins Ties." if is_boss else "Tie! House wins due to corruption."
        elif house_level <= rules.tie_favors_player_max_level:
            outcome = RoundOutcome.TIE_YIELD
            payout = stake * 2
            message = "Tie! System yields to user."
        else:
            outcome = RoundOutcome.PUSH
            payout = stake
            message = "Push."
    else:
        outcome = RoundOutcome.LOSS
        message = "House wins."

    multiplier = Decimal(1)
    if apply_multiplier:
        multiplier = payout_multiplier(player_hand, active_passives, rules)
        payout = stake + (payout - stake) * multiplier

    return RoundResult(
        outcome=outcome,
        payout=payout,
        essence_bonus=essence_bonus,
        extra_credits=extra_credits,
        extra_essence=extra_essence,
        multiplier=multiplier,
        player_score=player_score,
        dealer_score=dealer_score,
        message=message,
    )

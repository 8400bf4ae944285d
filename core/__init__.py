"""Void Blackjack run engine - 100% UI-agnostic."""

from core.cards import Card, Deck, DeckExhaustedError, Rank, Suit
from core.hand import Hand, score
from core.rules import DEFAULT_RULES, HouseRules

__all__ = [
    "Card",
    "Deck",
    "DeckExhaustedError",
    "Rank",
    "Suit",
    "Hand",
    "score",
    "HouseRules",
    "DEFAULT_RULES",
]

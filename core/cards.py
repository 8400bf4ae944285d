"""Cards, piles and the throwaway dealer deck.

Player cards carry identity and upgrades for the whole run, so they are
mutable and compared by id. Pile helpers take an injected ``Random`` so
shuffles are reproducible under test.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from random import Random
from typing import TYPE_CHECKING, Iterator
from uuid import uuid4

if TYPE_CHECKING:
    from core.catalog import Upgrade


class DeckExhaustedError(RuntimeError):
    """Raised when a draw is attempted with both piles empty."""


class Suit(Enum):
    """Card suits."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"

    def __str__(self) -> str:
        symbols = {
            Suit.CLUBS: "♣",
            Suit.DIAMONDS: "♦",
            Suit.HEARTS: "♥",
            Suit.SPADES: "♠",
        }
        return symbols[self]


class Rank(Enum):
    """Card ranks with blackjack values."""

    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14

    def __str__(self) -> str:
        if self.value <= 10:
            return str(self.value)
        return {
            Rank.JACK: "J",
            Rank.QUEEN: "Q",
            Rank.KING: "K",
            Rank.ACE: "A",
        }[self]

    @property
    def blackjack_value(self) -> int:
        """Return the blackjack point value (Ace = 11, face cards = 10)."""
        if self.value <= 10:
            return self.value
        if self == Rank.ACE:
            return 11
        return 10  # Face cards

    @property
    def is_ace(self) -> bool:
        """Check if this rank is an Ace."""
        return self == Rank.ACE

    @classmethod
    def from_symbol(cls, symbol: str) -> "Rank":
        """Parse '2'..'10', 'T', 'J', 'Q', 'K' or 'A'."""
        symbol = symbol.strip().upper()
        if symbol == "T":
            symbol = "10"
        for rank in cls:
            if str(rank) == symbol:
                return rank
        raise ValueError(f"Invalid rank: {symbol}")


def _new_card_id(rank: Rank, suit: Suit) -> str:
    return f"{rank}-{suit.value}-{uuid4().hex[:9]}"


@dataclass(eq=False)
class Card:
    """A playing card with a stable identity and its attached upgrades."""

    rank: Rank
    suit: Suit
    id: str = ""
    upgrades: list[Upgrade] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.id:
            self.id = _new_card_id(self.rank, self.suit)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Card):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __str__(self) -> str:
        return f"{self.rank}{self.suit}"

    def __repr__(self) -> str:
        return f"Card({self.rank.name}, {self.suit.name}, id={self.id!r})"

    @property
    def value(self) -> int:
        """Return the blackjack point value."""
        return self.rank.blackjack_value

    @property
    def is_ace(self) -> bool:
        """Check if this card is an Ace."""
        return self.rank.is_ace

    @property
    def is_ten_value(self) -> bool:
        """Check if this card has a value of 10."""
        return self.value == 10

    def attach(self, upgrade: Upgrade) -> None:
        """Append an upgrade. The same upgrade may be attached more than once."""
        self.upgrades.append(upgrade)

    @classmethod
    def from_string(cls, s: str) -> "Card":
        """Create a fresh card from a string like '2♣', 'AS', 'Kh'."""
        s = s.strip().upper()
        if len(s) < 2:
            raise ValueError(f"Invalid card string: {s}")

        suit_map = {
            "C": Suit.CLUBS,
            "♣": Suit.CLUBS,
            "D": Suit.DIAMONDS,
            "♦": Suit.DIAMONDS,
            "H": Suit.HEARTS,
            "♥": Suit.HEARTS,
            "S": Suit.SPADES,
            "♠": Suit.SPADES,
        }

        suit_str = s[-1]
        if suit_str not in suit_map:
            raise ValueError(f"Invalid suit: {suit_str}")

        return cls(Rank.from_symbol(s[:-1]), suit_map[suit_str])


def create_deck() -> list[Card]:
    """Build the 52 cards of a standard deck, each with a fresh identity."""
    return [Card(rank, suit) for suit in Suit for rank in Rank]


def shuffle(pile: list[Card], rng: Random) -> list[Card]:
    """Return a new list with the same cards in uniformly random order."""
    shuffled = list(pile)
    rng.shuffle(shuffled)
    return shuffled


def recycle(draw_pile: list[Card], discard_pile: list[Card], rng: Random) -> bool:
    """
    Refill an empty draw pile from the shuffled discard pile, in place.

    Returns:
        True if the discard pile was recycled
    """
    if draw_pile or not discard_pile:
        return False
    draw_pile[:] = shuffle(discard_pile, rng)
    discard_pile.clear()
    return True


def draw(draw_pile: list[Card], discard_pile: list[Card], rng: Random) -> Card:
    """
    Remove and return the next card (the tail of the draw pile).

    An empty draw pile is refilled from the discard pile first. Both piles
    are mutated in place.

    Raises:
        DeckExhaustedError: if both piles are empty
    """
    recycle(draw_pile, discard_pile, rng)
    if not draw_pile:
        raise DeckExhaustedError("Cannot draw: draw and discard piles are empty")
    return draw_pile.pop()


def move_high_value_card_to_top(pile: list[Card]) -> list[Card]:
    """Return a copy of the pile with its first 10-value card moved to the draw position."""
    moved = list(pile)
    for index, card in enumerate(moved):
        if card.is_ten_value:
            moved.append(moved.pop(index))
            break
    return moved


class Deck:
    """A fresh standard 52-card deck, used for the dealer's throwaway draws."""

    def __init__(self, rng: Random | None = None) -> None:
        """Initialize a new deck."""
        self._rng = rng or Random()
        self._cards: list[Card] = []
        self.reset()

    def reset(self) -> None:
        """Reset deck to all 52 cards in order."""
        self._cards = create_deck()

    def shuffle(self) -> None:
        """Shuffle the deck."""
        self._rng.shuffle(self._cards)

    def move_rank_to_top(self, rank: Rank) -> bool:
        """Move the first card of the given rank to the draw position."""
        for index, card in enumerate(self._cards):
            if card.rank == rank:
                self._cards.append(self._cards.pop(index))
                return True
        return False

    def draw(self) -> Card:
        """Draw a card from the top of the deck."""
        if not self._cards:
            raise DeckExhaustedError("Cannot draw from empty deck")
        return self._cards.pop()

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(self._cards)

    @property
    def cards_remaining(self) -> int:
        """Return the number of cards remaining."""
        return len(self._cards)

    @classmethod
    def shuffled(cls, rng: Random | None = None) -> "Deck":
        """Create a freshly shuffled deck."""
        deck = cls(rng=rng)
        deck.shuffle()
        return deck

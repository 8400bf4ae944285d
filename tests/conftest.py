"""Pytest fixtures for Void Blackjack tests."""

from decimal import Decimal
from random import Random

import pytest

from core.cards import Card, Deck
from core.catalog import UPGRADES
from core.game import GlobalState, Phase, RunState, VoidBlackjackGame, new_run
from core.hand import Hand
from core.rules import HouseRules


def pinned_random(value: float, seed: int = 0) -> Random:
    """Seeded Random whose ``random()`` always returns ``value``."""
    rng = Random(seed)
    rng.random = lambda: value  # type: ignore[method-assign]
    return rng


def make_hand(*cards: str) -> Hand:
    """Build a hand from card strings like 'AS', '10H', 'Kc'."""
    hand = Hand()
    for s in cards:
        hand.add_card(Card.from_string(s))
    return hand


def stack_draw_pile(run: RunState, *cards: str) -> list[Card]:
    """
    Put specific cards on top of the draw pile, first card drawn first.

    Matching cards are taken from the run's own deck so identities and
    upgrades stay intact.
    """
    chosen: list[Card] = []
    for s in cards:
        template = Card.from_string(s)
        card = next(
            c for c in run.draw_pile
            if c.rank == template.rank and c.suit == template.suit and c not in chosen
        )
        chosen.append(card)
    rest = [c for c in run.draw_pile if c not in chosen]
    run.draw_pile = rest + list(reversed(chosen))
    return chosen


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return Random(42)


@pytest.fixture
def deck(rng):
    """A shuffled dealer deck."""
    return Deck.shuffled(rng=rng)


@pytest.fixture
def empty_hand():
    """An empty player hand."""
    return Hand()


@pytest.fixture
def blackjack_hand():
    """A natural blackjack hand."""
    return make_hand("AS", "KH")


@pytest.fixture
def twenty_hand():
    """A hard 20 (K-Q)."""
    return make_hand("KS", "QH")


@pytest.fixture
def bust_hand():
    """A busted hand."""
    return make_hand("10S", "6H", "KC")


@pytest.fixture
def rules():
    """Default house rules."""
    return HouseRules()


@pytest.fixture
def meta():
    """Fresh meta state."""
    return GlobalState()


@pytest.fixture
def run(meta, rng):
    """A freshly started run."""
    return new_run(meta, rng)


@pytest.fixture
def game(rng):
    """An engine with a run in the betting phase."""
    g = VoidBlackjackGame(rng=rng)
    g.start_run()
    return g


@pytest.fixture
def forge_game(game):
    """An engine in the forge with plenty of essence."""
    game.run.essence = 1000
    game.enter_forge()
    assert game.state == Phase.FORGE
    return game


@pytest.fixture
def rich_game(game):
    """An engine in the betting phase with plenty of credits."""
    game.run.credits = Decimal(1000)
    return game


@pytest.fixture
def lucky_charm():
    return UPGRADES["lucky_charm"]


@pytest.fixture
def hand_of():
    """Factory building a hand from card strings."""
    return make_hand


@pytest.fixture
def stack():
    """Factory putting chosen cards on top of a run's draw pile."""
    return stack_draw_pile


@pytest.fixture
def fixed_random():
    """Factory for a Random whose random() is pinned."""
    return pinned_random


"""Run phase enumeration."""

from enum import Enum


class Phase(Enum):
    """
    Run state machine phases.

    Flow: BETTING → PLAYING → DEALER_TURN → ROUND_OVER → BETTING, with
    PLAYING → ROUND_OVER on a bust, ROUND_OVER ⇄ UPGRADE_SELECTION on a
    level-up, FORGE between hands and GAME_OVER when credits run out.
    """

    # Waiting for a bet
    BETTING = "betting"

    # Player decisions
    PLAYING = "playing"

    # Dealer draws one card per step
    DEALER_TURN = "dealer_turn"

    # Round resolved, hands still on the table
    ROUND_OVER = "round_over"

    # Level-up reward pending
    UPGRADE_SELECTION = "upgrade_selection"

    # Shop between hands
    FORGE = "forge"

    # Credits below the minimum bet
    GAME_OVER = "game_over"

    def __str__(self) -> str:
        return self.name.replace("_", " ").title()


# Valid phase transitions
VALID_TRANSITIONS: dict[Phase, list[Phase]] = {
    Phase.BETTING: [Phase.PLAYING, Phase.DEALER_TURN, Phase.FORGE],  # DEALER_TURN on a natural
    Phase.PLAYING: [Phase.DEALER_TURN, Phase.ROUND_OVER],
    Phase.DEALER_TURN: [Phase.ROUND_OVER],
    Phase.ROUND_OVER: [Phase.BETTING, Phase.UPGRADE_SELECTION, Phase.FORGE, Phase.GAME_OVER],
    Phase.UPGRADE_SELECTION: [Phase.ROUND_OVER, Phase.GAME_OVER],
    Phase.FORGE: [Phase.BETTING],
    Phase.GAME_OVER: [],  # Terminal state
}


def is_valid_transition(from_phase: Phase, to_phase: Phase) -> bool:
    """
    Check if a phase transition is valid.

    Args:
        from_phase: Current phase
        to_phase: Desired phase

    Returns:
        True if the transition is allowed
    """
    return to_phase in VALID_TRANSITIONS.get(from_phase, [])


# Phases in which a round is live and the dealer's hole card stays hidden
LIVE_ROUND_PHASES = frozenset({Phase.PLAYING, Phase.DEALER_TURN})

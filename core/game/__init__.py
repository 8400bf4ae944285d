"""Run engine, phases and state management."""

from core.game.events import EventEmitter, EventType, GameEvent
from core.game.state import Phase
from core.game.run import GlobalState, RunState, new_run
from core.game.engine import VoidBlackjackGame

__all__ = [
    "EventEmitter",
    "EventType",
    "GameEvent",
    "Phase",
    "GlobalState",
    "RunState",
    "new_run",
    "VoidBlackjackGame",
]

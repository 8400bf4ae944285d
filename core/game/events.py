"""Game events for the event system."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Callable


class EventType(Enum):
    """Types of game events."""

    # Run flow events
    RUN_STARTED = auto()
    RUN_ABANDONED = auto()
    GAME_ENDED = auto()
    ROUND_STARTED = auto()
    ROUND_ENDED = auto()

    # Betting events
    BET_PLACED = auto()

    # Card events
    CARD_DEALT = auto()
    PILE_RECYCLED = auto()

    # Player action events
    PLAYER_HIT = auto()
    PLAYER_STAND = auto()
    PLAYER_DOUBLE = auto()

    # Dealer events
    DEALER_HITS = auto()
    DEALER_STANDS = auto()
    DEALER_BUSTS = auto()

    # Outcome events
    PLAYER_BLACKJACK = auto()
    PLAYER_BUSTS = auto()
    SHIELD_TRIGGERED = auto()
    PLAYER_WINS = auto()
    PLAYER_LOSES = auto()
    PUSH = auto()

    # Progression events
    LEVEL_UP = auto()
    UPGRADES_OFFERED = auto()
    UPGRADE_UNLOCKED = auto()
    CURSE_GRANTED = auto()
    FRAGMENTS_AWARDED = auto()

    # Item and forge events
    CONSUMABLE_USED = auto()
    FORGE_ENTERED = auto()
    FORGE_LEFT = auto()
    UPGRADE_PURCHASED = auto()
    CONSUMABLE_PURCHASED = auto()
    PASSIVE_PURCHASED = auto()
    CARD_PURGED = auto()
    META_UPGRADE_PURCHASED = auto()

    # Error events
    INVALID_ACTION = auto()
    INSUFFICIENT_FUNDS = auto()
    CAPACITY_EXCEEDED = auto()


@dataclass(frozen=True)
class GameEvent:
    """
    Immutable game event.

    Events are the primary communication mechanism between the core engine
    and the presentation layer.
    """

    event_type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"{self.event_type.name}: {self.data}"


EventHandler = Callable[[GameEvent], None]


class EventEmitter:
    """
    Synchronous event fan-out with a bounded history.

    Handlers subscribe to one event type, or to everything with
    ``event_type=None``. Handlers run in subscription order, type-specific
    ones first.
    """

    def __init__(self, max_history: int = 500) -> None:
        self._handlers: dict[EventType | None, list[EventHandler]] = {}
        self._history: deque[GameEvent] = deque(maxlen=max_history)

    def subscribe(
        self,
        handler: EventHandler,
        event_type: EventType | None = None,
    ) -> None:
        """Register a handler for one event type, or all events."""
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(
        self,
        handler: EventHandler,
        event_type: EventType | None = None,
    ) -> bool:
        """
        Remove a handler.

        Returns:
            True if the handler was registered
        """
        handlers = self._handlers.get(event_type, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def emit(self, event_type: EventType, **data: Any) -> GameEvent:
        """
        Create an event, record it and deliver it.

        Args:
            event_type: Type of event
            **data: Event payload

        Returns:
            The emitted event
        """
        event = GameEvent(event_type=event_type, data=data)
        self._history.append(event)

        for handler in self._handlers.get(event_type, []):
            handler(event)
        for handler in self._handlers.get(None, []):
            handler(event)

        return event

    @property
    def history(self) -> list[GameEvent]:
        """Return the recorded events, oldest first."""
        return list(self._history)

    def of_type(self, event_type: EventType) -> list[GameEvent]:
        """Return recorded events of one type."""
        return [e for e in self._history if e.event_type == event_type]

    def clear_history(self) -> None:
        """Forget recorded events."""
        self._history.clear()

"""WebSocket connection management with run engine integration.

The dealer plays one step at a time with a configurable delay between
steps, so clients can animate each draw.
"""

import asyncio
import json
import logging
from typing import Any, Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.routes.run import game_state_response, get_game, rejection_message, save_game
from config import config
from core.game import Phase, VoidBlackjackGame
from core.game.events import GameEvent

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    """Manage WebSocket connections and forward engine events."""

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}
        self._event_queues: dict[str, asyncio.Queue[GameEvent]] = {}
        self._handlers: dict[str, tuple[VoidBlackjackGame, Callable[[GameEvent], None]]] = {}

    async def connect(self, websocket: WebSocket, session_id: str) -> VoidBlackjackGame:
        """Accept a connection and subscribe to its game's events."""
        await websocket.accept()
        self._connections[session_id] = websocket
        queue: asyncio.Queue[GameEvent] = asyncio.Queue()
        self._event_queues[session_id] = queue

        game = await get_game(session_id)
        handler = queue.put_nowait
        game.subscribe(handler)
        self._handlers[session_id] = (game, handler)
        return game

    def disconnect(self, session_id: str) -> None:
        """Remove a connection. The game stays cached for reconnection."""
        self._connections.pop(session_id, None)
        self._event_queues.pop(session_id, None)
        subscription = self._handlers.pop(session_id, None)
        if subscription is not None:
            game, handler = subscription
            game.events.unsubscribe(handler)

    async def get_event(self, session_id: str) -> GameEvent | None:
        """Get the next event from the queue."""
        queue = self._event_queues.get(session_id)
        if queue is None:
            return None
        try:
            return await asyncio.wait_for(queue.get(), timeout=0.1)
        except asyncio.TimeoutError:
            return None

    async def send_message(self, session_id: str, message: dict[str, Any]) -> None:
        """Send a message to a specific session."""
        websocket = self._connections.get(session_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug("Dropping message for closed session %s: %s", session_id, e)

    @property
    def active_connections(self) -> int:
        """Return number of active connections."""
        return len(self._connections)


# Global connection manager
manager = ConnectionManager()


def _state_message(game: VoidBlackjackGame) -> dict[str, Any]:
    return {"type": "state_update", "state": game_state_response(game).model_dump(mode="json")}


def _event_to_message(event: GameEvent) -> dict[str, Any]:
    """Convert a game event to a WebSocket message."""
    return {
        "type": "event",
        "event_type": event.event_type.name,
        "data": event.data,
    }


def _resolve_action(game: VoidBlackjackGame, message: dict[str, Any]) -> Callable[[], bool] | None:
    """Map a client message to an engine action."""
    msg_type = message.get("type")
    player_actions = {
        "hit": game.hit,
        "stand": game.stand,
        "double": game.double_down,
    }

    if msg_type == "action":
        return player_actions.get(message.get("action", ""))
    if msg_type == "bet":
        return lambda: game.place_bet(int(message.get("amount", config.game.default_bet)))
    if msg_type == "use_consumable":
        return lambda: game.use_consumable(int(message.get("index", -1)))
    if msg_type == "select_upgrade":
        return lambda: game.select_upgrade(str(message.get("upgrade_id", "")))
    if msg_type == "buy_upgrade":
        return lambda: game.buy_upgrade(str(message.get("upgrade_id", "")), str(message.get("card_id", "")))
    if msg_type == "buy_consumable":
        return lambda: game.buy_consumable(str(message.get("item_id", "")))
    if msg_type == "buy_passive":
        return lambda: game.buy_passive(str(message.get("item_id", "")))
    if msg_type == "purge_card":
        return lambda: game.purge_card(str(message.get("card_id", "")))
    if msg_type == "buy_hack":
        return lambda: game.buy_meta_upgrade(str(message.get("hack_id", "")))

    simple = {
        "start_run": game.start_run,
        "abandon_run": game.abandon_run,
        "next_hand": game.next_hand,
        "enter_forge": game.enter_forge,
        "leave_forge": game.leave_forge,
    }
    return simple.get(str(msg_type))


async def _pace_dealer(session_id: str, game: VoidBlackjackGame) -> None:
    """Step the dealer with a delay, pushing state after every step."""
    delay = config.game.dealer_step_delay_ms / 1000
    while game.run is not None and game.state == Phase.DEALER_TURN:
        await asyncio.sleep(delay)
        game.dealer_step()
        await manager.send_message(session_id, _state_message(game))


@router.websocket("/run/{session_id}")
async def run_websocket(websocket: WebSocket, session_id: str) -> None:
    """
    WebSocket endpoint for real-time run updates.

    Messages from client:
    - {"type": "get_state"}
    - {"type": "start_run"} / {"type": "abandon_run"}
    - {"type": "bet", "amount": 10}
    - {"type": "action", "action": "hit"|"stand"|"double"}
    - {"type": "next_hand"} / {"type": "enter_forge"} / {"type": "leave_forge"}
    - {"type": "use_consumable", "index": 0}
    - {"type": "select_upgrade", "upgrade_id": "..."}
    - {"type": "buy_upgrade", "upgrade_id": "...", "card_id": "..."}
    - {"type": "buy_consumable" | "buy_passive", "item_id": "..."}
    - {"type": "purge_card", "card_id": "..."}
    - {"type": "buy_hack", "hack_id": "..."}

    Messages to client:
    - {"type": "state_update", "state": {...}}
    - {"type": "event", "event_type": "...", "data": {...}}
    - {"type": "error", "message": "..."}
    """
    game = await manager.connect(websocket, session_id)
    await manager.send_message(session_id, _state_message(game))

    async def process_events() -> None:
        """Forward game events to the client."""
        while True:
            event = await manager.get_event(session_id)
            if event is not None:
                await manager.send_message(session_id, _event_to_message(event))

    event_task = asyncio.create_task(process_events())

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await manager.send_message(session_id, {"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await manager.send_message(session_id, {"type": "error", "message": "Expected a JSON object"})
                continue

            if message.get("type") == "get_state":
                await manager.send_message(session_id, _state_message(game))
                continue

            action = _resolve_action(game, message)
            if action is None:
                await manager.send_message(session_id, {
                    "type": "error",
                    "message": f"Unknown message: {message.get('type')}",
                })
                continue

            try:
                accepted = action()
            except (TypeError, ValueError) as e:
                await manager.send_message(session_id, {"type": "error", "message": f"Bad message: {e}"})
                continue
            if not accepted:
                await manager.send_message(session_id, {
                    "type": "error",
                    "message": rejection_message(game),
                })
                continue

            await manager.send_message(session_id, _state_message(game))
            await _pace_dealer(session_id, game)
            await save_game(session_id, game)

    except WebSocketDisconnect:
        logger.debug("Session %s disconnected", session_id)
    finally:
        event_task.cancel()
        try:
            await event_task
        except asyncio.CancelledError:
            pass
        manager.disconnect(session_id)

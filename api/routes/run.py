"""Run API endpoints."""

import logging
from typing import Annotated, Callable

from fastapi import APIRouter, Header, HTTPException

from api.schemas import (
    ActionRequest,
    BetRequest,
    BuyItemRequest,
    BuyUpgradeRequest,
    CardResponse,
    DeckCardResponse,
    ForgeResponse,
    GameStateResponse,
    HandResponse,
    ItemResponse,
    MetaStateResponse,
    PurgeRequest,
    RunStateResponse,
    SelectUpgradeRequest,
    UseConsumableRequest,
)
from api.session import create_session, load_snapshots, save_snapshots
from config import config
from core.cards import Card
from core.catalog import CONSUMABLES, PASSIVES, debuff_for_level
from core.economy import can_purge
from core.game import Phase, VoidBlackjackGame
from core.game.events import EventType
from core.game.persistence import (
    SnapshotError,
    deserialize_global,
    deserialize_run,
    serialize_global,
    serialize_run,
)
from core.hand import Hand

logger = logging.getLogger(__name__)

router = APIRouter()

# In-memory game cache (for performance, backed by session store)
_games: dict[str, VoidBlackjackGame] = {}

SessionHeader = Annotated[str, Header(alias="X-Session-ID")]


def _new_game(meta=None, run=None) -> VoidBlackjackGame:
    return VoidBlackjackGame(meta=meta, run=run, rules=config.game.house_rules())


async def _load_game(session_id: str) -> VoidBlackjackGame | None:
    """Restore a game from the session store; corrupt snapshots degrade to defaults."""
    run_data, meta_data = await load_snapshots(session_id)
    if run_data is None and meta_data is None:
        return None

    meta = None
    if meta_data is not None:
        try:
            meta = deserialize_global(meta_data)
        except SnapshotError as e:
            logger.warning("Session %s: meta snapshot unreadable, using defaults: %s", session_id, e)

    run = None
    if run_data is not None:
        try:
            run = deserialize_run(run_data)
        except SnapshotError as e:
            logger.warning("Session %s: run snapshot unreadable, dropping run: %s", session_id, e)

    return _new_game(meta=meta, run=run)


async def save_game(session_id: str, game: VoidBlackjackGame) -> None:
    """Save the run and meta snapshots. Finished runs are not kept."""
    run_data = None
    if game.run is not None and game.state != Phase.GAME_OVER:
        run_data = serialize_run(game.run)
    await save_snapshots(session_id, run_data, serialize_global(game.meta))


async def get_game(session_id: str) -> VoidBlackjackGame:
    """Get or create the game for a session."""
    if session_id in _games:
        return _games[session_id]

    game = await _load_game(session_id)
    if game is None:
        game = _new_game()
        await save_game(session_id, game)
    _games[session_id] = game
    return game


def forget_game(session_id: str) -> None:
    """Drop a game from the cache."""
    _games.pop(session_id, None)


def rejection_message(game: VoidBlackjackGame) -> str:
    """Message of the most recent rejected action."""
    rejections = (EventType.INVALID_ACTION, EventType.INSUFFICIENT_FUNDS, EventType.CAPACITY_EXCEEDED)
    for event in reversed(game.events.history):
        if event.event_type in rejections:
            return str(event.data.get("message", "Action rejected"))
    return "Action rejected"


def card_response(card: Card | None) -> CardResponse:
    """Convert a card, or a hidden slot, to a response."""
    if card is None:
        return CardResponse(hidden=True)
    return CardResponse(
        id=card.id,
        rank=str(card.rank),
        suit=card.suit.value,
        value=card.value,
        upgrades=[u.id for u in card.upgrades],
    )


def _hand_response(hand: Hand) -> HandResponse:
    return HandResponse(
        cards=[card_response(c) for c in hand.cards],
        value=hand.value if hand.cards else None,
        is_soft=hand.is_soft,
        is_blackjack=hand.is_blackjack,
        is_busted=hand.is_busted,
    )


def _dealer_response(game: VoidBlackjackGame) -> HandResponse:
    cards = game.visible_dealer_cards()
    value = game.dealer_visible_score
    hand = game.run.dealer_hand if game.run is not None else Hand()
    return HandResponse(
        cards=[card_response(c) for c in cards],
        value=value,
        is_blackjack=value is not None and hand.is_blackjack,
        is_busted=value is not None and hand.is_busted,
    )


def run_state_response(game: VoidBlackjackGame) -> RunStateResponse | None:
    """Convert the run to a response, hiding what the player cannot see."""
    run = game.run
    if run is None:
        return None
    return RunStateResponse(
        phase=game.state.value,
        message=run.message,
        credits=float(run.credits),
        essence=run.essence,
        current_bet=run.current_bet,
        house_level=run.house_level,
        house_debuff=debuff_for_level(run.house_level).name,
        is_boss_level=game.rules.is_boss_level(run.house_level),
        corruption_tokens=run.corruption_tokens,
        corruption_threshold=run.corruption_threshold,
        player_hand=_hand_response(run.player_hand),
        dealer_hand=_dealer_response(game),
        dealer_card_revealed=run.dealer_card_revealed,
        inventory=[ItemResponse(id=c.id, name=c.name, description=c.description) for c in run.inventory],
        active_passives=[
            ItemResponse(id=p.id, name=p.name, description=p.description) for p in run.active_passives
        ],
        unlocked_upgrades=list(run.unlocked_upgrades),
        offered_upgrade_ids=list(run.offered_upgrade_ids),
        deck_size=len(run.master_deck),
        draw_pile_size=len(run.draw_pile),
        discard_pile_size=len(run.discard_pile),
        can_hit=game.can_hit,
        can_stand=game.can_stand,
        can_double=game.can_double,
    )


def meta_state_response(game: VoidBlackjackGame) -> MetaStateResponse:
    return MetaStateResponse(
        fragments=game.meta.fragments,
        unlocked_hacks=list(game.meta.unlocked_hacks),
        total_runs=game.meta.total_runs,
    )


def game_state_response(game: VoidBlackjackGame) -> GameStateResponse:
    """Convert game state to response."""
    return GameStateResponse(run=run_state_response(game), meta=meta_state_response(game))


async def perform(
    session_id: str,
    action: Callable[[VoidBlackjackGame], bool],
) -> GameStateResponse:
    """Run an engine action, persist on success, 400 on rejection."""
    game = await get_game(session_id)
    if not action(game):
        raise HTTPException(status_code=400, detail=rejection_message(game))
    await save_game(session_id, game)
    return game_state_response(game)


@router.post("/new")
async def new_session(
    session_id: Annotated[str | None, Header(alias="X-Session-ID")] = None,
) -> dict[str, str]:
    """Create a new session, or reuse the given one."""
    if session_id is None:
        session_id = await create_session()
    await get_game(session_id)
    return {"session_id": session_id}


@router.get("/state")
async def get_state(session_id: SessionHeader) -> GameStateResponse:
    """Get current run and meta state."""
    game = await get_game(session_id)
    return game_state_response(game)


@router.post("/start")
async def start_run(session_id: SessionHeader) -> GameStateResponse:
    """Start a new run, replacing any run in progress."""
    return await perform(session_id, lambda game: game.start_run())


@router.post("/abandon")
async def abandon_run(session_id: SessionHeader) -> GameStateResponse:
    """Abandon the current run."""
    return await perform(session_id, lambda game: game.abandon_run())


@router.post("/bet")
async def place_bet(request: BetRequest, session_id: SessionHeader) -> GameStateResponse:
    """Place a bet and deal cards."""
    return await perform(session_id, lambda game: game.place_bet(request.amount))


@router.post("/action")
async def player_action(request: ActionRequest, session_id: SessionHeader) -> GameStateResponse:
    """Execute a player action."""
    actions: dict[str, Callable[[VoidBlackjackGame], bool]] = {
        "hit": VoidBlackjackGame.hit,
        "stand": VoidBlackjackGame.stand,
        "double": VoidBlackjackGame.double_down,
    }
    return await perform(session_id, actions[request.action])


@router.post("/dealer/step")
async def dealer_step(session_id: SessionHeader) -> GameStateResponse:
    """Advance the dealer by one step."""
    return await perform(session_id, lambda game: game.dealer_step())


@router.post("/dealer/play")
async def dealer_play(session_id: SessionHeader) -> GameStateResponse:
    """Run the dealer to completion."""
    return await perform(session_id, lambda game: game.play_dealer())


@router.post("/next")
async def next_hand(session_id: SessionHeader) -> GameStateResponse:
    """Clear the table for the next hand."""
    return await perform(session_id, lambda game: game.next_hand())


@router.post("/consumables/use")
async def use_consumable(request: UseConsumableRequest, session_id: SessionHeader) -> GameStateResponse:
    """Use an inventory item."""
    return await perform(session_id, lambda game: game.use_consumable(request.index))


@router.post("/upgrades/select")
async def select_upgrade(request: SelectUpgradeRequest, session_id: SessionHeader) -> GameStateResponse:
    """Unlock one of the offered upgrades."""
    return await perform(session_id, lambda game: game.select_upgrade(request.upgrade_id))


@router.get("/forge")
async def get_forge(session_id: SessionHeader) -> ForgeResponse:
    """Get current forge prices and the deck."""
    game = await get_game(session_id)
    run = game.run
    if run is None:
        raise HTTPException(status_code=400, detail="No run in progress.")

    locations: dict[str, str] = {}
    for location, cards in (("draw", run.draw_pile), ("discard", run.discard_pile), ("hand", run.player_hand.cards)):
        for card in cards:
            locations[card.id] = location

    return ForgeResponse(
        essence=run.essence,
        upgrades={uid: game.upgrade_price(uid) for uid in run.unlocked_upgrades},
        consumables={cid: game.consumable_price(cid) for cid in CONSUMABLES},
        passives={pid: game.passive_price(pid) for pid, p in PASSIVES.items() if p.cost is not None},
        purge_cost=game.purge_price,
        can_purge=can_purge(len(run.master_deck), game.rules),
        deck=[
            DeckCardResponse(**card_response(card).model_dump(), location=locations.get(card.id, "draw"))
            for card in run.master_deck
        ],
    )


@router.post("/forge/enter")
async def enter_forge(session_id: SessionHeader) -> GameStateResponse:
    """Open the forge."""
    return await perform(session_id, lambda game: game.enter_forge())


@router.post("/forge/leave")
async def leave_forge(session_id: SessionHeader) -> GameStateResponse:
    """Close the forge."""
    return await perform(session_id, lambda game: game.leave_forge())


@router.post("/forge/upgrade")
async def buy_upgrade(request: BuyUpgradeRequest, session_id: SessionHeader) -> GameStateResponse:
    """Attach an upgrade to a card."""
    return await perform(session_id, lambda game: game.buy_upgrade(request.upgrade_id, request.card_id))


@router.post("/forge/consumable")
async def buy_consumable(request: BuyItemRequest, session_id: SessionHeader) -> GameStateResponse:
    """Buy a consumable."""
    return await perform(session_id, lambda game: game.buy_consumable(request.item_id))


@router.post("/forge/passive")
async def buy_passive(request: BuyItemRequest, session_id: SessionHeader) -> GameStateResponse:
    """Install a boon."""
    return await perform(session_id, lambda game: game.buy_passive(request.item_id))


@router.post("/forge/purge")
async def purge_card(request: PurgeRequest, session_id: SessionHeader) -> GameStateResponse:
    """Remove a card from the deck."""
    return await perform(session_id, lambda game: game.purge_card(request.card_id))

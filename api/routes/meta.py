"""Meta-progression endpoints: fragments and permanent hacks."""

from fastapi import APIRouter

from api.routes.run import SessionHeader, get_game, meta_state_response, perform
from api.schemas import BuyHackRequest, GameStateResponse, MetaStateResponse

router = APIRouter()


@router.get("")
async def get_meta(session_id: SessionHeader) -> MetaStateResponse:
    """Get fragments, unlocked hacks and the run counter."""
    game = await get_game(session_id)
    return meta_state_response(game)


@router.post("/hacks")
async def buy_hack(request: BuyHackRequest, session_id: SessionHeader) -> GameStateResponse:
    """Unlock a permanent hack; it applies from the next run."""
    return await perform(session_id, lambda game: game.buy_meta_upgrade(request.hack_id))

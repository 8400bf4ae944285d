"""Versioned run and meta snapshots, and the load/save interface the engine uses."""

import json
import logging
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, MutableMapping

from core.cards import Card, Rank, Suit
from core.catalog import CONSUMABLES, PASSIVES, STARTING_UPGRADE_IDS, UPGRADES
from core.game.run import DeckIntegrityError, GlobalState, RunState
from core.game.state import Phase
from core.hand import Hand

logger = logging.getLogger(__name__)

# Version 1 snapshots predate unlocked_upgrades and offered_upgrade_ids
SNAPSHOT_VERSION = 2

RUN_KEY = "void_bj:run"
GLOBAL_KEY = "void_bj:global"


class SnapshotError(ValueError):
    """A snapshot could not be turned back into state."""


def serialize_card(card: Card) -> dict[str, Any]:
    """Serialize a card to a dict."""
    return {
        "id": card.id,
        "rank": card.rank.value,
        "suit": card.suit.value,
        "upgrades": [u.id for u in card.upgrades],
    }


def deserialize_card(data: dict[str, Any]) -> Card:
    """Deserialize a card from a dict."""
    try:
        return Card(
            rank=Rank(data["rank"]),
            suit=Suit(data["suit"]),
            id=data["id"],
            upgrades=[UPGRADES[uid] for uid in data.get("upgrades", [])],
        )
    except (KeyError, ValueError) as e:
        raise SnapshotError(f"Invalid card data: {data!r}") from e


def _resolve_ids(ids: list[str], cards_by_id: dict[str, Card], where: str) -> list[Card]:
    try:
        return [cards_by_id[cid] for cid in ids]
    except KeyError as e:
        raise SnapshotError(f"{where} references unknown card {e.args[0]!r}") from e


def serialize_run(run: RunState) -> dict[str, Any]:
    """
    Serialize a run.

    Cards are stored once in the master deck; piles and the player hand
    store card ids so identity and upgrades survive a round trip. Dealer
    cards are not part of the deck and are stored whole.
    """
    return {
        "version": SNAPSHOT_VERSION,
        "credits": str(run.credits),
        "essence": run.essence,
        "master_deck": [serialize_card(c) for c in run.master_deck],
        "draw_pile": [c.id for c in run.draw_pile],
        "discard_pile": [c.id for c in run.discard_pile],
        "inventory": [c.id for c in run.inventory],
        "active_passives": [p.id for p in run.active_passives],
        "unlocked_upgrades": list(run.unlocked_upgrades),
        "offered_upgrade_ids": list(run.offered_upgrade_ids),
        "player_hand": [c.id for c in run.player_hand.cards],
        "is_doubled": run.player_hand.is_doubled,
        "dealer_hand": [serialize_card(c) for c in run.dealer_hand.cards],
        "current_bet": run.current_bet,
        "dealer_card_revealed": run.dealer_card_revealed,
        "house_level": run.house_level,
        "corruption_tokens": run.corruption_tokens,
        "corruption_threshold": run.corruption_threshold,
        "phase": run.phase.value,
        "message": run.message,
    }


def _backfill(data: dict[str, Any]) -> dict[str, Any]:
    """Fill fields missing from older snapshots with their defaults."""
    data = dict(data)
    data.setdefault("unlocked_upgrades", list(STARTING_UPGRADE_IDS))
    data.setdefault("offered_upgrade_ids", [])
    data.setdefault("is_doubled", False)
    data.setdefault("message", "")
    data["version"] = SNAPSHOT_VERSION
    return data


def deserialize_run(data: dict[str, Any]) -> RunState:
    """
    Restore a run from a snapshot of any known version.

    Raises:
        SnapshotError: if the snapshot is malformed or its piles do not
            hold exactly the master deck
    """
    version = data.get("version", 1)
    if not isinstance(version, int) or version > SNAPSHOT_VERSION:
        raise SnapshotError(f"Unsupported snapshot version: {version!r}")
    data = _backfill(data)

    try:
        master_deck = [deserialize_card(c) for c in data["master_deck"]]
        cards_by_id = {c.id: c for c in master_deck}

        run = RunState(
            credits=Decimal(data["credits"]),
            essence=int(data["essence"]),
            master_deck=master_deck,
            draw_pile=_resolve_ids(data["draw_pile"], cards_by_id, "draw_pile"),
            discard_pile=_resolve_ids(data["discard_pile"], cards_by_id, "discard_pile"),
            inventory=[CONSUMABLES[cid] for cid in data["inventory"]],
            active_passives=[PASSIVES[pid] for pid in data["active_passives"]],
            unlocked_upgrades=[uid for uid in data["unlocked_upgrades"] if uid in UPGRADES],
            offered_upgrade_ids=[uid for uid in data["offered_upgrade_ids"] if uid in UPGRADES],
            player_hand=Hand(
                cards=_resolve_ids(data["player_hand"], cards_by_id, "player_hand"),
                is_doubled=bool(data["is_doubled"]),
            ),
            dealer_hand=Hand(cards=[deserialize_card(c) for c in data["dealer_hand"]]),
            current_bet=int(data["current_bet"]),
            dealer_card_revealed=bool(data["dealer_card_revealed"]),
            house_level=int(data["house_level"]),
            corruption_tokens=int(data["corruption_tokens"]),
            corruption_threshold=int(data["corruption_threshold"]),
            phase=Phase(data["phase"]),
            message=str(data["message"]),
        )
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        if isinstance(e, SnapshotError):
            raise
        raise SnapshotError(f"Invalid run snapshot: {e}") from e

    try:
        run.verify_deck_integrity()
    except DeckIntegrityError as e:
        raise SnapshotError(f"Invalid run snapshot: {e}") from e
    return run


def serialize_global(meta: GlobalState) -> dict[str, Any]:
    """Serialize the meta state."""
    return {
        "version": SNAPSHOT_VERSION,
        "fragments": meta.fragments,
        "unlocked_hacks": list(meta.unlocked_hacks),
        "total_runs": meta.total_runs,
    }


def deserialize_global(data: dict[str, Any]) -> GlobalState:
    """
    Restore the meta state.

    Raises:
        SnapshotError: if the snapshot is malformed
    """
    try:
        return GlobalState(
            fragments=int(data.get("fragments", 0)),
            unlocked_hacks=[str(h) for h in data.get("unlocked_hacks", [])],
            total_runs=int(data.get("total_runs", 0)),
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise SnapshotError(f"Invalid global snapshot: {e}") from e


class RunStore(ABC):
    """Load/save capability injected into the engine."""

    @abstractmethod
    def load_run(self) -> RunState | None:
        """Return the saved run, or None when no run is in progress."""
        ...

    @abstractmethod
    def save_run(self, run: RunState) -> None:
        """Persist the run."""
        ...

    @abstractmethod
    def delete_run(self) -> None:
        """Forget the saved run."""
        ...

    @abstractmethod
    def load_global(self) -> GlobalState:
        """Return the saved meta state, or a fresh one."""
        ...

    @abstractmethod
    def save_global(self, meta: GlobalState) -> None:
        """Persist the meta state."""
        ...


class KeyValueRunStore(RunStore):
    """
    Store JSON snapshots in any string mapping.

    A plain dict gives an in-memory store; a shelf or a dict-like cache
    adapter gives durable storage. Run and meta state use separate keys.
    Corrupt snapshots are logged and treated as absent.
    """

    def __init__(
        self,
        backend: MutableMapping[str, str] | None = None,
        run_key: str = RUN_KEY,
        global_key: str = GLOBAL_KEY,
    ) -> None:
        self._backend: MutableMapping[str, str] = backend if backend is not None else {}
        self._run_key = run_key
        self._global_key = global_key

    def load_run(self) -> RunState | None:
        raw = self._backend.get(self._run_key)
        if raw is None:
            return None
        try:
            return deserialize_run(json.loads(raw))
        except (json.JSONDecodeError, SnapshotError, AttributeError) as e:
            logger.warning("Run snapshot corrupted, starting without a run: %s", e)
            return None

    def save_run(self, run: RunState) -> None:
        self._backend[self._run_key] = json.dumps(serialize_run(run))

    def delete_run(self) -> None:
        self._backend.pop(self._run_key, None)

    def load_global(self) -> GlobalState:
        raw = self._backend.get(self._global_key)
        if raw is None:
            return GlobalState()
        try:
            return deserialize_global(json.loads(raw))
        except (json.JSONDecodeError, SnapshotError, AttributeError) as e:
            logger.warning("Global snapshot corrupted, using defaults: %s", e)
            return GlobalState()

    def save_global(self, meta: GlobalState) -> None:
        self._backend[self._global_key] = json.dumps(serialize_global(meta))

"""Pydantic schemas for API requests and responses."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# Run action schemas
class BetRequest(BaseModel):
    """Request to place a bet."""

    amount: int = Field(..., ge=1, description="Bet amount in credits")


class ActionRequest(BaseModel):
    """Request for player action."""

    action: Literal["hit", "stand", "double"]


class UseConsumableRequest(BaseModel):
    """Request to use an inventory item."""

    index: int = Field(..., ge=0, description="Inventory slot")


class SelectUpgradeRequest(BaseModel):
    """Request to unlock one of the offered upgrades."""

    upgrade_id: str


# Forge schemas
class BuyUpgradeRequest(BaseModel):
    """Request to attach an upgrade to a card."""

    upgrade_id: str
    card_id: str


class BuyItemRequest(BaseModel):
    """Request to buy a consumable or a boon."""

    item_id: str


class PurgeRequest(BaseModel):
    """Request to remove a card from the deck."""

    card_id: str


# Meta schemas
class BuyHackRequest(BaseModel):
    """Request to unlock a permanent hack."""

    hack_id: str


# State responses
class CardResponse(BaseModel):
    """Card representation. Hidden dealer cards carry no rank or suit."""

    model_config = ConfigDict(from_attributes=True)

    id: str | None = None
    rank: str | None = None
    suit: str | None = None
    value: int | None = None
    upgrades: list[str] = []
    hidden: bool = False


class HandResponse(BaseModel):
    """Hand representation."""

    cards: list[CardResponse]
    value: int | None
    is_soft: bool = False
    is_blackjack: bool = False
    is_busted: bool = False


class ItemResponse(BaseModel):
    """Inventory item or passive."""

    id: str
    name: str
    description: str


class RunStateResponse(BaseModel):
    """Snapshot of the run as the player sees it."""

    phase: str
    message: str
    credits: float
    essence: int
    current_bet: int
    house_level: int
    house_debuff: str
    is_boss_level: bool
    corruption_tokens: int
    corruption_threshold: int
    player_hand: HandResponse
    dealer_hand: HandResponse
    dealer_card_revealed: bool
    inventory: list[ItemResponse]
    active_passives: list[ItemResponse]
    unlocked_upgrades: list[str]
    offered_upgrade_ids: list[str]
    deck_size: int
    draw_pile_size: int
    discard_pile_size: int
    can_hit: bool
    can_stand: bool
    can_double: bool


class MetaStateResponse(BaseModel):
    """Cross-run progression."""

    fragments: int
    unlocked_hacks: list[str]
    total_runs: int


class GameStateResponse(BaseModel):
    """Current run (if any) and meta state."""

    run: RunStateResponse | None
    meta: MetaStateResponse


class DeckCardResponse(CardResponse):
    """A card of the master deck with its location."""

    location: Literal["draw", "discard", "hand"]


class ForgeResponse(BaseModel):
    """Current forge prices."""

    essence: int
    upgrades: dict[str, int]
    consumables: dict[str, int]
    passives: dict[str, int]
    purge_cost: int
    can_purge: bool
    deck: list[DeckCardResponse]


# Catalog schemas
class UpgradeEffectResponse(BaseModel):
    kind: str
    value: float


class UpgradeCatalogEntry(BaseModel):
    id: str
    name: str
    description: str
    cost: int
    effects: list[UpgradeEffectResponse]


class ConsumableCatalogEntry(BaseModel):
    id: str
    name: str
    description: str
    cost: int
    type: str


class PassiveCatalogEntry(BaseModel):
    id: str
    name: str
    description: str
    type: Literal["boon", "curse"]
    cost: int | None
    rarity: str | None


class MetaUpgradeCatalogEntry(BaseModel):
    id: str
    name: str
    description: str
    cost: int


class DebuffCatalogEntry(BaseModel):
    level: int
    name: str
    description: str


class CatalogResponse(BaseModel):
    """Static catalog tables."""

    upgrades: list[UpgradeCatalogEntry]
    starting_upgrades: list[str]
    consumables: list[ConsumableCatalogEntry]
    passives: list[PassiveCatalogEntry]
    meta_upgrades: list[MetaUpgradeCatalogEntry]
    house_debuffs: list[DebuffCatalogEntry]


# Session persistence schema
class SessionData(BaseModel):
    """Complete session data structure. Snapshots are versioned by the engine."""

    run: dict[str, Any] | None = None
    meta: dict[str, Any] | None = None
    created_at: int
    last_activity: int

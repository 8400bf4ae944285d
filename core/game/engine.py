"""Void Blackjack run engine with state machine."""

import logging
from decimal import Decimal
from random import Random
from typing import Callable

from transitions import Machine

from core.cards import Card, Deck, Rank, draw, move_high_value_card_to_top, recycle
from core.catalog import (
    AUTO_MINER,
    BACKUP_BATTERY,
    CONSUMABLES,
    MEMORY_LEAK,
    META_UPGRADES,
    PASSIVES,
    UPGRADES,
    ConsumableType,
)
from core.economy import PurchaseKind, can_purge, price, purge_cost
from core.effects import CardEffects, apply_card_effects
from core.game.events import EventEmitter, EventType, GameEvent
from core.game.persistence import RunStore
from core.game.progression import advance_progression, fragments_earned
from core.game.resolution import RoundOutcome, RoundResult, resolve_round
from core.game.run import GlobalState, RunState, new_run
from core.game.state import LIVE_ROUND_PHASES, Phase
from core.rules import DEFAULT_RULES, HouseRules

logger = logging.getLogger(__name__)


class VoidBlackjackGame:
    """
    Roguelike blackjack run engine using a state machine.

    The engine owns the meta state and at most one run. Every action
    validates, mutates the run and returns True, or leaves it unchanged,
    sets ``run.message`` and returns False. Communication with the
    presentation layer happens through events, return values and the run
    itself.
    """

    # State machine states
    STATES = [p.value for p in Phase]

    # State machine transitions
    TRANSITIONS = [
        {"trigger": "deal", "source": "betting", "dest": "playing"},
        {"trigger": "deal_natural", "source": "betting", "dest": "dealer_turn"},
        {"trigger": "player_done", "source": "playing", "dest": "dealer_turn"},
        {"trigger": "player_busts", "source": "playing", "dest": "round_over"},
        {"trigger": "dealer_done", "source": "dealer_turn", "dest": "round_over"},
        {"trigger": "offer_upgrades", "source": "round_over", "dest": "upgrade_selection"},
        {"trigger": "upgrade_chosen", "source": "upgrade_selection", "dest": "round_over"},
        {"trigger": "bankrupt", "source": ["round_over", "upgrade_selection"], "dest": "game_over"},
        {"trigger": "new_hand", "source": "round_over", "dest": "betting"},
        {"trigger": "open_forge", "source": ["betting", "round_over"], "dest": "forge"},
        {"trigger": "close_forge", "source": "forge", "dest": "betting"},
    ]

    def __init__(
        self,
        meta: GlobalState | None = None,
        run: RunState | None = None,
        rules: HouseRules | None = None,
        rng: Random | None = None,
        store: RunStore | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            meta: Meta state (loaded from the store, or fresh, if not provided)
            run: Run to resume (loaded from the store if not provided)
            rules: House rules (uses defaults if not provided)
            rng: Random number generator for reproducible runs
            store: Load/save capability; nothing is persisted without one
        """
        self.rules = rules or DEFAULT_RULES
        self.rng = rng or Random()
        self.store = store
        self.events = EventEmitter()

        if meta is None:
            meta = store.load_global() if store is not None else GlobalState()
        if run is None and store is not None:
            run = store.load_run()
        self.meta = meta
        self.run = run

        # Initialize state machine
        self.machine = Machine(
            model=self,
            states=self.STATES,
            transitions=self.TRANSITIONS,
            initial=run.phase.value if run is not None else Phase.BETTING.value,
            auto_transitions=False,
            model_attribute="_machine_state",
            after_state_change="_sync_phase",
        )

    @property
    def state(self) -> Phase:
        """Get current phase as enum."""
        return Phase(self._machine_state)  # type: ignore

    def _sync_phase(self) -> None:
        if self.run is not None:
            self.run.phase = self.state

    def subscribe(
        self,
        handler: Callable[[GameEvent], None],
        event_type: EventType | None = None,
    ) -> None:
        """Subscribe to game events."""
        self.events.subscribe(handler, event_type)

    # Validation helpers

    def _reject(
        self,
        message: str,
        event_type: EventType = EventType.INVALID_ACTION,
        **data: object,
    ) -> bool:
        if self.run is not None:
            self.run.message = message
        self.events.emit(event_type, message=message, **data)
        logger.debug("Action rejected: %s", message)
        return False

    def _in_phase(self, action: str, *phases: Phase) -> bool:
        if self.run is None:
            return self._reject("No run in progress.", action=action)
        if self.state not in phases:
            return self._reject(
                f"Cannot {action} during {self.state}.",
                action=action,
                phase=self.state.value,
            )
        return True

    def _persist(self) -> None:
        if self.store is None:
            return
        if self.run is None or self.state == Phase.GAME_OVER:
            self.store.delete_run()
        else:
            self.store.save_run(self.run)
        self.store.save_global(self.meta)

    # Run lifecycle

    def start_run(self) -> bool:
        """
        Start a new run, replacing any run in progress.

        Unlocked meta hacks are applied to the starting resources.
        """
        self.meta.total_runs += 1
        self.run = new_run(self.meta, self.rng, self.rules)
        self.machine.set_state(Phase.BETTING.value, model=self)

        self.events.emit(
            EventType.RUN_STARTED,
            credits=str(self.run.credits),
            essence=self.run.essence,
            total_runs=self.meta.total_runs,
        )
        logger.info("Run %d started with hacks %s", self.meta.total_runs, self.meta.unlocked_hacks)
        self._persist()
        return True

    def abandon_run(self) -> bool:
        """Drop the current run without awarding fragments."""
        if self.run is None:
            return self._reject("No run in progress.", action="abandon_run")

        self.run = None
        self.machine.set_state(Phase.BETTING.value, model=self)
        self.events.emit(EventType.RUN_ABANDONED)
        logger.info("Run abandoned")
        self._persist()
        return True

    # Dealing

    def _draw_player_card(self) -> CardEffects:
        """Draw into the player hand and return the card's effects."""
        run = self.run
        assert run is not None

        if recycle(run.draw_pile, run.discard_pile, self.rng):
            self.events.emit(EventType.PILE_RECYCLED, cards=len(run.draw_pile))
        card = draw(run.draw_pile, run.discard_pile, self.rng)
        run.player_hand.add_card(card)

        self.events.emit(
            EventType.CARD_DEALT,
            card=str(card),
            card_id=card.id,
            hand="player",
            hand_value=run.player_hand.value,
        )
        return apply_card_effects(card, run.house_level, self.rules)

    def _deal_dealer_card(self, card: Card) -> None:
        run = self.run
        assert run is not None

        run.dealer_hand.add_card(card)
        # Dealt before the round goes live, so check the hiding rules directly
        index = len(run.dealer_hand) - 1
        hidden = not run.dealer_card_revealed and (
            index == 1 or run.house_level >= self.rules.hidden_dealer_level
        )
        self.events.emit(
            EventType.CARD_DEALT,
            card="??" if hidden else str(card),
            hand="dealer",
        )

    def _apply(self, effects: CardEffects, credit_cost: int = 0) -> None:
        """Apply a resource delta; corruption never drops below zero."""
        run = self.run
        assert run is not None

        run.essence += effects.essence_delta
        run.credits += Decimal(effects.credit_delta - credit_cost)
        run.corruption_tokens = max(0, run.corruption_tokens + effects.corruption_delta)

    def place_bet(self, amount: int) -> bool:
        """
        Place a bet and deal the opening hands.

        Player and dealer cards alternate, player first. The dealer draws
        from a freshly shuffled deck of its own; on boss levels a King is
        moved up so the dealer's first card is one.

        Args:
            amount: Bet amount, deducted immediately

        Returns:
            True if the bet was accepted
        """
        if not self._in_phase("bet", Phase.BETTING):
            return False
        run = self.run
        assert run is not None

        if amount < self.rules.min_bet:
            return self._reject(f"Minimum bet is {self.rules.min_bet}.", amount=amount)
        if Decimal(amount) > run.credits:
            return self._reject(
                "Not enough credits.",
                EventType.INSUFFICIENT_FUNDS,
                required=amount,
                available=str(run.credits),
            )

        run.discard_hands()
        run.credits -= Decimal(amount)
        run.current_bet = amount
        run.dealer_card_revealed = False
        self.events.emit(EventType.BET_PLACED, amount=amount)

        bonus = 0
        if run.has_passive(AUTO_MINER):
            bonus += self.rules.auto_miner_essence
        if run.essence == 0 and run.has_passive(BACKUP_BATTERY):
            bonus += self.rules.backup_battery_essence
        effects = CardEffects(essence_delta=bonus)

        is_boss = self.rules.is_boss_level(run.house_level)
        dealer_deck = Deck.shuffled(self.rng)
        if is_boss:
            dealer_deck.move_rank_to_top(Rank.KING)

        effects += self._draw_player_card()
        self._deal_dealer_card(dealer_deck.draw())
        effects += self._draw_player_card()
        self._deal_dealer_card(dealer_deck.draw())
        self._apply(effects)

        self.events.emit(EventType.ROUND_STARTED, bet=amount, boss=is_boss)
        logger.debug("Dealt %s against %d-card dealer hand", run.player_hand, len(run.dealer_hand))

        if run.player_hand.value == 21:
            self.events.emit(EventType.PLAYER_BLACKJACK)
            run.message = "Blackjack! Dealer's turn..."
            self.deal_natural()
        else:
            run.message = "BOSS PROTOCOL ACTIVE: THE ARCHITECT" if is_boss else "Hit or Stand?"
            self.deal()

        self._persist()
        return True

    # Player actions

    def hit(self) -> bool:
        """
        Player hits.

        A bust resolves the round at once; reaching 21 hands over to the
        dealer.
        """
        if not self._in_phase("hit", Phase.PLAYING):
            return False
        run = self.run
        assert run is not None

        effects = self._draw_player_card()
        self._apply(effects, credit_cost=1 if run.has_passive(MEMORY_LEAK) else 0)
        hand = run.player_hand
        self.events.emit(EventType.PLAYER_HIT, hand_value=hand.value)

        if hand.is_busted:
            self.events.emit(EventType.PLAYER_BUSTS, hand_value=hand.value)
            run.message = "Bust!"
            self.player_busts()
            self._finish_round(busted=True)
        elif hand.value == 21:
            run.message = "Dealer's turn..."
            self.player_done()

        self._persist()
        return True

    def stand(self) -> bool:
        """Player stands; the dealer plays next."""
        if not self._in_phase("stand", Phase.PLAYING):
            return False
        run = self.run
        assert run is not None

        self.events.emit(EventType.PLAYER_STAND, hand_value=run.player_hand.value)
        run.message = "Dealer's turn..."
        self.player_done()
        self._persist()
        return True

    def double_down(self) -> bool:
        """
        Player doubles the bet and takes exactly one more card.

        Only allowed on the first two cards and when the player can cover
        the extra stake.
        """
        if not self._in_phase("double down", Phase.PLAYING):
            return False
        run = self.run
        assert run is not None

        hand = run.player_hand
        if not hand.can_double:
            return self._reject("Can only double on the first two cards.")
        if run.credits < Decimal(run.current_bet):
            return self._reject(
                "Not enough credits to double.",
                EventType.INSUFFICIENT_FUNDS,
                required=run.current_bet,
                available=str(run.credits),
            )

        run.credits -= Decimal(run.current_bet)
        run.current_bet *= 2
        hand.is_doubled = True

        effects = self._draw_player_card()
        effects += CardEffects(essence_delta=self.rules.double_down_essence)
        self._apply(effects, credit_cost=1 if run.has_passive(MEMORY_LEAK) else 0)
        self.events.emit(EventType.PLAYER_DOUBLE, hand_value=hand.value, new_bet=run.current_bet)

        if hand.is_busted:
            self.events.emit(EventType.PLAYER_BUSTS, hand_value=hand.value)
            run.message = "Bust!"
            self.player_busts()
            self._finish_round(busted=True)
        else:
            run.message = "Dealer's turn..."
            self.player_done()

        self._persist()
        return True

    # Dealer

    @property
    def dealer_should_hit(self) -> bool:
        """Check if the dealer is below its stand threshold."""
        if self.run is None or self.state != Phase.DEALER_TURN:
            return False
        threshold = self.rules.dealer_stand_threshold(self.run.house_level)
        return self.run.dealer_hand.value < threshold

    def dealer_step(self) -> bool:
        """
        Advance the dealer by one step.

        Below the stand threshold the dealer draws one card from a fresh
        shuffled deck; otherwise it stands (or has busted) and the round is
        resolved. Callers pace the dealer by calling this repeatedly.

        Returns:
            True if a step was taken
        """
        if not self._in_phase("play the dealer", Phase.DEALER_TURN):
            return False
        run = self.run
        assert run is not None

        if self.dealer_should_hit:
            card = Deck.shuffled(self.rng).draw()
            run.dealer_hand.add_card(card)
            index = len(run.dealer_hand) - 1
            self.events.emit(
                EventType.DEALER_HITS,
                card=str(card) if self._dealer_card_visible(index) else "??",
                hand_value=self.dealer_visible_score,
            )
        else:
            if run.dealer_hand.is_busted:
                self.events.emit(EventType.DEALER_BUSTS, hand_value=run.dealer_hand.value)
            else:
                self.events.emit(EventType.DEALER_STANDS, hand_value=run.dealer_hand.value)
            self.dealer_done()
            self._finish_round(busted=False)

        self._persist()
        return True

    def play_dealer(self) -> bool:
        """Run the dealer to completion, one step at a time."""
        if not self._in_phase("play the dealer", Phase.DEALER_TURN):
            return False
        while self.state == Phase.DEALER_TURN:
            self.dealer_step()
        return True

    # Resolution

    def _emit_outcome(self, result: RoundResult) -> None:
        data = {
            "outcome": result.outcome.value,
            "payout": str(result.payout),
            "player_score": result.player_score,
            "dealer_score": result.dealer_score,
        }
        if result.outcome == RoundOutcome.MITIGATED:
            self.events.emit(EventType.SHIELD_TRIGGERED, refund=str(result.payout))
        if result.is_win:
            self.events.emit(EventType.PLAYER_WINS, **data)
        elif result.outcome.is_push:
            self.events.emit(EventType.PUSH, **data)
        else:
            self.events.emit(EventType.PLAYER_LOSES, **data)

    def _finish_round(self, busted: bool) -> None:
        """Settle the round: payout, progression, then the bankrupt check."""
        run = self.run
        assert run is not None

        level_before = run.house_level
        essence_before = run.essence

        result = resolve_round(
            run.player_hand,
            run.dealer_hand,
            run.current_bet,
            busted,
            house_level=run.house_level,
            rng=self.rng,
            active_passives=run.passive_ids,
            rules=self.rules,
        )
        self._emit_outcome(result)
        message = result.message

        offered: list[str] = []
        if result.is_win:
            progression = advance_progression(run, self.rng, self.rules)
            run.corruption_tokens = progression.corruption_tokens
            run.house_level = progression.house_level
            run.corruption_threshold = progression.corruption_threshold
            offered = progression.offered_upgrade_ids

            if progression.leveled_up:
                self.events.emit(
                    EventType.LEVEL_UP,
                    house_level=run.house_level,
                    threshold=run.corruption_threshold,
                )
            if progression.granted_curse is not None:
                run.active_passives.append(progression.granted_curse)
                self.events.emit(EventType.CURSE_GRANTED, passive_id=progression.granted_curse.id)
            if progression.message:
                message = f"{message} {progression.message}"

        run.credits += result.total_credits
        run.essence += result.total_essence
        run.message = message

        self.events.emit(
            EventType.ROUND_ENDED,
            outcome=result.outcome.value,
            credits=str(run.credits),
            essence=run.essence,
        )
        logger.debug(
            "Round resolved: %s (%d vs %d), credits now %s",
            result.outcome.value,
            result.player_score,
            result.dealer_score,
            run.credits,
        )

        if run.credits < Decimal(self.rules.min_bet):
            fragments = fragments_earned(level_before, essence_before, self.rules)
            self.meta.fragments += fragments
            run.offered_upgrade_ids = []
            run.message = "SYSTEM FAILURE: INSUFFICIENT FUNDS"
            self.events.emit(EventType.FRAGMENTS_AWARDED, fragments=fragments)
            self.events.emit(EventType.GAME_ENDED, reason="bankrupt", house_level=run.house_level)
            logger.info("Run ended at house level %d, %d fragments awarded", run.house_level, fragments)
            self.bankrupt()
        elif offered:
            run.offered_upgrade_ids = offered
            self.events.emit(EventType.UPGRADES_OFFERED, upgrade_ids=list(offered))
            self.offer_upgrades()

    def select_upgrade(self, upgrade_id: str) -> bool:
        """Unlock one of the offered upgrades for the forge."""
        if not self._in_phase("select an upgrade", Phase.UPGRADE_SELECTION):
            return False
        run = self.run
        assert run is not None

        if upgrade_id not in run.offered_upgrade_ids:
            return self._reject("That upgrade is not on offer.", upgrade_id=upgrade_id)

        run.unlocked_upgrades.append(upgrade_id)
        run.offered_upgrade_ids = []
        run.message = "New Upgrade compiled into Supply."
        self.events.emit(EventType.UPGRADE_UNLOCKED, upgrade_id=upgrade_id)
        self.upgrade_chosen()
        self._persist()
        return True

    # Between hands

    def next_hand(self) -> bool:
        """Clear the table and return to betting."""
        if not self._in_phase("start the next hand", Phase.ROUND_OVER):
            return False
        run = self.run
        assert run is not None

        run.discard_hands()
        run.current_bet = 0
        run.dealer_card_revealed = False
        run.message = "Place your bet."
        self.new_hand()
        self._persist()
        return True

    def enter_forge(self) -> bool:
        """Open the forge between hands."""
        if not self._in_phase("enter the forge", Phase.BETTING, Phase.ROUND_OVER):
            return False
        run = self.run
        assert run is not None

        run.discard_hands()
        run.current_bet = 0
        run.dealer_card_revealed = False
        run.message = "Entering the Forge..."
        self.open_forge()
        self.events.emit(EventType.FORGE_ENTERED)
        self._persist()
        return True

    def leave_forge(self) -> bool:
        """Close the forge and return to betting."""
        if not self._in_phase("leave the forge", Phase.FORGE):
            return False
        run = self.run
        assert run is not None

        run.message = "Place your bet to begin."
        self.close_forge()
        self.events.emit(EventType.FORGE_LEFT)
        self._persist()
        return True

    def use_consumable(self, index: int) -> bool:
        """
        Use the inventory item at the given index.

        Items can be used at the table or in the forge, but not once the
        run is over or while an upgrade choice is pending.
        """
        if not self._in_phase(
            "use an item",
            Phase.BETTING,
            Phase.PLAYING,
            Phase.DEALER_TURN,
            Phase.ROUND_OVER,
            Phase.FORGE,
        ):
            return False
        run = self.run
        assert run is not None

        if not 0 <= index < len(run.inventory):
            return self._reject("No item in that slot.", index=index)

        item = run.inventory.pop(index)
        if item.type == ConsumableType.REVEAL_DEALER:
            run.dealer_card_revealed = True
            run.message = f"Used {item.name}."
        elif item.type == ConsumableType.REDUCE_THREAT:
            run.corruption_tokens = max(0, run.corruption_tokens - self.rules.coolant_reduction)
            run.message = "Threat level reduced."
        elif item.type == ConsumableType.GUARANTEE_10:
            if recycle(run.draw_pile, run.discard_pile, self.rng):
                self.events.emit(EventType.PILE_RECYCLED, cards=len(run.draw_pile))
            run.draw_pile = move_high_value_card_to_top(run.draw_pile)
            run.message = "Next card override active."

        self.events.emit(EventType.CONSUMABLE_USED, consumable_id=item.id)
        self._persist()
        return True

    # Forge

    def upgrade_price(self, upgrade_id: str) -> int:
        """Current essence price of an upgrade."""
        return self._price(UPGRADES[upgrade_id].cost, PurchaseKind.UPGRADE)

    def consumable_price(self, consumable_id: str) -> int:
        """Current essence price of a consumable."""
        return self._price(CONSUMABLES[consumable_id].cost, PurchaseKind.CONSUMABLE)

    def passive_price(self, passive_id: str) -> int | None:
        """Current essence price of a boon; curses have no price."""
        cost = PASSIVES[passive_id].cost
        if cost is None:
            return None
        return self._price(cost, PurchaseKind.PASSIVE)

    @property
    def purge_price(self) -> int:
        """Current essence price of purging a card."""
        deck_size = len(self.run.master_deck) if self.run is not None else 52
        return purge_cost(deck_size, self.rules)

    def _price(self, base_cost: int, kind: PurchaseKind) -> int:
        run = self.run
        assert run is not None
        return price(
            base_cost,
            kind,
            run.house_level,
            active_passives=run.passive_ids,
            unlocked_hacks=self.meta.unlocked_hacks,
            rules=self.rules,
        )

    def _spend(self, cost: int) -> bool:
        run = self.run
        assert run is not None
        if run.essence < cost:
            return self._reject(
                "Not enough Essence.",
                EventType.INSUFFICIENT_FUNDS,
                required=cost,
                available=run.essence,
            )
        run.essence -= cost
        return True

    def buy_upgrade(self, upgrade_id: str, card_id: str) -> bool:
        """Attach an unlocked upgrade to a card of the deck."""
        if not self._in_phase("buy upgrades", Phase.FORGE):
            return False
        run = self.run
        assert run is not None

        upgrade = UPGRADES.get(upgrade_id)
        if upgrade is None or upgrade_id not in run.unlocked_upgrades:
            return self._reject("Upgrade not available.", upgrade_id=upgrade_id)
        card = run.find_card(card_id)
        if card is None:
            return self._reject("No such card in the deck.", card_id=card_id)
        if not self._spend(self.upgrade_price(upgrade_id)):
            return False

        card.attach(upgrade)
        run.message = f"{upgrade.name} applied to {card}."
        self.events.emit(EventType.UPGRADE_PURCHASED, upgrade_id=upgrade_id, card_id=card_id)
        self._persist()
        return True

    def buy_consumable(self, consumable_id: str) -> bool:
        """Buy a consumable into the inventory."""
        if not self._in_phase("buy items", Phase.FORGE):
            return False
        run = self.run
        assert run is not None

        item = CONSUMABLES.get(consumable_id)
        if item is None:
            return self._reject("Item not available.", consumable_id=consumable_id)
        if len(run.inventory) >= self.rules.inventory_capacity:
            return self._reject(
                "Inventory full.",
                EventType.CAPACITY_EXCEEDED,
                capacity=self.rules.inventory_capacity,
            )
        if not self._spend(self.consumable_price(consumable_id)):
            return False

        run.inventory.append(item)
        run.message = f"Acquired {item.name}."
        self.events.emit(EventType.CONSUMABLE_PURCHASED, consumable_id=consumable_id)
        self._persist()
        return True

    def buy_passive(self, passive_id: str) -> bool:
        """Install a boon. Curses cannot be bought."""
        if not self._in_phase("buy modules", Phase.FORGE):
            return False
        run = self.run
        assert run is not None

        passive = PASSIVES.get(passive_id)
        if passive is None or passive.cost is None:
            return self._reject("Module not available.", passive_id=passive_id)
        if run.has_passive(passive_id):
            return self._reject("Module already installed.", passive_id=passive_id)
        cost = self.passive_price(passive_id)
        assert cost is not None
        if not self._spend(cost):
            return False

        run.active_passives.append(passive)
        run.message = f"System Module Installed: {passive.name}"
        self.events.emit(EventType.PASSIVE_PURCHASED, passive_id=passive_id)
        self._persist()
        return True

    def purge_card(self, card_id: str) -> bool:
        """Remove a card from the deck for good."""
        if not self._in_phase("purge cards", Phase.FORGE):
            return False
        run = self.run
        assert run is not None

        card = run.find_card(card_id)
        if card is None:
            return self._reject("No such card in the deck.", card_id=card_id)
        if not can_purge(len(run.master_deck), self.rules):
            return self._reject("Deck too small to purge.")
        cost = self.purge_price
        if run.essence < cost:
            return self._reject(
                f"Need {cost} Essence to purge.",
                EventType.INSUFFICIENT_FUNDS,
                required=cost,
                available=run.essence,
            )

        run.essence -= cost
        run.master_deck = [c for c in run.master_deck if c.id != card_id]
        run.draw_pile = [c for c in run.draw_pile if c.id != card_id]
        run.discard_pile = [c for c in run.discard_pile if c.id != card_id]
        run.message = "Card removed from database."
        self.events.emit(EventType.CARD_PURGED, card_id=card_id, cost=cost)
        self._persist()
        return True

    # Meta

    def buy_meta_upgrade(self, hack_id: str) -> bool:
        """Unlock a permanent hack with fragments; takes effect from the next run."""
        hack = META_UPGRADES.get(hack_id)
        if hack is None:
            return self._reject("Unknown hack.", hack_id=hack_id)
        if self.meta.has_hack(hack_id):
            return self._reject("Hack already installed.", hack_id=hack_id)
        if self.meta.fragments < hack.cost:
            return self._reject(
                "Not enough fragments.",
                EventType.INSUFFICIENT_FUNDS,
                required=hack.cost,
                available=self.meta.fragments,
            )

        self.meta.fragments -= hack.cost
        self.meta.unlocked_hacks.append(hack_id)
        self.events.emit(EventType.META_UPGRADE_PURCHASED, hack_id=hack_id)
        logger.info("Hack %s unlocked", hack_id)
        self._persist()
        return True

    # View helpers

    def _dealer_card_visible(self, index: int) -> bool:
        run = self.run
        if run is None or run.dealer_card_revealed or self.state not in LIVE_ROUND_PHASES:
            return True
        if run.house_level >= self.rules.hidden_dealer_level:
            return False
        return index != 1

    def visible_dealer_cards(self) -> list[Card | None]:
        """Dealer cards as the player may see them; hidden cards are None."""
        if self.run is None:
            return []
        return [
            card if self._dealer_card_visible(i) else None
            for i, card in enumerate(self.run.dealer_hand)
        ]

    @property
    def dealer_visible_score(self) -> int | None:
        """Dealer score, or None while any dealer card is hidden."""
        cards = self.visible_dealer_cards()
        if not cards or any(card is None for card in cards):
            return None
        return self.run.dealer_hand.value if self.run is not None else None

    @property
    def can_hit(self) -> bool:
        """Check if hitting is allowed."""
        return self.run is not None and self.state == Phase.PLAYING

    @property
    def can_stand(self) -> bool:
        """Check if standing is allowed."""
        return self.run is not None and self.state == Phase.PLAYING

    @property
    def can_double(self) -> bool:
        """Check if doubling is allowed."""
        if self.run is None or self.state != Phase.PLAYING:
            return False
        return self.run.player_hand.can_double and self.run.credits >= Decimal(self.run.current_bet)

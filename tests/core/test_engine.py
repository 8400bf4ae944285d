"""Tests for the run engine."""

from decimal import Decimal
from random import Random

import pytest
from transitions import MachineError

from core.cards import Rank
from core.catalog import CONSUMABLES, PASSIVES, UPGRADES
from core.game import EventType, Phase, VoidBlackjackGame
from core.game.persistence import KeyValueRunStore


def _events(game, event_type):
    return game.events.of_type(event_type)


def _set_dealer(game, hand):
    """Replace the dealer's cards after the deal."""
    game.run.dealer_hand = hand


class TestRunLifecycle:
    """Starting and abandoning runs."""

    def test_start_run(self, game):
        run = game.run
        assert game.state == Phase.BETTING
        assert run.credits == Decimal(100)
        assert len(run.master_deck) == 52
        assert len(run.draw_pile) == 52
        assert game.meta.total_runs == 1
        assert len(_events(game, EventType.RUN_STARTED)) == 1

    def test_start_run_replaces_run(self, game):
        old = game.run
        game.start_run()
        assert game.run is not old
        assert game.meta.total_runs == 2

    def test_abandon_run(self, game):
        assert game.abandon_run()
        assert game.run is None
        assert game.meta.fragments == 0
        assert not game.place_bet(10)

    def test_actions_without_run_rejected(self):
        game = VoidBlackjackGame(rng=Random(1))
        assert not game.hit()
        assert _events(game, EventType.INVALID_ACTION)[-1].data["message"] == "No run in progress."


class TestBetting:
    """Placing bets and the opening deal."""

    def test_bet_below_minimum_rejected(self, game):
        assert not game.place_bet(5)
        assert game.state == Phase.BETTING
        assert game.run.credits == Decimal(100)
        assert game.run.message == "Minimum bet is 10."

    def test_bet_above_credits_rejected(self, game):
        assert not game.place_bet(500)
        assert _events(game, EventType.INSUFFICIENT_FUNDS)

    def test_deal(self, game, stack):
        stack(game.run, "10S", "7H")
        assert game.place_bet(10)

        run = game.run
        assert game.state == Phase.PLAYING
        assert run.credits == Decimal(90)
        assert run.current_bet == 10
        assert run.player_hand.value == 17
        assert len(run.dealer_hand) == 2
        assert run.essence == 2
        assert run.message == "Hit or Stand?"

    def test_dealer_hole_card_event_is_hidden(self, game, stack):
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        dealer_cards = [e.data["card"] for e in _events(game, EventType.CARD_DEALT) if e.data["hand"] == "dealer"]
        assert dealer_cards[1] == "??"
        assert dealer_cards[0] != "??"

    def test_dealer_hit_event_hides_total_while_hole_card_is_down(self, game, stack, hand_of):
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        _set_dealer(game, hand_of("2D", "5C"))
        game.stand()
        game.dealer_step()
        hit = _events(game, EventType.DEALER_HITS)[-1]
        assert hit.data["hand_value"] is None
        assert hit.data["card"] != "??"
        assert game.visible_dealer_cards()[1] is None

    def test_dealer_hit_event_hides_card_at_hidden_level(self, game, stack, hand_of):
        game.run.house_level = game.rules.hidden_dealer_level
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        _set_dealer(game, hand_of("2D", "3C"))
        game.stand()
        game.dealer_step()
        hit = _events(game, EventType.DEALER_HITS)[-1]
        assert hit.data == {"card": "??", "hand_value": None}

    def test_natural_goes_to_dealer(self, game, stack):
        stack(game.run, "AS", "KH")
        game.place_bet(10)
        assert game.state == Phase.DEALER_TURN
        assert _events(game, EventType.PLAYER_BLACKJACK)
        assert game.run.message == "Blackjack! Dealer's turn..."

    def test_boss_dealer_opens_with_king(self, game, stack):
        game.run.house_level = 5
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        assert game.run.dealer_hand.cards[0].rank == Rank.KING
        assert game.run.message == "BOSS PROTOCOL ACTIVE: THE ARCHITECT"

    def test_auto_miner(self, game, stack):
        game.run.active_passives.append(PASSIVES["auto_miner"])
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        assert game.run.essence == 3

    def test_backup_battery(self, game, stack):
        game.run.active_passives.append(PASSIVES["backup_battery"])
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        assert game.run.essence == 7

    def test_card_effects_apply_on_deal(self, game, stack):
        ten, seven = stack(game.run, "10S", "7H")
        ten.attach(UPGRADES["midas_touch"])
        game.place_bet(10)
        assert game.run.credits == Decimal(95)

    def test_corruption_never_negative(self, game, stack):
        ten, _ = stack(game.run, "10S", "7H")
        ten.attach(UPGRADES["cooling_fan"])
        game.place_bet(10)
        assert game.run.corruption_tokens == 0


class TestPlayerActions:
    """Hit, stand and double down."""

    def test_hit_outside_playing_rejected(self, game):
        assert not game.hit()
        assert game.run.message == "Cannot hit during Betting."

    def test_hit(self, game, stack):
        stack(game.run, "2S", "3H", "4C")
        game.place_bet(10)
        assert game.hit()
        assert game.run.player_hand.value == 9
        assert game.state == Phase.PLAYING

    def test_hit_to_21_ends_turn(self, game, stack):
        stack(game.run, "10S", "5H", "6C")
        game.place_bet(10)
        game.hit()
        assert game.state == Phase.DEALER_TURN

    def test_bust_resolves_immediately(self, game, stack):
        stack(game.run, "10S", "6H", "KC")
        game.place_bet(10)
        game.hit()
        assert game.state == Phase.ROUND_OVER
        assert game.run.credits == Decimal(90)
        assert _events(game, EventType.PLAYER_BUSTS)
        assert _events(game, EventType.PLAYER_LOSES)

    def test_memory_leak_costs_a_credit_per_hit(self, game, stack):
        game.run.active_passives.append(PASSIVES["memory_leak"])
        stack(game.run, "2S", "3H", "4C")
        game.place_bet(10)
        game.hit()
        assert game.run.credits == Decimal(89)

    def test_stand(self, game, stack):
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        assert game.stand()
        assert game.state == Phase.DEALER_TURN

    def test_double_down(self, game, stack):
        stack(game.run, "5S", "6H", "9C")
        game.place_bet(10)
        assert game.double_down()

        run = game.run
        assert run.credits == Decimal(80)
        assert run.current_bet == 20
        assert run.player_hand.is_doubled
        assert run.player_hand.value == 20
        assert run.essence == 8
        assert game.state == Phase.DEALER_TURN

    def test_double_down_bust_resolves_with_doubled_bet(self, game, stack, fixed_random):
        shielded, _, _ = stack(game.run, "10S", "6H", "KC")
        shielded.attach(UPGRADES["firewall_shard"])
        game.place_bet(10)
        essence = game.run.essence
        game.rng = fixed_random(0.0)

        assert game.double_down()

        run = game.run
        assert game.state == Phase.ROUND_OVER
        assert run.current_bet == 20
        # 100 - 10 - 10 + 0.5 * 20
        assert run.credits == Decimal(90)
        assert run.message == "FAILURE MITIGATED [SHIELD]."
        assert run.essence == essence + game.rules.essence_per_card + game.rules.double_down_essence
        assert _events(game, EventType.PLAYER_BUSTS)

    def test_double_after_hit_rejected(self, game, stack):
        stack(game.run, "2S", "3H", "4C")
        game.place_bet(10)
        game.hit()
        assert not game.can_double
        assert not game.double_down()

    def test_double_without_credits_rejected(self, game, stack):
        stack(game.run, "5S", "6H")
        game.place_bet(10)
        game.run.credits = Decimal(5)
        assert not game.double_down()
        assert _events(game, EventType.INSUFFICIENT_FUNDS)
        assert game.run.current_bet == 10


class TestDealer:
    """Dealer turn and round resolution."""

    def test_dealer_plays_to_threshold(self, game, stack):
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        game.stand()
        assert game.play_dealer()
        assert game.state in (Phase.ROUND_OVER, Phase.UPGRADE_SELECTION)
        dealer = game.run.dealer_hand
        assert dealer.value >= 16

    def test_dealer_step_draws_one_card(self, game, stack, hand_of):
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        _set_dealer(game, hand_of("5D", "6C"))
        game.stand()
        assert game.dealer_should_hit
        game.dealer_step()
        assert len(game.run.dealer_hand) == 3

    def test_dealer_stands_on_16_at_low_levels(self, game, stack, hand_of):
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        _set_dealer(game, hand_of("10D", "6C"))
        game.stand()
        assert not game.dealer_should_hit

    def test_dealer_hits_16_from_level_four(self, game, stack, hand_of):
        game.run.house_level = 4
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        _set_dealer(game, hand_of("10D", "6C"))
        game.stand()
        assert game.dealer_should_hit

    def test_play_dealer_outside_turn_rejected(self, game):
        assert not game.play_dealer()

    def test_win_pays_and_progresses(self, game, stack, hand_of):
        stack(game.run, "10S", "QH")
        game.place_bet(10)
        _set_dealer(game, hand_of("10D", "7C"))
        game.stand()
        game.play_dealer()

        run = game.run
        assert run.credits == Decimal(110)
        assert run.essence == 12
        assert run.corruption_tokens == 1
        assert game.state == Phase.ROUND_OVER

    def test_level_up_offers_upgrades(self, game, stack, hand_of):
        game.run.corruption_tokens = game.run.corruption_threshold - 1
        stack(game.run, "10S", "QH")
        game.place_bet(10)
        _set_dealer(game, hand_of("10D", "7C"))
        game.stand()
        game.play_dealer()

        run = game.run
        assert game.state == Phase.UPGRADE_SELECTION
        assert run.house_level == 2
        assert len(run.offered_upgrade_ids) == 3
        assert _events(game, EventType.LEVEL_UP)

        choice = run.offered_upgrade_ids[0]
        assert not game.select_upgrade("not_offered")
        assert game.select_upgrade(choice)
        assert choice in run.unlocked_upgrades
        assert run.offered_upgrade_ids == []
        assert game.state == Phase.ROUND_OVER

    def test_next_hand_discards_player_cards(self, game, stack):
        dealt = stack(game.run, "10S", "6H", "KC")
        game.place_bet(10)
        game.hit()
        assert game.next_hand()

        run = game.run
        assert game.state == Phase.BETTING
        assert len(run.player_hand) == 0
        assert len(run.dealer_hand) == 0
        assert set(dealt) <= set(run.discard_pile)
        assert run.current_bet == 0

    def test_bankrupt_ends_run(self, game, stack):
        game.run.credits = Decimal(10)
        stack(game.run, "10S", "6H", "KC")
        game.place_bet(10)
        game.hit()

        assert game.state == Phase.GAME_OVER
        assert game.run.message == "SYSTEM FAILURE: INSUFFICIENT FUNDS"
        assert game.meta.fragments == 5
        assert len(_events(game, EventType.FRAGMENTS_AWARDED)) == 1
        assert len(_events(game, EventType.GAME_ENDED)) == 1

    def test_game_over_blocks_actions(self, game, stack):
        game.run.credits = Decimal(10)
        game.run.inventory.append(CONSUMABLES["coolant"])
        stack(game.run, "10S", "6H", "KC")
        game.place_bet(10)
        game.hit()

        assert not game.next_hand()
        assert not game.enter_forge()
        assert not game.use_consumable(0)
        assert game.start_run()
        assert game.state == Phase.BETTING

    def test_deck_integrity_over_many_hands(self, rich_game):
        game = rich_game
        for _ in range(60):
            if game.state == Phase.BETTING:
                game.place_bet(10)
            if game.state == Phase.PLAYING:
                if game.run.player_hand.value < 15:
                    game.hit()
                else:
                    game.stand()
            if game.state == Phase.DEALER_TURN:
                game.play_dealer()
            if game.state == Phase.UPGRADE_SELECTION:
                game.select_upgrade(game.run.offered_upgrade_ids[0])
            if game.state == Phase.ROUND_OVER:
                game.next_hand()
            if game.state == Phase.GAME_OVER:
                break
            game.run.verify_deck_integrity()


class TestDealerVisibility:
    """Hidden dealer cards."""

    def test_hole_card_hidden_during_play(self, game, stack):
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        visible = game.visible_dealer_cards()
        assert visible[0] is not None
        assert visible[1] is None
        assert game.dealer_visible_score is None

    def test_both_hidden_from_level_six(self, game, stack):
        game.run.house_level = 6
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        assert game.visible_dealer_cards() == [None, None]

    def test_revealed_after_round(self, game, stack):
        stack(game.run, "10S", "6H", "KC")
        game.place_bet(10)
        game.hit()
        assert None not in game.visible_dealer_cards()
        assert game.dealer_visible_score == game.run.dealer_hand.value


class TestConsumables:
    """Using inventory items."""

    def test_data_spike_reveals_dealer(self, game, stack):
        game.run.inventory.append(CONSUMABLES["data_spike"])
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        assert game.use_consumable(0)
        assert None not in game.visible_dealer_cards()
        assert game.run.inventory == []

    def test_coolant_reduces_tokens(self, game):
        game.run.inventory.append(CONSUMABLES["coolant"])
        game.run.inventory.append(CONSUMABLES["coolant"])
        game.run.corruption_tokens = 3
        game.use_consumable(0)
        assert game.run.corruption_tokens == 1
        game.use_consumable(0)
        assert game.run.corruption_tokens == 0

    def test_override_chip_guarantees_ten(self, game, stack):
        game.run.inventory.append(CONSUMABLES["override_chip"])
        stack(game.run, "2S", "3H", "4C")
        game.place_bet(10)
        game.use_consumable(0)
        game.hit()
        assert game.run.player_hand.cards[-1].is_ten_value

    def test_bad_slot_rejected(self, game):
        assert not game.use_consumable(0)
        assert game.run.message == "No item in that slot."


class TestForge:
    """Forge entry, purchases and purges."""

    def test_enter_and_leave(self, game):
        assert game.enter_forge()
        assert game.state == Phase.FORGE
        assert game.leave_forge()
        assert game.state == Phase.BETTING

    def test_cannot_enter_mid_hand(self, game, stack):
        stack(game.run, "10S", "7H")
        game.place_bet(10)
        assert not game.enter_forge()

    def test_purchases_only_in_forge(self, game):
        game.run.essence = 1000
        assert not game.buy_consumable("coolant")

    def test_buy_upgrade(self, forge_game):
        run = forge_game.run
        card = run.master_deck[0]
        assert forge_game.buy_upgrade("midas_touch", card.id)
        assert run.essence == 950
        assert [u.id for u in card.upgrades] == ["midas_touch"]

    def test_locked_upgrade_rejected(self, forge_game):
        card = forge_game.run.master_deck[0]
        assert not forge_game.buy_upgrade("lucky_charm", card.id)
        assert forge_game.run.essence == 1000

    def test_unknown_card_rejected(self, forge_game):
        assert not forge_game.buy_upgrade("midas_touch", "no-such-card")

    def test_inflation_price(self, forge_game):
        forge_game.run.house_level = 4
        assert forge_game.upgrade_price("midas_touch") == 75
        assert forge_game.consumable_price("data_spike") == 15

    def test_inventory_capacity(self, forge_game):
        for _ in range(3):
            assert forge_game.buy_consumable("data_spike")
        assert not forge_game.buy_consumable("data_spike")
        assert forge_game.run.message == "Inventory full."
        assert _events(forge_game, EventType.CAPACITY_EXCEEDED)
        assert forge_game.run.essence == 1000 - 45

    def test_not_enough_essence(self, forge_game):
        forge_game.run.essence = 10
        assert not forge_game.buy_consumable("data_spike")
        assert forge_game.run.message == "Not enough Essence."
        assert forge_game.run.inventory == []

    def test_buy_passive(self, forge_game):
        assert forge_game.buy_passive("auto_miner")
        assert forge_game.run.has_passive("auto_miner")
        assert forge_game.run.essence == 900
        assert not forge_game.buy_passive("auto_miner")
        assert forge_game.run.message == "Module already installed."

    def test_curses_not_for_sale(self, forge_game):
        assert forge_game.passive_price("memory_leak") is None
        assert not forge_game.buy_passive("memory_leak")

    def test_purge_card(self, forge_game):
        run = forge_game.run
        card = run.draw_pile[0]
        assert forge_game.purge_card(card.id)
        assert run.essence == 925
        assert len(run.master_deck) == 51
        assert card not in run.draw_pile
        assert forge_game.purge_price == 85
        run.verify_deck_integrity()

    def test_purge_needs_essence(self, forge_game):
        forge_game.run.essence = 10
        card = forge_game.run.master_deck[0]
        assert not forge_game.purge_card(card.id)
        assert forge_game.run.message == "Need 75 Essence to purge."

    def test_purge_floor(self, forge_game):
        run = forge_game.run
        run.master_deck = run.master_deck[:5]
        run.draw_pile = list(run.master_deck)
        assert not forge_game.purge_card(run.master_deck[0].id)
        assert run.message == "Deck too small to purge."


class TestMetaUpgrades:
    """Permanent hacks."""

    def test_buy_hack(self, game):
        game.meta.fragments = 100
        assert game.buy_meta_upgrade("cache_injection")
        assert game.meta.fragments == 50
        assert not game.buy_meta_upgrade("cache_injection")

    def test_hack_needs_fragments(self, game):
        assert not game.buy_meta_upgrade("priority_access")
        assert _events(game, EventType.INSUFFICIENT_FUNDS)

    def test_hacks_apply_at_run_start(self, game):
        game.meta.unlocked_hacks = ["cache_injection", "essence_leak", "threat_dampener", "firewall_bypass"]
        game.start_run()
        run = game.run
        assert run.credits == Decimal(125)
        assert run.essence == 10
        assert run.corruption_threshold == 10
        assert [c.id for c in run.inventory] == ["data_spike"]

    def test_priority_access_discount(self, forge_game):
        forge_game.meta.unlocked_hacks.append("priority_access")
        assert forge_game.upgrade_price("midas_touch") == 45


class TestStore:
    """Engine persistence through a RunStore."""

    def test_run_survives_reload(self, stack):
        backend: dict[str, str] = {}
        game = VoidBlackjackGame(rng=Random(3), store=KeyValueRunStore(backend))
        game.start_run()
        stack(game.run, "10S", "7H")
        game.place_bet(10)

        restored = VoidBlackjackGame(rng=Random(4), store=KeyValueRunStore(backend))
        assert restored.state == Phase.PLAYING
        assert restored.run.credits == game.run.credits
        assert [c.id for c in restored.run.player_hand] == [c.id for c in game.run.player_hand]
        assert restored.meta.total_runs == 1
        assert restored.stand()

    def test_game_over_deletes_run_keeps_meta(self, stack):
        store = KeyValueRunStore()
        game = VoidBlackjackGame(rng=Random(3), store=store)
        game.start_run()
        game.run.credits = Decimal(10)
        stack(game.run, "10S", "6H", "KC")
        game.place_bet(10)
        game.hit()

        assert game.state == Phase.GAME_OVER
        assert store.load_run() is None
        assert store.load_global().fragments == game.meta.fragments


@pytest.mark.parametrize("trigger", ["deal", "player_done", "new_hand", "close_forge"])
def test_invalid_triggers_raise(game, trigger):
    """The state machine itself refuses transitions from the wrong phase."""
    game.machine.set_state(Phase.GAME_OVER.value, model=game)
    with pytest.raises(MachineError):
        getattr(game, trigger)()

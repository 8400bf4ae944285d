"""Tests for run and meta snapshots."""

import json
from decimal import Decimal

import pytest

from core.catalog import CONSUMABLES, PASSIVES, UPGRADES
from core.game import GlobalState, Phase
from core.game.persistence import (
    GLOBAL_KEY,
    RUN_KEY,
    SNAPSHOT_VERSION,
    KeyValueRunStore,
    SnapshotError,
    deserialize_global,
    deserialize_run,
    serialize_global,
    serialize_run,
)


class TestRunSnapshot:
    """Serializing a run and reading it back."""

    def test_round_trip_keeps_card_identity(self, run):
        run.player_hand.add_card(run.draw_pile.pop())
        run.discard_pile.append(run.draw_pile.pop())

        restored = deserialize_run(serialize_run(run))

        assert [c.id for c in restored.master_deck] == [c.id for c in run.master_deck]
        assert [c.id for c in restored.draw_pile] == [c.id for c in run.draw_pile]
        assert [c.id for c in restored.discard_pile] == [c.id for c in run.discard_pile]
        # Piles share the master deck's card objects
        assert restored.player_hand.cards[0] is restored.find_card(run.player_hand.cards[0].id)
        restored.verify_deck_integrity()

    def test_round_trip_keeps_upgrades(self, run):
        run.master_deck[0].attach(UPGRADES["midas_touch"])
        run.master_deck[0].attach(UPGRADES["midas_touch"])

        restored = deserialize_run(serialize_run(run))

        card = restored.find_card(run.master_deck[0].id)
        assert [u.id for u in card.upgrades] == ["midas_touch", "midas_touch"]

    def test_round_trip_keeps_resources(self, run):
        run.credits = Decimal("112.5")
        run.essence = 33
        run.inventory.append(CONSUMABLES["coolant"])
        run.active_passives.append(PASSIVES["vip_protocol"])
        run.house_level = 4
        run.corruption_tokens = 3
        run.corruption_threshold = 14
        run.phase = Phase.FORGE
        run.offered_upgrade_ids = ["lucky_charm"]

        restored = deserialize_run(json.loads(json.dumps(serialize_run(run))))

        assert restored.credits == Decimal("112.5")
        assert restored.essence == 33
        assert [c.id for c in restored.inventory] == ["coolant"]
        assert restored.passive_ids == ["vip_protocol"]
        assert restored.house_level == 4
        assert restored.corruption_tokens == 3
        assert restored.corruption_threshold == 14
        assert restored.phase == Phase.FORGE
        assert restored.offered_upgrade_ids == ["lucky_charm"]

    def test_version_one_is_backfilled(self, run):
        data = serialize_run(run)
        data["version"] = 1
        for key in ("unlocked_upgrades", "offered_upgrade_ids", "is_doubled", "message"):
            del data[key]

        restored = deserialize_run(data)

        assert restored.unlocked_upgrades == ["midas_touch", "soul_siphon", "firewall_shard"]
        assert restored.offered_upgrade_ids == []
        assert restored.message == ""

    def test_unknown_upgrade_ids_dropped(self, run):
        data = serialize_run(run)
        data["unlocked_upgrades"].append("retired_upgrade")
        assert "retired_upgrade" not in deserialize_run(data).unlocked_upgrades

    def test_future_version_rejected(self, run):
        data = serialize_run(run)
        data["version"] = SNAPSHOT_VERSION + 1
        with pytest.raises(SnapshotError):
            deserialize_run(data)

    def test_unknown_card_rejected(self, run):
        data = serialize_run(run)
        data["draw_pile"].append("ghost-card")
        with pytest.raises(SnapshotError):
            deserialize_run(data)

    def test_card_in_two_piles_rejected(self, run):
        data = serialize_run(run)
        data["discard_pile"].append(data["draw_pile"][0])
        with pytest.raises(SnapshotError, match="more than one place"):
            deserialize_run(data)

    def test_missing_field_rejected(self, run):
        data = serialize_run(run)
        del data["credits"]
        with pytest.raises(SnapshotError):
            deserialize_run(data)


class TestGlobalSnapshot:
    """Meta state snapshots."""

    def test_round_trip(self):
        meta = GlobalState(fragments=42, unlocked_hacks=["essence_leak"], total_runs=3)
        assert deserialize_global(serialize_global(meta)) == meta

    def test_missing_fields_default(self):
        assert deserialize_global({}) == GlobalState()

    def test_bad_values_rejected(self):
        with pytest.raises(SnapshotError):
            deserialize_global({"fragments": "lots"})


class TestKeyValueRunStore:
    """JSON snapshots in a string mapping."""

    def test_empty_store(self):
        store = KeyValueRunStore()
        assert store.load_run() is None
        assert store.load_global() == GlobalState()

    def test_save_and_load(self, run):
        backend: dict[str, str] = {}
        store = KeyValueRunStore(backend)
        store.save_run(run)
        store.save_global(GlobalState(fragments=7))

        assert set(backend) == {RUN_KEY, GLOBAL_KEY}
        assert store.load_run().credits == run.credits
        assert store.load_global().fragments == 7

    def test_delete_run(self, run):
        store = KeyValueRunStore()
        store.save_run(run)
        store.delete_run()
        store.delete_run()
        assert store.load_run() is None

    def test_corrupt_run_treated_as_absent(self, caplog):
        store = KeyValueRunStore({RUN_KEY: "{not json"})
        assert store.load_run() is None
        assert "corrupted" in caplog.text

    def test_corrupt_global_uses_defaults(self):
        store = KeyValueRunStore({GLOBAL_KEY: json.dumps(["not", "a", "dict"])})
        assert store.load_global() == GlobalState()

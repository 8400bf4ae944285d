"""Static catalog of upgrades, consumables, passives, meta hacks and house debuffs.

Entries are immutable and keyed by stable string ids. Upgrades carry a
tuple of tagged effects so composite upgrades need no id-specific rules.
"""

from dataclasses import dataclass
from enum import Enum


class EffectKind(Enum):
    """What a single upgrade effect does."""

    BONUS_CREDITS = "bonus_credits"
    BONUS_ESSENCE = "bonus_essence"
    SHIELD = "shield"
    CRITICAL = "critical"
    REDUCE_CORRUPTION = "reduce_corruption"
    ON_BUST_ESSENCE = "on_bust_essence"
    ON_21_CREDITS = "on_21_credits"
    RISK_CORRUPTION = "risk_corruption"


@dataclass(frozen=True)
class Effect:
    """One discrete effect with its magnitude."""

    kind: EffectKind
    value: float


@dataclass(frozen=True)
class Upgrade:
    """A card upgrade sold in the forge."""

    id: str
    name: str
    description: str
    cost: int
    effects: tuple[Effect, ...]

    @property
    def effect_type(self) -> EffectKind:
        """Primary effect, used for display and grouping."""
        return self.effects[0].kind

    def values_of(self, kind: EffectKind) -> list[float]:
        """Return the magnitudes of every effect of the given kind."""
        return [effect.value for effect in self.effects if effect.kind == kind]


class ConsumableType(Enum):
    """Single-use item effects."""

    REVEAL_DEALER = "reveal_dealer"
    REDUCE_THREAT = "reduce_threat"
    GUARANTEE_10 = "guarantee_10"


@dataclass(frozen=True)
class Consumable:
    """An inventory item bought with essence."""

    id: str
    name: str
    description: str
    cost: int
    type: ConsumableType


class PassiveType(Enum):
    """Boons help the player, curses help the house."""

    BOON = "boon"
    CURSE = "curse"


class Rarity(Enum):
    COMMON = "common"
    RARE = "rare"
    LEGENDARY = "legendary"


@dataclass(frozen=True)
class Passive:
    """A run-scoped modifier. Only boons have a shop cost."""

    id: str
    name: str
    description: str
    type: PassiveType
    cost: int | None = None
    rarity: Rarity | None = None

    @property
    def is_curse(self) -> bool:
        return self.type == PassiveType.CURSE


@dataclass(frozen=True)
class MetaUpgrade:
    """A permanent hack bought with fragments, applied once at run start."""

    id: str
    name: str
    description: str
    cost: int
    bonus_credits: int = 0
    bonus_essence: int = 0
    bonus_threshold: int = 0
    bonus_consumable: str | None = None


@dataclass(frozen=True)
class HouseDebuff:
    """Flavour and rules summary for a house level."""

    level: int
    name: str
    description: str


# Passive ids referenced by rules
AUTO_MINER = "auto_miner"
VIP_PROTOCOL = "vip_protocol"
BACKUP_BATTERY = "backup_battery"
MEMORY_LEAK = "memory_leak"
ENCRYPTION_ERROR = "encryption_error"
POWER_SURGE = "power_surge"

# Meta hack ids referenced by rules
PRIORITY_ACCESS = "priority_access"


def _upgrade(
    id: str, name: str, description: str, cost: int, *effects: tuple[EffectKind, float]
) -> Upgrade:
    return Upgrade(
        id=id,
        name=name,
        description=description,
        cost=cost,
        effects=tuple(Effect(kind, value) for kind, value in effects),
    )


_UPGRADE_LIST: list[Upgrade] = [
    # Starter set
    _upgrade("midas_touch", "Midas Touch", "+5 Credits when dealt.", 50,
             (EffectKind.BONUS_CREDITS, 5)),
    _upgrade("soul_siphon", "Soul Siphon", "+2 Essence when dealt.", 30,
             (EffectKind.BONUS_ESSENCE, 2)),
    _upgrade("firewall_shard", "Firewall Shard", "If Bust, 50% chance to refund 50% bet.", 75,
             (EffectKind.SHIELD, 0.5)),
    # Unlockable set
    _upgrade("lucky_charm", "Lucky Charm", "Wins with this card grant +25% payout.", 100,
             (EffectKind.CRITICAL, 0.25)),
    _upgrade("credit_cache", "Credit Cache", "+15 Credits when dealt.", 120,
             (EffectKind.BONUS_CREDITS, 15)),
    _upgrade("essence_well", "Essence Well", "+4 Essence when dealt.", 80,
             (EffectKind.BONUS_ESSENCE, 4)),
    _upgrade("high_roller", "High Roller", "Wins with this card grant +50% payout.", 200,
             (EffectKind.CRITICAL, 0.5)),
    _upgrade("emergency_breaker", "Emergency Breaker", "If Bust, 90% chance to refund 50% bet.", 150,
             (EffectKind.SHIELD, 0.9)),
    _upgrade("cooling_fan", "Cooling Fan", "Reduces Threat by 1 when dealt.", 100,
             (EffectKind.REDUCE_CORRUPTION, 1)),
    _upgrade("recycler", "Recycler", "If you Bust with this card, gain 5 Essence.", 60,
             (EffectKind.ON_BUST_ESSENCE, 5)),
    _upgrade("jackpot_protocol", "Jackpot Protocol", "If this card completes a 21, gain 50 Credits.", 110,
             (EffectKind.ON_21_CREDITS, 50)),
    _upgrade("hybrid_chip", "Hybrid Chip", "+3 Credits and +1 Essence when dealt.", 60,
             (EffectKind.BONUS_CREDITS, 3), (EffectKind.BONUS_ESSENCE, 1)),
    _upgrade("risk_processor", "Risk Processor", "+15 Credits when dealt, but +1 Threat.", 80,
             (EffectKind.RISK_CORRUPTION, 15)),
    _upgrade("essence_converter", "Essence Converter", "-5 Credits but +3 Essence when dealt.", 70,
             (EffectKind.BONUS_ESSENCE, 3), (EffectKind.BONUS_CREDITS, -5)),
    _upgrade("parity_bit", "Parity Bit", "+10 Credits when dealt.", 90,
             (EffectKind.BONUS_CREDITS, 10)),
]

UPGRADES: dict[str, Upgrade] = {u.id: u for u in _UPGRADE_LIST}

STARTING_UPGRADE_IDS: tuple[str, ...] = ("midas_touch", "soul_siphon", "firewall_shard")

CONSUMABLES: dict[str, Consumable] = {
    c.id: c
    for c in [
        Consumable("data_spike", "Data Spike", "Reveal the Dealer's hidden card.", 15,
                   ConsumableType.REVEAL_DEALER),
        Consumable("coolant", "System Coolant", "Reduces Threat Level progress by 2.", 25,
                   ConsumableType.REDUCE_THREAT),
        Consumable("override_chip", "Override Chip", "The next card you draw will be a 10 or Face card.", 40,
                   ConsumableType.GUARANTEE_10),
    ]
}

PASSIVES: dict[str, Passive] = {
    p.id: p
    for p in [
        # Boons
        Passive(AUTO_MINER, "Auto-Miner", "Gain +1 Essence at the start of every hand.",
                PassiveType.BOON, cost=100, rarity=Rarity.COMMON),
        Passive(VIP_PROTOCOL, "VIP Protocol", "+10% Payouts.",
                PassiveType.BOON, cost=150, rarity=Rarity.RARE),
        Passive(BACKUP_BATTERY, "Backup Battery", "If you have 0 Essence, gain 5 Essence.",
                PassiveType.BOON, cost=80, rarity=Rarity.COMMON),
        # Curses
        Passive(MEMORY_LEAK, "Memory Leak", "-1 Credit every time you Hit.", PassiveType.CURSE),
        Passive(ENCRYPTION_ERROR, "Encryption Error", "Shop prices +20%.", PassiveType.CURSE),
        Passive(POWER_SURGE, "Power Surge", "Every win feeds the House an extra Threat token.",
                PassiveType.CURSE),
    ]
}

META_UPGRADES: dict[str, MetaUpgrade] = {
    m.id: m
    for m in [
        MetaUpgrade("cache_injection", "Cache Injection", "Start each run with +25 Credits.", 50,
                    bonus_credits=25),
        MetaUpgrade("essence_leak", "Essence Leak", "Start each run with +10 Essence.", 40,
                    bonus_essence=10),
        MetaUpgrade("threat_dampener", "Threat Dampener", "The first level-up needs 2 more wins.", 75,
                    bonus_threshold=2),
        MetaUpgrade("firewall_bypass", "Firewall Bypass", "Start each run holding a Data Spike.", 60,
                    bonus_consumable="data_spike"),
        MetaUpgrade(PRIORITY_ACCESS, "Priority Access", "Forge prices -10%.", 100),
    ]
}

HOUSE_DEBUFFS: dict[int, HouseDebuff] = {
    1: HouseDebuff(1, "The Awakening", "The House is watching. No effects yet."),
    2: HouseDebuff(2, "Surveillance", "Standard security. Ties favour the player."),
    3: HouseDebuff(3, "Essence Tax", "Essence gain reduced by 1 per card."),
    4: HouseDebuff(4, "Inflation", "Upgrade costs increased by 50%."),
    5: HouseDebuff(5, "BOSS: The Architect", "Dealer starts with a Face Card (K). Dealer wins Ties."),
    6: HouseDebuff(6, "Void Stare", "Dealer hides both cards until turn end."),
    7: HouseDebuff(7, "Rigged Table", "Dealer wins ties (Permanent)."),
}


def debuff_for_level(level: int) -> HouseDebuff:
    """Return the debuff shown for a house level (levels past 7 reuse level 7)."""
    return HOUSE_DEBUFFS[max(1, min(level, max(HOUSE_DEBUFFS)))]


def curses() -> list[Passive]:
    """All curse passives, in catalog order."""
    return [p for p in PASSIVES.values() if p.is_curse]

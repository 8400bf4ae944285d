"""Corruption, house levels, upgrade offers and curses."""

import math
from dataclasses import dataclass, field
from random import Random

from core.catalog import POWER_SURGE, UPGRADES, Passive, curses
from core.game.run import RunState
from core.rules import DEFAULT_RULES, HouseRules


@dataclass(frozen=True)
class ProgressionResult:
    """Progression after one won round."""

    corruption_tokens: int
    house_level: int
    corruption_threshold: int
    leveled_up: bool = False
    offered_upgrade_ids: list[str] = field(default_factory=list)
    granted_curse: Passive | None = None

    @property
    def message(self) -> str:
        parts = []
        if self.leveled_up:
            parts.append("The House grows stronger!")
        if self.granted_curse is not None:
            parts.append(f"SYSTEM GLITCH: {self.granted_curse.name} DETECTED.")
        return " ".join(parts)


def advance_progression(
    run: RunState,
    rng: Random,
    rules: HouseRules = DEFAULT_RULES,
) -> ProgressionResult:
    """
    Accrue corruption for a won round and level the house up at threshold.

    A level-up resets the tokens, ratchets the threshold, offers up to
    three random locked upgrades and, on even levels past the curse
    level, grants one random curse the run does not have yet. The run is
    not modified.
    """
    tokens = run.corruption_tokens + 1
    if run.has_passive(POWER_SURGE):
        tokens += 1

    if tokens < run.corruption_threshold:
        return ProgressionResult(
            corruption_tokens=tokens,
            house_level=run.house_level,
            corruption_threshold=run.corruption_threshold,
        )

    level = run.house_level + 1
    threshold = run.corruption_threshold + rules.threshold_step

    locked = [uid for uid in UPGRADES if uid not in run.unlocked_upgrades]
    offered = rng.sample(locked, min(rules.upgrade_offer_count, len(locked))) if locked else []

    granted = None
    if level > rules.curse_min_level and level % 2 == 0:
        available = [c for c in curses() if not run.has_passive(c.id)]
        if available:
            granted = rng.choice(available)

    return ProgressionResult(
        corruption_tokens=0,
        house_level=level,
        corruption_threshold=threshold,
        leveled_up=True,
        offered_upgrade_ids=offered,
        granted_curse=granted,
    )


def fragments_earned(house_level: int, essence: int, rules: HouseRules = DEFAULT_RULES) -> int:
    """Meta currency awarded when a run ends."""
    return math.floor(house_level * rules.fragments_per_level + essence / rules.essence_per_fragment)

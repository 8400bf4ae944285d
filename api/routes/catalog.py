"""Read-only catalog endpoint."""

from fastapi import APIRouter

from api.schemas import (
    CatalogResponse,
    ConsumableCatalogEntry,
    DebuffCatalogEntry,
    MetaUpgradeCatalogEntry,
    PassiveCatalogEntry,
    UpgradeCatalogEntry,
    UpgradeEffectResponse,
)
from core.catalog import (
    CONSUMABLES,
    HOUSE_DEBUFFS,
    META_UPGRADES,
    PASSIVES,
    STARTING_UPGRADE_IDS,
    UPGRADES,
)

router = APIRouter()


def _build_catalog() -> CatalogResponse:
    return CatalogResponse(
        upgrades=[
            UpgradeCatalogEntry(
                id=u.id,
                name=u.name,
                description=u.description,
                cost=u.cost,
                effects=[UpgradeEffectResponse(kind=e.kind.value, value=e.value) for e in u.effects],
            )
            for u in UPGRADES.values()
        ],
        starting_upgrades=list(STARTING_UPGRADE_IDS),
        consumables=[
            ConsumableCatalogEntry(
                id=c.id, name=c.name, description=c.description, cost=c.cost, type=c.type.value
            )
            for c in CONSUMABLES.values()
        ],
        passives=[
            PassiveCatalogEntry(
                id=p.id,
                name=p.name,
                description=p.description,
                type=p.type.value,
                cost=p.cost,
                rarity=p.rarity.value if p.rarity else None,
            )
            for p in PASSIVES.values()
        ],
        meta_upgrades=[
            MetaUpgradeCatalogEntry(id=m.id, name=m.name, description=m.description, cost=m.cost)
            for m in META_UPGRADES.values()
        ],
        house_debuffs=[
            DebuffCatalogEntry(level=d.level, name=d.name, description=d.description)
            for d in HOUSE_DEBUFFS.values()
        ],
    )


@router.get("")
async def get_catalog() -> CatalogResponse:
    """Upgrades, consumables, passives, meta hacks and house debuffs."""
    return _build_catalog()

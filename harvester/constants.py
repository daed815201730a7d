"""
harvester.constants — Tiers, Yield Rates & Column Maps
=======================================================

Single source of truth for the tier enumeration and everything keyed by it:
daily yield rates, holdings keys, and the fixed tier → column-name maps used
by the snapshot and entitlement tables.  Import from here instead of
re-deriving names from strings elsewhere.
"""

from __future__ import annotations

import enum


# ---------------------------------------------------------------------------
# Tier enumeration
# ---------------------------------------------------------------------------
class Tier(enum.StrEnum):
    """Leaf colour of an asset, shared by regular NFTs and cNFTs."""
    GOLD = "gold"
    SILVER = "silver"
    PURPLE = "purple"
    DARK_GREEN = "dark_green"
    LIGHT_GREEN = "light_green"


# Highest-value tier first; used for display ordering.
TIER_ORDER: tuple[Tier, ...] = (
    Tier.GOLD,
    Tier.SILVER,
    Tier.PURPLE,
    Tier.DARK_GREEN,
    Tier.LIGHT_GREEN,
)

# Holdings key for the special (OG420) tier
SPECIAL_KEY = "og420"

# Default classification prefix of the compressed ("seedling") family
DEFAULT_COMPRESSED_PREFIX = "seedling_"


# ---------------------------------------------------------------------------
# Holdings keys — what a RoleCatalogEntry.classification may name
# ---------------------------------------------------------------------------
REGULAR_KEYS: dict[Tier, str] = {tier: tier.value for tier in TIER_ORDER}

COMPRESSED_KEYS: dict[Tier, str] = {
    Tier.GOLD: "cnft_gold",
    Tier.SILVER: "cnft_silver",
    Tier.PURPLE: "cnft_purple",
    Tier.DARK_GREEN: "cnft_dark_green",
    Tier.LIGHT_GREEN: "cnft_light_green",
}

ALL_HOLDING_KEYS: frozenset[str] = frozenset(
    {*REGULAR_KEYS.values(), *COMPRESSED_KEYS.values(), SPECIAL_KEY}
)


# ---------------------------------------------------------------------------
# Column maps — holdings_snapshots / entitlement_states
# ---------------------------------------------------------------------------
REGULAR_COUNT_COLUMNS: dict[Tier, str] = {
    Tier.GOLD: "gold_count",
    Tier.SILVER: "silver_count",
    Tier.PURPLE: "purple_count",
    Tier.DARK_GREEN: "dark_green_count",
    Tier.LIGHT_GREEN: "light_green_count",
}

COMPRESSED_COUNT_COLUMNS: dict[Tier, str] = {
    Tier.GOLD: "cnft_gold_count",
    Tier.SILVER: "cnft_silver_count",
    Tier.PURPLE: "cnft_purple_count",
    Tier.DARK_GREEN: "cnft_dark_green_count",
    Tier.LIGHT_GREEN: "cnft_light_green_count",
}

HARVESTER_FLAG_COLUMNS: dict[Tier, str] = {
    Tier.GOLD: "harvester_gold",
    Tier.SILVER: "harvester_silver",
    Tier.PURPLE: "harvester_purple",
    Tier.DARK_GREEN: "harvester_dark_green",
    Tier.LIGHT_GREEN: "harvester_light_green",
}


# ---------------------------------------------------------------------------
# Daily yield rates (per unit, per day)
# ---------------------------------------------------------------------------
REGULAR_YIELD_RATES: dict[Tier, int] = {
    Tier.GOLD: 30,
    Tier.SILVER: 25,
    Tier.PURPLE: 20,
    Tier.DARK_GREEN: 15,
    Tier.LIGHT_GREEN: 10,
}

SPECIAL_YIELD_RATE = 50

COMPRESSED_YIELD_RATES: dict[Tier, int] = {
    Tier.GOLD: 5,
    Tier.SILVER: 4,
    Tier.PURPLE: 3,
    Tier.DARK_GREEN: 2,
    Tier.LIGHT_GREEN: 1,
}


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------
TIER_LABELS: dict[Tier, str] = {
    Tier.GOLD: "Gold",
    Tier.SILVER: "Silver",
    Tier.PURPLE: "Purple",
    Tier.DARK_GREEN: "Dark Green",
    Tier.LIGHT_GREEN: "Light Green",
}

TIER_EMOJI: dict[Tier, str] = {
    Tier.GOLD: "\U0001f7e1",        # 🟡
    Tier.SILVER: "\u26aa",        # ⚪
    Tier.PURPLE: "\U0001f7e3",      # 🟣
    Tier.DARK_GREEN: "\U0001f332",  # 🌲
    Tier.LIGHT_GREEN: "\U0001f331", # 🌱
}


def tier_from_label(label: str | None) -> Tier | None:
    """Map a trait value like ``"Dark green"`` to its :class:`Tier`.

    Returns ``None`` for blank or unrecognised labels.
    """
    if not label:
        return None
    slug = "_".join(label.strip().lower().replace("-", " ").split())
    try:
        return Tier(slug)
    except ValueError:
        return None

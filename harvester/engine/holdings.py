"""
harvester.engine.holdings — Holdings Value Object & Classification Parsing
===========================================================================

Pure data helpers shared by the aggregator, the yield calculator, and the
eligibility resolver.  No DB I/O here: the aggregator feeds grouped rows in
and gets a :class:`Holdings` back.

A classification tag encodes two things:

* the tier (leaf colour), and
* whether the asset belongs to the compressed family, signalled by the
  configured prefix (``seedling_gold`` → compressed gold).

Regular assets carry the bare tier slug (``gold``).  Anything that does not
resolve to a :class:`~harvester.constants.Tier` counts towards no tier.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from harvester.constants import (
    COMPRESSED_COUNT_COLUMNS,
    COMPRESSED_KEYS,
    DEFAULT_COMPRESSED_PREFIX,
    REGULAR_COUNT_COLUMNS,
    REGULAR_KEYS,
    SPECIAL_KEY,
    TIER_ORDER,
    Tier,
)

if TYPE_CHECKING:
    from harvester.database.models import HoldingsSnapshot

# holdings key → (tier, compressed?)
_KEY_LOOKUP: dict[str, tuple[Tier, bool]] = {
    **{key: (tier, False) for tier, key in REGULAR_KEYS.items()},
    **{key: (tier, True) for tier, key in COMPRESSED_KEYS.items()},
}


@dataclass(frozen=True, slots=True)
class Classification:
    tier: Tier | None
    compressed: bool


def is_compressed(tag: str | None, prefix: str = DEFAULT_COMPRESSED_PREFIX) -> bool:
    return bool(tag) and tag.startswith(prefix)


def parse_classification(
    tag: str | None, prefix: str = DEFAULT_COMPRESSED_PREFIX
) -> Classification:
    """Split a stored classification tag into tier and family."""
    if not tag:
        return Classification(tier=None, compressed=False)
    compressed = tag.startswith(prefix)
    slug = tag[len(prefix):] if compressed else tag
    try:
        tier: Tier | None = Tier(slug)
    except ValueError:
        tier = None
    return Classification(tier=tier, compressed=compressed)


def compressed_classification(tier: Tier, prefix: str = DEFAULT_COMPRESSED_PREFIX) -> str:
    """The stored tag for a compressed asset of *tier* (``seedling_gold``)."""
    return prefix + tier.value


# ---------------------------------------------------------------------------
# Holdings
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Holdings:
    """Per-identity counts, split regular vs. compressed.

    Totals are always computed from the tier counts, so the sum invariant
    cannot be violated by construction.
    """

    regular: Mapping[Tier, int] = field(default_factory=dict)
    compressed: Mapping[Tier, int] = field(default_factory=dict)
    special: int = 0

    @classmethod
    def empty(cls) -> Holdings:
        return cls()

    @classmethod
    def from_snapshot(cls, row: HoldingsSnapshot | None) -> Holdings:
        """Read a persisted snapshot row; ``None`` yields empty holdings."""
        if row is None:
            return cls.empty()
        return cls(
            regular={tier: row.regular_count(tier) for tier in TIER_ORDER},
            compressed={tier: row.compressed_count(tier) for tier in TIER_ORDER},
            special=row.og420_count or 0,
        )

    def regular_count(self, tier: Tier) -> int:
        return self.regular.get(tier, 0) or 0

    def compressed_count(self, tier: Tier) -> int:
        return self.compressed.get(tier, 0) or 0

    @property
    def total(self) -> int:
        return sum(self.regular_count(t) for t in TIER_ORDER)

    @property
    def compressed_total(self) -> int:
        return sum(self.compressed_count(t) for t in TIER_ORDER)

    def count(self, key: str) -> int:
        """Count for a holdings key (``gold``, ``cnft_gold``, ``og420``).

        Unknown keys count as zero.
        """
        if key == SPECIAL_KEY:
            return self.special
        found = _KEY_LOOKUP.get(key)
        if found is None:
            return 0
        tier, compressed = found
        return self.compressed_count(tier) if compressed else self.regular_count(tier)

    def column_values(self) -> dict[str, int]:
        """Column name → value for a ``holdings_snapshots`` row."""
        values: dict[str, int] = {}
        for tier in TIER_ORDER:
            values[REGULAR_COUNT_COLUMNS[tier]] = self.regular_count(tier)
            values[COMPRESSED_COUNT_COLUMNS[tier]] = self.compressed_count(tier)
        values["og420_count"] = self.special
        values["total_count"] = self.total
        values["cnft_total_count"] = self.compressed_total
        return values

    def as_dict(self) -> dict:
        return {
            "counts": {
                SPECIAL_KEY: self.special,
                **{tier.value: self.regular_count(tier) for tier in TIER_ORDER},
                "total": self.total,
            },
            "cnft_counts": {
                **{tier.value: self.compressed_count(tier) for tier in TIER_ORDER},
                "total": self.compressed_total,
            },
        }


def fold_holdings(
    rows: Iterable[tuple[str | None, bool, int]],
    prefix: str = DEFAULT_COMPRESSED_PREFIX,
) -> Holdings:
    """Fold grouped ``(classification, is_special, count)`` rows into Holdings.

    Regular tiers exclude the compressed family; compressed tiers include
    only it.  The special count covers regular assets flagged special.
    """
    regular: dict[Tier, int] = {tier: 0 for tier in TIER_ORDER}
    compressed: dict[Tier, int] = {tier: 0 for tier in TIER_ORDER}
    special = 0
    for tag, flagged, n in rows:
        parsed = parse_classification(tag, prefix)
        if parsed.compressed:
            if parsed.tier is not None:
                compressed[parsed.tier] = compressed.get(parsed.tier, 0) + n
            continue
        if flagged:
            special += n
        if parsed.tier is not None:
            regular[parsed.tier] = regular.get(parsed.tier, 0) + n
    return Holdings(regular=regular, compressed=compressed, special=special)

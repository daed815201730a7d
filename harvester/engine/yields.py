"""
harvester.engine.yields — Daily Yield Calculator
=================================================

Pure function of a :class:`~harvester.engine.holdings.Holdings`.
No DB I/O, never persisted — the holdings read API calls it on every
request so a rate change takes effect immediately.

    yield = Σ regular[tier] × REGULAR_RATE[tier]
          + special × SPECIAL_RATE
          + Σ compressed[tier] × COMPRESSED_RATE[tier]
"""

from __future__ import annotations

from dataclasses import dataclass, field

from harvester.constants import (
    COMPRESSED_YIELD_RATES,
    REGULAR_YIELD_RATES,
    SPECIAL_KEY,
    SPECIAL_YIELD_RATE,
    TIER_ORDER,
    Tier,
)
from harvester.engine.holdings import Holdings


@dataclass
class YieldBreakdown:
    """Daily yield split by tier and family."""

    regular: dict[Tier, int] = field(default_factory=dict)
    compressed: dict[Tier, int] = field(default_factory=dict)
    special: int = 0

    @property
    def regular_total(self) -> int:
        return sum(self.regular.values()) + self.special

    @property
    def compressed_total(self) -> int:
        return sum(self.compressed.values())

    @property
    def total(self) -> int:
        return self.regular_total + self.compressed_total

    def as_dict(self) -> dict:
        return {
            "daily_yields": {
                SPECIAL_KEY: self.special,
                **{tier.value: self.regular.get(tier, 0) for tier in TIER_ORDER},
                "total": self.total,
            },
            "cnft_daily_yields": {
                **{tier.value: self.compressed.get(tier, 0) for tier in TIER_ORDER},
                "total": self.compressed_total,
            },
        }


def calculate_yield(holdings: Holdings) -> YieldBreakdown:
    """Per-tier daily yield for *holdings*.  Zero or absent counts yield 0."""
    return YieldBreakdown(
        regular={
            tier: holdings.regular_count(tier) * REGULAR_YIELD_RATES[tier]
            for tier in TIER_ORDER
        },
        compressed={
            tier: holdings.compressed_count(tier) * COMPRESSED_YIELD_RATES[tier]
            for tier in TIER_ORDER
        },
        special=holdings.special * SPECIAL_YIELD_RATE,
    )


def daily_yield(holdings: Holdings) -> int:
    """Total daily yield for *holdings*."""
    return calculate_yield(holdings).total

"""
harvester.engine.eligibility — Entitlement Resolution
======================================================

Pure mapping from :class:`~harvester.engine.holdings.Holdings` and the role
catalog to a canonical :class:`EntitlementSet`.  No DB or Discord I/O.

A catalog entry is eligible iff the holdings count for its classification
is greater than zero.  For compressed keys the per-tier "harvester" flag is
consulted; the flags themselves are recomputed from the same holdings in the
same call, so flags and entitlements can never disagree.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from harvester.constants import COMPRESSED_KEYS, HARVESTER_FLAG_COLUMNS, TIER_ORDER, Tier
from harvester.engine.catalog import CatalogRole
from harvester.engine.holdings import Holdings

if TYPE_CHECKING:
    from harvester.database.models import EntitlementState

_FLAG_BY_KEY: dict[str, Tier] = {key: tier for tier, key in COMPRESSED_KEYS.items()}


@dataclass(frozen=True)
class EntitlementSet:
    """The entitlements an identity should hold right now."""

    names: frozenset[str] = frozenset()
    flags: Mapping[Tier, bool] = field(default_factory=dict)

    @classmethod
    def from_state(cls, row: EntitlementState) -> EntitlementSet:
        return cls(
            names=frozenset(row.entitlements or ()),
            flags={tier: row.flag(tier) for tier in TIER_ORDER},
        )

    def role_ids(self, catalog: Iterable[CatalogRole]) -> frozenset[int]:
        """Catalog role IDs whose entitlement name is in this set."""
        return frozenset(r.role_id for r in catalog if r.name in self.names)

    def column_values(self) -> dict[str, object]:
        """Column name → value for an ``entitlement_states`` row."""
        values: dict[str, object] = {"entitlements": sorted(self.names)}
        for tier in TIER_ORDER:
            values[HARVESTER_FLAG_COLUMNS[tier]] = bool(self.flags.get(tier, False))
        return values


def harvester_flags(holdings: Holdings) -> dict[Tier, bool]:
    """Whether at least one asset is owned, per compressed tier."""
    return {tier: holdings.compressed_count(tier) > 0 for tier in TIER_ORDER}


def is_eligible(holdings: Holdings, flags: Mapping[Tier, bool], role: CatalogRole) -> bool:
    tier = _FLAG_BY_KEY.get(role.classification)
    if tier is not None:
        return bool(flags.get(tier, False))
    return holdings.count(role.classification) > 0


def resolve_entitlements(
    holdings: Holdings, catalog: Iterable[CatalogRole]
) -> EntitlementSet:
    """Build the complete entitlement set for *holdings*.

    Total: every catalog entry is evaluated, so an entry whose count dropped
    to zero is simply absent from the result.
    """
    flags = harvester_flags(holdings)
    names = frozenset(
        role.name for role in catalog if is_eligible(holdings, flags, role)
    )
    return EntitlementSet(names=names, flags=flags)

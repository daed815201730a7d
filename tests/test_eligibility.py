"""
tests/test_eligibility.py — Entitlement resolution
===================================================
"""

from __future__ import annotations

from harvester.constants import Tier
from harvester.engine.catalog import CatalogRole
from harvester.engine.eligibility import (
    EntitlementSet,
    harvester_flags,
    is_eligible,
    resolve_entitlements,
)
from harvester.engine.holdings import Holdings


def _role(role_id: int, classification: str, name: str | None = None) -> CatalogRole:
    return CatalogRole(
        role_id=role_id,
        name=name or classification,
        display_name=(name or classification).title(),
        kind="harvester" if classification.startswith("cnft_") else "holder",
        classification=classification,
    )


CATALOG = (
    _role(1, "gold"),
    _role(2, "silver"),
    _role(3, "og420"),
    _role(4, "cnft_gold"),
    _role(5, "cnft_silver"),
)


class TestResolveEntitlements:
    def test_gold_and_seedling_gold_scenario(self):
        holdings = Holdings(
            regular={Tier.GOLD: 3, Tier.SILVER: 0},
            compressed={Tier.GOLD: 2},
        )
        result = resolve_entitlements(holdings, CATALOG)
        assert result.names == frozenset({"gold", "cnft_gold"})

    def test_totality_every_positive_entry_present(self):
        holdings = Holdings(
            regular={Tier.GOLD: 1, Tier.SILVER: 1},
            compressed={Tier.GOLD: 1, Tier.SILVER: 1},
            special=1,
        )
        result = resolve_entitlements(holdings, CATALOG)
        assert result.names == frozenset(r.name for r in CATALOG)

    def test_dropped_count_removes_entitlement(self):
        before = resolve_entitlements(Holdings(regular={Tier.SILVER: 1}), CATALOG)
        after = resolve_entitlements(Holdings(regular={Tier.SILVER: 0}), CATALOG)
        assert "silver" in before.names
        assert "silver" not in after.names

    def test_empty_holdings_empty_set(self):
        result = resolve_entitlements(Holdings.empty(), CATALOG)
        assert result.names == frozenset()
        assert not any(result.flags.values())

    def test_flags_follow_compressed_counts(self):
        flags = harvester_flags(Holdings(compressed={Tier.PURPLE: 2}))
        assert flags[Tier.PURPLE] is True
        assert flags[Tier.GOLD] is False

    def test_compressed_key_uses_flag(self):
        holdings = Holdings(compressed={Tier.GOLD: 1})
        assert is_eligible(holdings, {Tier.GOLD: True}, _role(9, "cnft_gold"))
        assert not is_eligible(holdings, {Tier.GOLD: False}, _role(9, "cnft_gold"))

    def test_empty_catalog(self):
        result = resolve_entitlements(Holdings(regular={Tier.GOLD: 5}), ())
        assert result.names == frozenset()


class TestEntitlementSet:
    def test_role_ids_maps_names_through_catalog(self):
        entitlements = EntitlementSet(names=frozenset({"gold", "cnft_gold", "retired"}))
        assert entitlements.role_ids(CATALOG) == frozenset({1, 4})

    def test_column_values_sorted_with_flags(self):
        entitlements = EntitlementSet(
            names=frozenset({"silver", "gold"}),
            flags={Tier.GOLD: True},
        )
        values = entitlements.column_values()
        assert values["entitlements"] == ["gold", "silver"]
        assert values["harvester_gold"] is True
        assert values["harvester_light_green"] is False

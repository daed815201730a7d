"""
tests/test_catalog_cache.py — Role catalog TTL cache
=====================================================
"""

from __future__ import annotations

from conftest import CATALOG, ROLE_GOLD

from harvester.config import RoleSeed
from harvester.database.seed import seed_role_catalog
from harvester.engine.catalog import RoleCatalogCache, managed_role_ids


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestRoleCatalogCache:
    def test_loads_on_first_get(self, db_engine, seeded_catalog):
        cache = RoleCatalogCache(db_engine, ttl=60, clock=FakeClock())
        assert not cache.is_fresh()
        roles = cache.get()
        assert len(roles) == len(CATALOG)
        assert cache.is_fresh()
        assert ROLE_GOLD in managed_role_ids(roles)

    def test_edits_invisible_until_ttl_expires(self, db_engine, seeded_catalog):
        clock = FakeClock()
        cache = RoleCatalogCache(db_engine, ttl=60, clock=clock)
        first = cache.get()

        seed_role_catalog(db_engine, [
            RoleSeed(role_id=7777, name="purple_holder", display_name="Purple", classification="purple"),
        ])
        clock.now += 59
        assert cache.get() == first

        clock.now += 2
        refreshed = cache.get()
        assert len(refreshed) == len(first) + 1
        assert 7777 in managed_role_ids(refreshed)

    def test_empty_catalog(self, db_engine):
        cache = RoleCatalogCache(db_engine, ttl=60, clock=FakeClock())
        assert cache.get() == ()


class TestSeedRoleCatalog:
    def test_idempotent_upsert(self, db_engine):
        assert seed_role_catalog(db_engine, CATALOG) == {"inserted": len(CATALOG), "updated": 0}
        assert seed_role_catalog(db_engine, CATALOG) == {"inserted": 0, "updated": 0}

    def test_updates_changed_row(self, db_engine, seeded_catalog):
        renamed = RoleSeed(
            role_id=ROLE_GOLD, name="gold_holder", display_name="Golden", classification="gold",
        )
        assert seed_role_catalog(db_engine, [renamed]) == {"inserted": 0, "updated": 1}

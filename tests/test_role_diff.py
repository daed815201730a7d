"""
tests/test_role_diff.py — Managed-role diff
============================================
"""

from __future__ import annotations

from harvester.engine.role_diff import compute_role_diff

GOLD, SILVER, PURPLE, UNMANAGED = 1, 2, 3, 99
MANAGED = {GOLD, SILVER, PURPLE}


class TestComputeRoleDiff:
    def test_unmanaged_role_left_alone(self):
        diff = compute_role_diff(entitled={GOLD}, current={UNMANAGED, SILVER}, managed=MANAGED)
        assert diff.to_add == {GOLD}
        assert diff.to_remove == {SILVER}
        assert UNMANAGED not in diff.to_remove

    def test_remove_is_subset_of_managed(self):
        diff = compute_role_diff(entitled=set(), current={GOLD, 50, 51, 52}, managed=MANAGED)
        assert diff.to_remove <= MANAGED
        assert diff.to_remove == {GOLD}

    def test_entitled_outside_catalog_never_added(self):
        diff = compute_role_diff(entitled={GOLD, 77}, current=set(), managed=MANAGED)
        assert diff.to_add == {GOLD}

    def test_in_sync_is_empty(self):
        diff = compute_role_diff(entitled={GOLD, SILVER}, current={GOLD, SILVER, UNMANAGED}, managed=MANAGED)
        assert diff.is_empty

    def test_add_and_remove_disjoint(self):
        diff = compute_role_diff(entitled={GOLD, PURPLE}, current={SILVER, PURPLE}, managed=MANAGED)
        assert not diff.to_add & diff.to_remove
        assert diff.to_add == {GOLD}
        assert diff.to_remove == {SILVER}

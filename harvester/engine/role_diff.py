"""
harvester.engine.role_diff — Managed-Role Diff
===============================================

Computes the minimal add/remove mutation that moves a member's live roles
to their entitled roles, restricted to the roles the catalog manages.

    to_add    = (entitled ∩ managed) − current
    to_remove = (current ∩ managed) − entitled

Roles outside ``managed`` are never touched, whatever the entitlement set
says, so ``to_remove`` is always a subset of ``managed``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RoleDiff:
    to_add: frozenset[int]
    to_remove: frozenset[int]

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def compute_role_diff(
    entitled: Iterable[int],
    current: Iterable[int],
    managed: Iterable[int],
) -> RoleDiff:
    managed_set = frozenset(managed)
    entitled_set = frozenset(entitled) & managed_set
    current_set = frozenset(current)
    return RoleDiff(
        to_add=entitled_set - current_set,
        to_remove=(current_set & managed_set) - entitled_set,
    )

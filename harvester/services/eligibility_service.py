"""
harvester.services.eligibility_service — Entitlement State Rebuild
===================================================================

The only writer of ``entitlement_states``.  Reads the identity's holdings
snapshot and the role catalog, resolves the entitlement set with the pure
:func:`~harvester.engine.eligibility.resolve_entitlements`, and fully
replaces the stored row.

An identity without a snapshot has nothing to resolve against: no row is
written and ``None`` is returned, which the role synchronizer later treats
as "skip", never as "remove everything".
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from harvester.database.engine import get_session
from harvester.database.models import EntitlementState, HoldingsSnapshot
from harvester.engine.catalog import CatalogRole, load_catalog
from harvester.engine.eligibility import EntitlementSet, resolve_entitlements
from harvester.engine.holdings import Holdings

logger = logging.getLogger(__name__)


def rebuild_entitlements(
    session: Session,
    identity_id: int,
    catalog: Iterable[CatalogRole] | None = None,
) -> EntitlementSet | None:
    """Recompute and store the entitlement set for *identity_id*.

    *catalog* defaults to a fresh read of the ``role_catalog`` table.
    """
    snapshot = session.get(HoldingsSnapshot, identity_id)
    if snapshot is None:
        logger.warning(
            "No holdings snapshot; entitlements not rebuilt",
            extra={"identity_id": identity_id},
        )
        return None

    roles = tuple(catalog) if catalog is not None else load_catalog(session)
    entitlements = resolve_entitlements(Holdings.from_snapshot(snapshot), roles)

    row = session.get(EntitlementState, identity_id)
    if row is None:
        row = EntitlementState(identity_id=identity_id)
        session.add(row)
    for column, value in entitlements.column_values().items():
        setattr(row, column, value)
    row.updated_at = datetime.now(UTC)
    return entitlements


def rebuild_identity_entitlements(engine: Engine, identity_id: int) -> EntitlementSet | None:
    """:func:`rebuild_entitlements` in its own transaction."""
    with get_session(engine) as session:
        return rebuild_entitlements(session, identity_id)


def rebuild_many(engine: Engine, identity_ids: Iterable[int]) -> dict:
    """Rebuild entitlements for each identity, one transaction each.

    The catalog is read once for the whole batch.  Returns
    ``{"rebuilt": [...], "missing": [...], "failed": [...]}``.
    """
    with get_session(engine) as session:
        catalog = load_catalog(session)

    rebuilt: list[int] = []
    missing: list[int] = []
    failed: list[int] = []
    for identity_id in identity_ids:
        try:
            with get_session(engine) as session:
                result = rebuild_entitlements(session, identity_id, catalog)
        except Exception:
            logger.exception(
                "Entitlement rebuild failed", extra={"identity_id": identity_id},
            )
            failed.append(identity_id)
            continue
        (rebuilt if result is not None else missing).append(identity_id)

    logger.info(
        "Entitlement rebuild: %d rebuilt, %d without snapshot, %d failed",
        len(rebuilt), len(missing), len(failed),
    )
    return {"rebuilt": rebuilt, "missing": missing, "failed": failed}


def load_entitlements(engine: Engine, identity_id: int) -> EntitlementSet | None:
    """The stored entitlement set, or ``None`` when no row exists."""
    with get_session(engine) as session:
        row = session.get(EntitlementState, identity_id)
        if row is None:
            return None
        return EntitlementSet.from_state(row)

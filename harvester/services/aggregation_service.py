"""
harvester.services.aggregation_service — Holdings Snapshot Recompute
=====================================================================

The only writer of ``holdings_snapshots``.  A snapshot is a pure function of
the ``assets`` and ``identity_links`` tables:

    SELECT a.classification, a.is_special, COUNT(*)
      FROM assets a JOIN identity_links l ON l.wallet_address = a.owner_wallet
     WHERE l.identity_id = :identity
     GROUP BY a.classification, a.is_special

The grouped rows are folded into a :class:`Holdings` and the identity's
snapshot row is fully replaced.  Nothing is incremented, so recomputing
twice is the same as recomputing once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from harvester.constants import DEFAULT_COMPRESSED_PREFIX
from harvester.database.engine import get_session
from harvester.database.models import Asset, HoldingsSnapshot, IdentityLink
from harvester.engine.holdings import Holdings, fold_holdings

logger = logging.getLogger(__name__)


def compute_holdings_from_sources(
    session: Session,
    identity_id: int,
    prefix: str = DEFAULT_COMPRESSED_PREFIX,
) -> Holdings:
    """Holdings for *identity_id* straight from the source tables.  No writes."""
    rows = session.execute(
        select(Asset.classification, Asset.is_special, func.count())
        .join(IdentityLink, IdentityLink.wallet_address == Asset.owner_wallet)
        .where(IdentityLink.identity_id == identity_id)
        .group_by(Asset.classification, Asset.is_special)
    ).all()
    return fold_holdings(
        ((tag, bool(special), int(n)) for tag, special, n in rows), prefix,
    )


def recompute_holdings(
    session: Session,
    identity_id: int,
    display_name: str | None = None,
    *,
    prefix: str = DEFAULT_COMPRESSED_PREFIX,
) -> Holdings:
    """Recompute and fully replace one identity's snapshot.

    Runs inside the caller's transaction (the wallet-link transaction or a
    bulk recompute).  *display_name* overwrites the stored name when given.
    """
    holdings = compute_holdings_from_sources(session, identity_id, prefix)

    row = session.get(HoldingsSnapshot, identity_id)
    if row is None:
        row = HoldingsSnapshot(identity_id=identity_id)
        session.add(row)
    for column, value in holdings.column_values().items():
        setattr(row, column, value)
    if display_name is not None:
        row.display_name = display_name
    row.updated_at = datetime.now(UTC)

    logger.debug(
        "Snapshot recomputed for %d: total=%d cnft_total=%d",
        identity_id, holdings.total, holdings.compressed_total,
    )
    return holdings


def identities_for_wallets(session: Session, wallets: Iterable[str]) -> list[int]:
    """Distinct identity IDs linked to any of *wallets*."""
    wanted = sorted({w for w in wallets if w})
    if not wanted:
        return []
    identities: set[int] = set()
    for start in range(0, len(wanted), 500):
        chunk = wanted[start:start + 500]
        identities.update(session.scalars(
            select(IdentityLink.identity_id)
            .where(IdentityLink.wallet_address.in_(chunk))
            .distinct()
        ))
    return sorted(identities)


def recompute_many(
    engine: Engine,
    identity_ids: Iterable[int],
    *,
    prefix: str = DEFAULT_COMPRESSED_PREFIX,
) -> dict:
    """Recompute each identity in its own transaction.

    A failure for one identity is logged and counted; the rest continue.
    Returns ``{"recomputed": [...], "failed": [...]}``.
    """
    recomputed: list[int] = []
    failed: list[int] = []
    for identity_id in identity_ids:
        try:
            with get_session(engine) as session:
                recompute_holdings(session, identity_id, prefix=prefix)
            recomputed.append(identity_id)
        except Exception:
            logger.exception(
                "Snapshot recompute failed", extra={"identity_id": identity_id},
            )
            failed.append(identity_id)

    logger.info(
        "Snapshot recompute: %d ok, %d failed", len(recomputed), len(failed),
    )
    return {"recomputed": recomputed, "failed": failed}


def recompute_all(engine: Engine, *, prefix: str = DEFAULT_COMPRESSED_PREFIX) -> dict:
    """Rebuild the snapshot of every linked identity."""
    with get_session(engine) as session:
        identity_ids = list(session.scalars(
            select(IdentityLink.identity_id).distinct().order_by(IdentityLink.identity_id)
        ))
    return recompute_many(engine, identity_ids, prefix=prefix)

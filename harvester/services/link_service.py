"""
harvester.services.link_service — Wallet Link Transaction
==========================================================

Links a Solana wallet to a Discord identity.  Everything happens in one
database transaction:

1. Insert the ``identity_links`` row (or refresh its display name).
2. Attach the identity to assets already owned by the wallet.
3. Recompute the identity's holdings snapshot.

If any step fails the whole link is rolled back, so a link never exists
without its snapshot reflecting it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import Engine, select, update

from harvester.constants import DEFAULT_COMPRESSED_PREFIX
from harvester.database.engine import get_session
from harvester.database.models import Asset, IdentityLink
from harvester.engine.holdings import Holdings
from harvester.services.aggregation_service import recompute_holdings

logger = logging.getLogger(__name__)

# Base58 alphabet (no 0, O, I, l), 32–44 chars
WALLET_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


class InvalidWalletError(ValueError):
    """The supplied wallet address is not a base58 Solana address."""


@dataclass(frozen=True)
class LinkResult:
    identity_id: int
    wallet_address: str
    created: bool
    assets_attached: int
    holdings: Holdings


def validate_wallet(wallet: str) -> str:
    """Return the stripped address or raise :class:`InvalidWalletError`."""
    candidate = (wallet or "").strip()
    if not WALLET_RE.match(candidate):
        raise InvalidWalletError(f"Invalid wallet address: {wallet!r}")
    return candidate


def link_wallet(
    engine: Engine,
    identity_id: int,
    wallet: str,
    display_name: str | None = None,
    *,
    prefix: str = DEFAULT_COMPRESSED_PREFIX,
) -> LinkResult:
    """Link *wallet* to *identity_id* and recompute its snapshot atomically.

    Re-linking an already linked wallet is not an error: the display name is
    refreshed (or kept, when none is given) and the snapshot recomputed.
    """
    address = validate_wallet(wallet)

    with get_session(engine) as session:
        link = session.scalar(
            select(IdentityLink).where(
                IdentityLink.identity_id == identity_id,
                IdentityLink.wallet_address == address,
            )
        )
        created = link is None
        if link is None:
            session.add(IdentityLink(
                identity_id=identity_id,
                wallet_address=address,
                display_name=display_name,
            ))
        elif display_name is not None:
            link.display_name = display_name
        else:
            display_name = link.display_name
        session.flush()

        attached = session.execute(
            update(Asset)
            .where(Asset.owner_wallet == address)
            .values(owner_identity_id=identity_id, owner_name=display_name)
        ).rowcount or 0

        holdings = recompute_holdings(session, identity_id, display_name, prefix=prefix)

    logger.info(
        "Wallet %s %s for %d (%d assets, total=%d cnft_total=%d)",
        address, "linked" if created else "re-linked", identity_id,
        attached, holdings.total, holdings.compressed_total,
    )
    return LinkResult(
        identity_id=identity_id,
        wallet_address=address,
        created=created,
        assets_attached=attached,
        holdings=holdings,
    )

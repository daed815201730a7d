"""
harvester.services.holdings_service — Holdings Read API
========================================================

Read-only view of one identity: snapshot counts, daily yield (computed on
every call, never stored), linked wallets and the owned assets split into
the regular and compressed families.

An identity with no snapshot gets a zeroed view rather than an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import Engine, select

from harvester.constants import DEFAULT_COMPRESSED_PREFIX
from harvester.database.engine import get_session
from harvester.database.models import Asset, HoldingsSnapshot, IdentityLink
from harvester.engine.holdings import Holdings
from harvester.engine.yields import YieldBreakdown, calculate_yield


@dataclass(frozen=True)
class OwnedAsset:
    id: str
    name: str
    classification: str | None
    image_url: str | None
    is_special: bool = False

    @classmethod
    def from_row(cls, row: Asset) -> OwnedAsset:
        return cls(
            id=row.id,
            name=row.name,
            classification=row.classification,
            image_url=row.image_url,
            is_special=bool(row.is_special),
        )


@dataclass(frozen=True)
class HoldingsView:
    identity_id: int
    display_name: str | None
    holdings: Holdings
    yields: YieldBreakdown
    wallets: tuple[str, ...] = ()
    assets: tuple[OwnedAsset, ...] = ()
    compressed_assets: tuple[OwnedAsset, ...] = ()
    updated_at: datetime | None = None
    found: bool = field(default=False)

    @property
    def daily_yield(self) -> int:
        return self.yields.total

    def as_dict(self) -> dict:
        return {
            "identity_id": str(self.identity_id),
            "display_name": self.display_name,
            **self.holdings.as_dict(),
            **self.yields.as_dict(),
            "daily_yield": self.daily_yield,
            "wallets": list(self.wallets),
            "assets": [_asset_dict(a) for a in self.assets],
            "cnft_assets": [_asset_dict(a) for a in self.compressed_assets],
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def _asset_dict(asset: OwnedAsset) -> dict:
    return {
        "id": asset.id,
        "name": asset.name,
        "classification": asset.classification,
        "image_url": asset.image_url,
        "is_special": asset.is_special,
    }


def get_holdings(
    engine: Engine,
    identity_id: int,
    *,
    prefix: str = DEFAULT_COMPRESSED_PREFIX,
) -> HoldingsView:
    """Build the :class:`HoldingsView` for *identity_id*."""
    with get_session(engine) as session:
        snapshot = session.get(HoldingsSnapshot, identity_id)
        wallets = tuple(session.scalars(
            select(IdentityLink.wallet_address)
            .where(IdentityLink.identity_id == identity_id)
            .order_by(IdentityLink.id)
        ))

        regular: tuple[OwnedAsset, ...] = ()
        compressed: tuple[OwnedAsset, ...] = ()
        if wallets:
            owned = select(Asset).where(Asset.owner_wallet.in_(wallets))
            compressed_filter = Asset.classification.startswith(prefix, autoescape=True)
            regular = tuple(OwnedAsset.from_row(r) for r in session.scalars(
                owned.where(
                    Asset.classification.is_(None) | ~compressed_filter
                ).order_by(Asset.name)
            ))
            compressed = tuple(OwnedAsset.from_row(r) for r in session.scalars(
                owned.where(compressed_filter).order_by(Asset.name)
            ))

        holdings = Holdings.from_snapshot(snapshot)
        return HoldingsView(
            identity_id=identity_id,
            display_name=snapshot.display_name if snapshot else None,
            holdings=holdings,
            yields=calculate_yield(holdings),
            wallets=wallets,
            assets=regular,
            compressed_assets=compressed,
            updated_at=snapshot.updated_at if snapshot else None,
            found=snapshot is not None,
        )

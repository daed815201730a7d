"""
harvester.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- assets              — Owned NFTs and cNFTs keyed by mint address (source of truth)
- identity_links      — Wallet → Discord identity links (source of truth)
- holdings_snapshots  — Per-identity tier counts (derived, recomputable)
- role_catalog        — Managed Discord roles and the holdings key they gate on
- entitlement_states  — Per-identity eligible entitlement names (derived)

Only ``assets`` and ``identity_links`` carry information of their own.
``holdings_snapshots`` is written exclusively by the aggregation service and
``entitlement_states`` exclusively by the eligibility service; both can be
rebuilt at any time from the source tables.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from harvester.constants import (
    COMPRESSED_COUNT_COLUMNS,
    HARVESTER_FLAG_COLUMNS,
    REGULAR_COUNT_COLUMNS,
    Tier,
)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Harvester ORM models."""


# ---------------------------------------------------------------------------
# Asset — one row per mint address (regular NFT or compressed cNFT)
# ---------------------------------------------------------------------------
class Asset(Base):
    """An owned asset as last observed by the ingest pipeline.

    ``classification`` is the tier slug for regular NFTs (``"gold"``) and the
    compressed family prefix plus tier for cNFTs (``"seedling_gold"``).
    ``owner_identity_id`` / ``owner_name`` are attached opportunistically
    during ingest and linking; the aggregator never reads them.
    """
    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # mint address
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    classification: Mapped[str | None] = mapped_column(String(64), default=None)
    collection: Mapped[str | None] = mapped_column(String(64), default=None)
    owner_wallet: Mapped[str | None] = mapped_column(String(64), default=None)
    owner_identity_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    owner_name: Mapped[str | None] = mapped_column(String(100), default=None)
    image_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_listed: Mapped[bool] = mapped_column(Boolean, default=False)
    rarity_rank: Mapped[int | None] = mapped_column(Integer, default=None)
    is_special: Mapped[bool] = mapped_column(Boolean, default=False)  # OG420
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_assets_owner_wallet", "owner_wallet"),
        Index("ix_assets_classification", "classification"),
    )

    def __repr__(self) -> str:
        return f"<Asset id={self.id!r} class={self.classification!r} owner={self.owner_wallet!r}>"


# ---------------------------------------------------------------------------
# IdentityLink — many wallets → one Discord identity
# ---------------------------------------------------------------------------
class IdentityLink(Base):
    __tablename__ = "identity_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "identity_id", "wallet_address", name="uq_identity_links_identity_wallet",
        ),
        Index("ix_identity_links_wallet", "wallet_address"),
    )

    def __repr__(self) -> str:
        return f"<IdentityLink identity={self.identity_id} wallet={self.wallet_address!r}>"


# ---------------------------------------------------------------------------
# HoldingsSnapshot — derived per-identity counts
# ---------------------------------------------------------------------------
class HoldingsSnapshot(Base):
    """Materialised holdings for one identity.

    Invariants: ``total_count`` is the sum of the regular tier columns and
    ``cnft_total_count`` the sum of the compressed tier columns.
    """
    __tablename__ = "holdings_snapshots"

    identity_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)

    gold_count: Mapped[int] = mapped_column(Integer, default=0)
    silver_count: Mapped[int] = mapped_column(Integer, default=0)
    purple_count: Mapped[int] = mapped_column(Integer, default=0)
    dark_green_count: Mapped[int] = mapped_column(Integer, default=0)
    light_green_count: Mapped[int] = mapped_column(Integer, default=0)
    og420_count: Mapped[int] = mapped_column(Integer, default=0)
    total_count: Mapped[int] = mapped_column(Integer, default=0)

    cnft_gold_count: Mapped[int] = mapped_column(Integer, default=0)
    cnft_silver_count: Mapped[int] = mapped_column(Integer, default=0)
    cnft_purple_count: Mapped[int] = mapped_column(Integer, default=0)
    cnft_dark_green_count: Mapped[int] = mapped_column(Integer, default=0)
    cnft_light_green_count: Mapped[int] = mapped_column(Integer, default=0)
    cnft_total_count: Mapped[int] = mapped_column(Integer, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def regular_count(self, tier: Tier) -> int:
        return getattr(self, REGULAR_COUNT_COLUMNS[tier]) or 0

    def compressed_count(self, tier: Tier) -> int:
        return getattr(self, COMPRESSED_COUNT_COLUMNS[tier]) or 0

    def __repr__(self) -> str:
        return (
            f"<HoldingsSnapshot identity={self.identity_id} "
            f"total={self.total_count} cnft_total={self.cnft_total_count}>"
        )


# ---------------------------------------------------------------------------
# RoleCatalogEntry — the Discord roles this system manages
# ---------------------------------------------------------------------------
class RoleCatalogEntry(Base):
    """Maps a Discord role to an internal entitlement name.

    ``classification`` names the holdings key the role is gated on: a tier
    slug (``"gold"``), ``"og420"``, or a compressed key (``"cnft_gold"``).
    """
    __tablename__ = "role_catalog"

    role_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)  # Discord snowflake
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="holder")
    classification: Mapped[str] = mapped_column(String(64), nullable=False)
    color: Mapped[str | None] = mapped_column(String(7), default=None)
    emoji_url: Mapped[str | None] = mapped_column(String(500), default=None)

    def __repr__(self) -> str:
        return f"<RoleCatalogEntry role={self.role_id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# EntitlementState — derived per-identity entitlement set
# ---------------------------------------------------------------------------
class EntitlementState(Base):
    """Serialized form of an :class:`~harvester.engine.eligibility.EntitlementSet`.

    ``entitlements`` holds the sorted list of eligible entitlement names.
    The ``harvester_*`` flags record "owns at least one" per compressed tier.
    """
    __tablename__ = "entitlement_states"

    identity_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    entitlements: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    harvester_gold: Mapped[bool] = mapped_column(Boolean, default=False)
    harvester_silver: Mapped[bool] = mapped_column(Boolean, default=False)
    harvester_purple: Mapped[bool] = mapped_column(Boolean, default=False)
    harvester_dark_green: Mapped[bool] = mapped_column(Boolean, default=False)
    harvester_light_green: Mapped[bool] = mapped_column(Boolean, default=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def flag(self, tier: Tier) -> bool:
        return bool(getattr(self, HARVESTER_FLAG_COLUMNS[tier]))

    def __repr__(self) -> str:
        return f"<EntitlementState identity={self.identity_id} n={len(self.entitlements or [])}>"

"""Baseline holdings schema

Revision ID: 4a7c2e91b0d3
Revises:
Create Date: 2026-10-19 09:12:04.118240

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4a7c2e91b0d3'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_TIERS = ("gold", "silver", "purple", "dark_green", "light_green")


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create assets, identity_links, holdings_snapshots, role_catalog, entitlement_states."""

    # --- assets ---
    op.create_table(
        "assets",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("classification", sa.String(64), nullable=True),
        sa.Column("collection", sa.String(64), nullable=True),
        sa.Column("owner_wallet", sa.String(64), nullable=True),
        sa.Column("owner_identity_id", sa.BigInteger, nullable=True),
        sa.Column("owner_name", sa.String(100), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("is_listed", sa.Boolean, nullable=True),
        sa.Column("rarity_rank", sa.Integer, nullable=True),
        sa.Column("is_special", sa.Boolean, nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_assets_owner_wallet", "assets", ["owner_wallet"])
    op.create_index("ix_assets_classification", "assets", ["classification"])

    # --- identity_links ---
    op.create_table(
        "identity_links",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("identity_id", sa.BigInteger, nullable=False),
        sa.Column("wallet_address", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint(
            "identity_id", "wallet_address", name="uq_identity_links_identity_wallet",
        ),
    )
    op.create_index("ix_identity_links_wallet", "identity_links", ["wallet_address"])

    # --- holdings_snapshots ---
    op.create_table(
        "holdings_snapshots",
        sa.Column("identity_id", sa.BigInteger, primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        *[sa.Column(f"{t}_count", sa.Integer, nullable=True) for t in _TIERS],
        sa.Column("og420_count", sa.Integer, nullable=True),
        sa.Column("total_count", sa.Integer, nullable=True),
        *[sa.Column(f"cnft_{t}_count", sa.Integer, nullable=True) for t in _TIERS],
        sa.Column("cnft_total_count", sa.Integer, nullable=True),
        _timestamp("updated_at"),
    )

    # --- role_catalog ---
    op.create_table(
        "role_catalog",
        sa.Column("role_id", sa.BigInteger, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("classification", sa.String(64), nullable=False),
        sa.Column("color", sa.String(7), nullable=True),
        sa.Column("emoji_url", sa.String(500), nullable=True),
    )

    # --- entitlement_states ---
    op.create_table(
        "entitlement_states",
        sa.Column("identity_id", sa.BigInteger, primary_key=True),
        sa.Column(
            "entitlements", postgresql.JSONB, nullable=False, server_default="[]",
        ),
        *[sa.Column(f"harvester_{t}", sa.Boolean, nullable=True) for t in _TIERS],
        _timestamp("updated_at"),
    )


def downgrade() -> None:
    op.drop_table("entitlement_states")
    op.drop_table("role_catalog")
    op.drop_table("holdings_snapshots")
    op.drop_index("ix_identity_links_wallet", table_name="identity_links")
    op.drop_table("identity_links")
    op.drop_index("ix_assets_classification", table_name="assets")
    op.drop_index("ix_assets_owner_wallet", table_name="assets")
    op.drop_table("assets")
